"""Tests for the URL and file loaders."""

from __future__ import annotations

import os
from datetime import datetime

import httpx
import pytest

from ragpipe.core.pipeline import Pipeline
from ragpipe.errors import FetchError
from ragpipe.loaders.sources import FileLoader, UrlLoader, is_textual_content_type


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.parametrize("content_type,expected", [
    ("text/plain", True),
    ("text/html; charset=utf-8", True),
    ("application/json", True),
    ("application/ld+json", True),
    ("application/pdf", False),
    ("application/octet-stream", False),
    ("", False),
])
def test_is_textual_content_type(content_type, expected):
    assert is_textual_content_type(content_type) is expected


class TestUrlLoader:
    async def test_text_response_becomes_text(self):
        def handler(request):
            return httpx.Response(200, text="hello from the web", headers={"content-type": "text/plain"})

        loader = UrlLoader(client=mock_client(handler))
        records = await Pipeline([loader]).load("https://example.com/a.txt", {"batch": 1})

        assert len(records) == 1
        record = records[0]
        assert record.content == "hello from the web"
        assert record.metadata["url"] == "https://example.com/a.txt"
        assert record.metadata["headers"]["content-type"] == "text/plain"
        assert record.metadata["batch"] == 1

    async def test_json_response_becomes_text(self):
        def handler(request):
            return httpx.Response(200, json={"a": 1})

        records = await Pipeline([UrlLoader(client=mock_client(handler))]).load("http://example.com/data")
        assert isinstance(records[0].content, str)
        assert '"a"' in records[0].content

    async def test_binary_response_stays_bytes(self, pdf_bytes):
        def handler(request):
            return httpx.Response(200, content=pdf_bytes, headers={"content-type": "application/pdf"})

        records = await Pipeline([UrlLoader(client=mock_client(handler))]).load("https://example.com/a.pdf")
        assert records[0].content == pdf_bytes

    async def test_non_success_status_is_an_error(self):
        def handler(request):
            return httpx.Response(404, text="not found")

        result = await Pipeline([UrlLoader(client=mock_client(handler))]).run("https://example.com/missing")
        stage = result.stage("url")

        assert result.records == []
        error = stage.errors[0].error
        assert isinstance(error, FetchError)
        assert error.status_code == 404
        assert error.url == "https://example.com/missing"

    async def test_transport_failure_is_an_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = await Pipeline([UrlLoader(client=mock_client(handler))]).run("https://example.com")
        assert isinstance(result.stage("url").errors[0].error, FetchError)

    async def test_non_urls_are_skipped(self):
        def handler(request):
            raise AssertionError("should not fetch")

        result = await Pipeline([UrlLoader(client=mock_client(handler))]).run(["not a url", b"https://x"])
        assert len(result.stage("url").skipped) == 2

    async def test_injected_client_is_not_closed(self):
        client = mock_client(lambda request: httpx.Response(200, text="x"))
        loader = UrlLoader(client=client)
        await loader.close()
        assert not client.is_closed

    async def test_owned_client_is_created_lazily_and_closed(self):
        loader = UrlLoader(headers={"user-agent": "ragpipe-test"}, fetch_timeout=5)
        client = loader._get_client()

        assert loader._get_client() is client
        assert client.headers["user-agent"] == "ragpipe-test"

        await loader.close()
        assert client.is_closed

    async def test_fetch_timeout_is_separate_from_stage_deadline(self):
        loader = UrlLoader(fetch_timeout=5, timeout=60)
        client = loader._get_client()

        assert loader.timeout == 60
        assert client.timeout.read == 5

        await loader.close()


class TestFileLoader:
    async def test_reads_file_with_metadata(self, tmp_path):
        path = tmp_path / "Notes.TXT"
        path.write_bytes(b"file contents")

        records = await Pipeline([FileLoader()]).load(str(path))
        record = records[0]

        assert record.content == b"file contents"
        assert record.metadata["filePath"] == str(path.resolve())
        assert record.metadata["fileName"] == "Notes.TXT"
        assert record.metadata["fileType"] == "txt"
        assert record.metadata["fileSize"] == len(b"file contents")
        modified = datetime.fromisoformat(record.metadata["fileLastModified"])
        assert abs(modified.timestamp() - os.stat(path).st_mtime) < 1

    async def test_accepts_path_objects(self, tmp_path):
        path = tmp_path / "a.md"
        path.write_text("# title")

        records = await Pipeline([FileLoader()]).load(path)
        assert records[0].content == b"# title"

    async def test_non_files_are_skipped(self, tmp_path):
        result = await Pipeline([FileLoader()]).run(
            [str(tmp_path), str(tmp_path / "missing.txt"), "just some text", b"bytes"]
        )

        assert result.records == []
        assert len(result.stage("file").skipped) == 4
