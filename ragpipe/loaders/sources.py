"""
Source loaders - turn a URL or a file path into raw content.

Both only apply to string records naming their source, so a chain can start
with both and each input is picked up by exactly one of them.
"""
from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping, Optional

import httpx

from ..config import get_settings
from ..core.detect import is_file_path, is_url
from ..core.loader import Loader
from ..core.record import Record
from ..core.stage import StageRun
from ..errors import FetchError

logger = logging.getLogger(__name__)


def is_textual_content_type(content_type: str) -> bool:
    """True for text/* and JSON media types, which are decoded to text."""
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type.startswith("text/") or "json" in media_type


class UrlLoader(Loader):
    """
    Fetch http(s) URLs.

    Textual responses become text records, everything else stays bytes for
    the document loaders further down the chain. Adds ``url`` and
    ``headers`` metadata.
    """

    name = "url"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        fetch_timeout: Optional[float] = None,
        headers: Optional[Mapping[str, str]] = None,
        follow_redirects: bool = True,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.fetch_timeout = fetch_timeout or get_settings().fetch_timeout
        self.headers = dict(headers or {})
        self.follow_redirects = follow_redirects
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.fetch_timeout,
                headers=self.headers,
                follow_redirects=self.follow_redirects,
            )
        return self._client

    def test(self, record: Record) -> bool:
        return is_url(record.content)

    async def process(self, record: Record, run: StageRun) -> Record:
        url = record.content
        client = self._get_client()

        logger.debug(f"Fetching {url}")
        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            raise FetchError(f"Failed to fetch {url}: {e}", url=url) from e

        if not response.is_success:
            raise FetchError(
                f"Failed to fetch {url}: HTTP {response.status_code}",
                url=url,
                status_code=response.status_code,
            )

        content_type = response.headers.get("content-type", "")
        content = response.text if is_textual_content_type(content_type) else response.content

        return record.derive(
            content=content,
            metadata={"url": url, "headers": dict(response.headers)},
        )

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


def _read_file(path: Path) -> tuple[bytes, os.stat_result]:
    with path.open("rb") as f:
        return f.read(), os.fstat(f.fileno())


class FileLoader(Loader):
    """Read local files named by a path string. Adds file metadata."""

    name = "file"

    def test(self, record: Record) -> bool:
        return is_file_path(record.content)

    async def process(self, record: Record, run: StageRun) -> Record:
        path = Path(record.content)
        data, stat = await asyncio.to_thread(_read_file, path)

        modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
        logger.debug(f"Read {stat.st_size} bytes from {path}")

        return record.derive(
            content=data,
            metadata={
                "filePath": str(path.resolve()),
                "fileName": path.name,
                "fileType": path.suffix.lstrip(".").lower(),
                "fileSize": stat.st_size,
                "fileLastModified": modified.isoformat(),
            },
        )
