"""Shared fixtures: an isolated environment, a fake embedding model, document builders."""

from __future__ import annotations

import io
import re

import docx
import fitz
import pytest

from ragpipe import models
from ragpipe.config import reset_settings
from ragpipe.models.base import EmbeddingModel
from ragpipe.stores.sql import SQLVectorStore

VOCABULARY = ("fox", "dog", "cat", "bird", "fish", "tree", "river")
FAKE_DIMENSIONS = len(VOCABULARY) + 1

_ENV_KEYS = (
    "DATABASE_URL",
    "TABLE_NAME",
    "DIMENSIONS",
    "EMBEDDING_BACKEND",
    "EMBEDDING_MODEL",
    "EMBEDDING_MODEL_PRESET",
    "CHUNK_SIZE",
    "CHUNK_OVERLAP",
    "FETCH_TIMEOUT",
    "STAGE_TIMEOUT",
    "SEARCH_RESULTS",
)


class FakeEmbeddingModel(EmbeddingModel):
    """Bag-of-words over a tiny vocabulary; every other word counts in the last dimension."""

    name = "fake"

    def __init__(self, vocabulary=VOCABULARY):
        self.vocabulary = list(vocabulary)
        self.calls: list[list[str]] = []

    @property
    def dimensions(self) -> int:
        return len(self.vocabulary) + 1

    async def embed(self, text: str) -> list[float]:
        vector = [0.0] * self.dimensions
        for word in re.findall(r"[a-z]+", text.lower()):
            if word in self.vocabulary:
                vector[self.vocabulary.index(word)] += 1.0
            else:
                vector[-1] += 1.0
        return vector

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [await self.embed(text) for text in texts]


class WideEmbeddingModel(FakeEmbeddingModel):
    """Same vocabulary, padded to the size of a hosted embedding model."""

    @property
    def dimensions(self) -> int:
        return 1536


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Point the settings at a temporary database and forget cached globals."""
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'data' / 'ragpipe.db'}")
    monkeypatch.setenv("DIMENSIONS", str(FAKE_DIMENSIONS))

    reset_settings()
    models.set_default_model(None)
    yield
    reset_settings()
    models.set_default_model(None)


@pytest.fixture
def fake_model() -> FakeEmbeddingModel:
    return FakeEmbeddingModel()


@pytest.fixture
async def store(tmp_path):
    vector_store = SQLVectorStore(
        f"sqlite+aiosqlite:///{tmp_path / 'store.db'}",
        table_name="embeddings",
        dimensions=FAKE_DIMENSIONS,
    )
    yield vector_store
    await vector_store.close()


def build_pdf(pages: list[str], author: str = "Ada Lovelace", title: str = "Notes") -> bytes:
    """A PDF with one text line per page."""
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        page.insert_text((72, 72), text)
    doc.set_metadata({"author": author, "title": title})
    data = doc.tobytes()
    doc.close()
    return data


def build_docx(paragraphs: list[str], author: str = "Grace Hopper") -> bytes:
    document = docx.Document()
    for text in paragraphs:
        document.add_paragraph(text)
    document.core_properties.author = author

    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def pdf_bytes() -> bytes:
    return build_pdf(["The quick fox", "The lazy dog"])


@pytest.fixture
def docx_bytes() -> bytes:
    return build_docx(["First paragraph about a cat", "", "Second paragraph about a bird"])
