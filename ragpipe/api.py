"""
High-level entry points over the default pipelines.

    import ragpipe

    stored = await ragpipe.load(["report.pdf", "https://example.com/notes.txt"], {"project": "q3"})
    hits = await ragpipe.search("quarterly revenue", k=5)
    record = await ragpipe.get(hits[0].id)

Each call opens the store from the settings and closes it again, unless a
store is passed in.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Mapping, Optional, Union

from .core.record import Record
from .loaders.registry import default_search_pipeline, default_write_pipeline
from .models.base import EmbeddingModel
from .stores.sql import SQLVectorStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _open_store(
    store: Optional[SQLVectorStore],
    model: Optional[EmbeddingModel] = None,
) -> AsyncGenerator[SQLVectorStore, None]:
    if store is not None:
        yield store
        return

    store = SQLVectorStore(model=model)
    try:
        yield store
    finally:
        await store.close()


async def load(
    inputs: Any,
    metadata: Optional[Mapping[str, Any]] = None,
    model: Optional[EmbeddingModel] = None,
    store: Optional[SQLVectorStore] = None,
) -> list[Record]:
    """
    Ingest inputs through the default write pipeline.

    Returns:
        The stored records (one per embedded chunk)
    """
    async with _open_store(store, model) as opened:
        pipeline = default_write_pipeline(model=model, store=opened)
        try:
            return await pipeline.load(inputs, metadata)
        finally:
            await pipeline.close()


async def search(
    text: str,
    k: Optional[int] = None,
    model: Optional[EmbeddingModel] = None,
    store: Optional[SQLVectorStore] = None,
) -> list[Record]:
    """
    Find the stored records nearest to ``text``.

    Returns:
        Records ordered by ascending distance (``metadata["distance"]``)
    """
    async with _open_store(store, model) as opened:
        pipeline = default_search_pipeline(model=model, store=opened, k=k)
        try:
            return await pipeline.load(text)
        finally:
            await pipeline.close()


async def get(record_id: Union[int, str], store: Optional[SQLVectorStore] = None) -> Record:
    """Fetch one stored record (RecordNotFoundError if missing)."""
    async with _open_store(store) as opened:
        return await opened.get_one(record_id)


async def reset(store: Optional[SQLVectorStore] = None) -> None:
    """Delete every stored record."""
    async with _open_store(store) as opened:
        await opened.reset()


async def count(store: Optional[SQLVectorStore] = None) -> int:
    async with _open_store(store) as opened:
        return await opened.count()
