"""
Data store loader - persists embedded records, or searches for their neighbours.
"""
from __future__ import annotations

import logging
from typing import Optional, Union

from ..config import get_settings
from ..core.loader import Loader
from ..core.record import ContentKind, Record
from ..core.stage import StageRun
from ..stores.sql import SQLVectorStore

logger = logging.getLogger(__name__)


class DataStoreLoader(Loader):
    """
    Bridge between a pipeline and a ``SQLVectorStore``.

    Insert mode (default) stores every embedded text record and forwards
    the persisted copy, with ``id`` and ``createdAt``. Search mode emits the
    ``k`` stored records nearest to each incoming vector instead.

    The store defaults to one built from the settings, opened on first use
    and closed by ``close()``.
    """

    name = "store"

    def __init__(
        self,
        store: Optional[SQLVectorStore] = None,
        search: bool = False,
        k: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.search = search
        self.k = k if k is not None else get_settings().search_results
        self._store = store
        self._owns_store = store is None

    @property
    def store(self) -> SQLVectorStore:
        if self._store is None:
            self._store = SQLVectorStore()
        return self._store

    def test(self, record: Record) -> bool:
        if self.search:
            return record.vector is not None
        return (
            record.kind == ContentKind.TEXT
            and record.vector is not None
            and not record.is_persisted
        )

    async def process(self, record: Record, run: StageRun) -> Optional[Record]:
        if not self.search:
            return await self.store.insert(record)

        matches = await self.store.search(record.vector, self.k)
        logger.debug(f"Search returned {len(matches)} record(s)")
        for match in matches:
            await run.emit(match)
        return None

    async def get_one(self, record_id: Union[int, str]) -> Record:
        """Fetch one stored record by id (RecordNotFoundError if missing)."""
        return await self.store.get_one(record_id)

    async def close(self) -> None:
        if self._store is not None and self._owns_store:
            await self._store.close()
