"""
Vector store on SQLAlchemy (async engine, aiosqlite by default).

Usage:
    store = SQLVectorStore("sqlite+aiosqlite:///./data/ragpipe.db", dimensions=384)

    saved = await store.insert(record)         # record with id + created_at
    same = await store.get_one(saved.id)
    nearest = await store.search(vector, k=3)  # ascending cosine distance

    await store.close()

The engine is created on first use and the table is created if missing.
Similarity is computed in numpy over the stored float32 blobs, so any
SQLAlchemy backend works without a vector extension.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, List, Optional, Union

import numpy as np
from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Integer,
    LargeBinary,
    MetaData,
    Table,
    Text,
    func,
    select,
)
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from ..config import get_settings
from ..core.record import Record
from ..errors import RecordNotFoundError, StorageError
from ..models import get_default_model
from ..models.base import EmbeddingModel
from .binary_io import cosine_distances, decode_vector, encode_vector

logger = logging.getLogger(__name__)


def _json_serializer(obj) -> str:
    # Metadata is open-ended; stringify anything JSON can't express
    return json.dumps(obj, default=str)


class SQLVectorStore:
    """Records with vectors in one SQL table."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        table_name: Optional[str] = None,
        dimensions: Optional[int] = None,
        echo: bool = False,
        model: Optional[EmbeddingModel] = None,
    ):
        """
        Args:
            database_url: SQLAlchemy async URL (default: DATABASE_URL)
            table_name: Table holding the records (default: TABLE_NAME)
            dimensions: Accepted vector length (default: DIMENSIONS, else the
                length produced by ``model`` or the default embedding model)
            echo: Log every SQL statement
            model: Embedding model whose vectors this store will hold
        """
        settings = get_settings()
        self.database_url = database_url or settings.database_url
        self.table_name = table_name or settings.table_name
        self._dimensions = dimensions or settings.dimensions
        self._model = model
        self.echo = echo

        self._metadata = MetaData()
        self.table = Table(
            self.table_name,
            self._metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column("created_at", DateTime(timezone=True), nullable=False),
            Column("content", Text, nullable=False),
            Column("metadata", JSON, nullable=False),
            Column("vector", LargeBinary, nullable=False),
        )

        self._engine: Optional[AsyncEngine] = None
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"SQLVectorStore({self.table_name!r}, dimensions={self._dimensions})"

    @property
    def dimensions(self) -> int:
        """Vector length the table accepts, resolved from the model when not configured."""
        if self._dimensions is None:
            model = self._model or get_default_model()
            self._dimensions = model.dimensions
            logger.info(f"Store '{self.table_name}' uses {self._dimensions} dimensions from {model.name}")
        return self._dimensions

    async def __aenter__(self) -> "SQLVectorStore":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Engine
    # ------------------------------------------------------------------

    def _create_engine(self) -> AsyncEngine:
        url = make_url(self.database_url)
        kwargs = {"echo": self.echo, "json_serializer": _json_serializer}

        if url.get_backend_name() == "sqlite":
            kwargs["connect_args"] = {"check_same_thread": False}
            if url.database in (None, "", ":memory:"):
                # One shared connection, or every checkout sees an empty database
                kwargs["poolclass"] = StaticPool
            else:
                db_dir = os.path.dirname(url.database)
                if db_dir and not os.path.exists(db_dir):
                    os.makedirs(db_dir, exist_ok=True)
                    logger.info(f"Created database directory: {db_dir}")

        return create_async_engine(url, **kwargs)

    async def _get_engine(self) -> AsyncEngine:
        async with self._lock:
            if self._engine is None:
                engine = self._create_engine()
                try:
                    async with engine.begin() as conn:
                        await conn.run_sync(self._metadata.create_all)
                except SQLAlchemyError as e:
                    await engine.dispose()
                    raise StorageError(f"Cannot open vector store at {self.database_url}: {e}") from e
                self._engine = engine
                logger.info(f"Opened vector store table '{self.table_name}'")
            return self._engine

    @asynccontextmanager
    async def _connection(self) -> AsyncGenerator[AsyncConnection, None]:
        engine = await self._get_engine()
        try:
            async with engine.begin() as conn:
                yield conn
        except SQLAlchemyError as e:
            raise StorageError(f"Database error on '{self.table_name}': {e}") from e

    async def close(self) -> None:
        """Dispose of the engine. The store reopens it on next use."""
        async with self._lock:
            if self._engine is not None:
                await self._engine.dispose()
                self._engine = None

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def _check_vector(self, vector: Optional[List[float]]) -> List[float]:
        if vector is None:
            raise StorageError("Record has no vector")
        if len(vector) != self.dimensions:
            raise StorageError(
                f"Vector has {len(vector)} dimensions, table '{self.table_name}' expects {self.dimensions}"
            )
        return vector

    def _to_record(self, row, distance: Optional[float] = None) -> Record:
        values = row._mapping
        metadata = dict(values["metadata"] or {})
        if distance is not None:
            metadata["distance"] = distance

        return Record(
            id=values["id"],
            created_at=values["created_at"],
            content=values["content"],
            metadata=metadata,
            vector=decode_vector(values["vector"]),
        )

    async def insert(self, record: Record) -> Record:
        """
        Store a text record with its vector.

        Returns:
            A new persisted record carrying the assigned id and created_at

        Raises:
            StorageError: If the record is not text, has no vector of the
                right length, or the write fails
        """
        if not isinstance(record.content, str):
            raise StorageError("Only text records can be stored")
        if record.is_persisted:
            raise StorageError(f"Record {record.id} is already stored")

        vector = self._check_vector(record.vector)
        try:
            blob = encode_vector(vector)
        except ValueError as e:
            raise StorageError(f"Invalid vector: {e}") from e

        created_at = datetime.now(timezone.utc)

        async with self._connection() as conn:
            result = await conn.execute(
                self.table.insert().values(
                    created_at=created_at,
                    content=record.content,
                    metadata=dict(record.metadata),
                    vector=blob,
                )
            )
            record_id = result.inserted_primary_key[0]

        logger.debug(f"Stored record {record_id} in '{self.table_name}'")
        return Record(
            id=record_id,
            created_at=created_at,
            content=record.content,
            metadata=dict(record.metadata),
            vector=list(vector),
        )

    async def get_one(self, record_id: Union[int, str]) -> Record:
        """
        Fetch one stored record.

        Raises:
            RecordNotFoundError: If no record has this id
        """
        try:
            key = int(record_id)
        except (TypeError, ValueError) as e:
            raise RecordNotFoundError(f"Record {record_id!r} not found") from e

        async with self._connection() as conn:
            result = await conn.execute(select(self.table).where(self.table.c.id == key))
            row = result.first()

        if row is None:
            raise RecordNotFoundError(f"Record {record_id!r} not found")

        return self._to_record(row)

    async def search(self, vector: List[float], k: int = 3) -> List[Record]:
        """
        Find the ``k`` stored records nearest to ``vector``.

        Returns:
            Records ordered by ascending cosine distance, each with
            ``metadata["distance"]``
        """
        self._check_vector(vector)
        if k <= 0:
            return []

        async with self._connection() as conn:
            result = await conn.execute(select(self.table.c.id, self.table.c.vector))
            rows = result.all()

            if not rows:
                return []

            distances = cosine_distances(vector, [row.vector for row in rows])
            order = np.argsort(distances, kind="stable")[:k]
            nearest = {int(rows[i].id): float(distances[i]) for i in order}

            result = await conn.execute(
                select(self.table).where(self.table.c.id.in_(list(nearest)))
            )
            by_id = {row._mapping["id"]: row for row in result.all()}

        return [self._to_record(by_id[record_id], distance) for record_id, distance in nearest.items()]

    async def count(self) -> int:
        async with self._connection() as conn:
            result = await conn.execute(select(func.count()).select_from(self.table))
            return int(result.scalar_one())

    async def reset(self) -> None:
        """Drop and recreate the table, deleting every stored record."""
        async with self._connection() as conn:
            await conn.run_sync(self._metadata.drop_all)
            await conn.run_sync(self._metadata.create_all)
        logger.info(f"Reset vector store table '{self.table_name}'")
