"""
Embedding loader - splits text into word windows and embeds each one.
"""
from __future__ import annotations

import logging
from typing import Optional

from .. import models
from ..config import get_settings
from ..core.loader import Loader
from ..core.record import ContentKind, Record
from ..core.stage import StageRun
from ..errors import EmbeddingError
from ..models.base import EmbeddingModel
from ..utils import batch_iter, word_windows

logger = logging.getLogger(__name__)


class EmbeddingLoader(Loader):
    """
    Embed text records.

    Every input text becomes one output record per window of ``chunk_size``
    words (consecutive windows share ``overlap`` words), carrying the window
    text, its vector and ``chunkIndex``/``chunkCount`` metadata. Text with no
    words produces no output.

    The model defaults to the process-wide one from
    ``ragpipe.models.get_default_model()``, loaded on first use.
    """

    name = "embedding"

    def __init__(
        self,
        model: Optional[EmbeddingModel] = None,
        chunk_size: Optional[int] = None,
        overlap: Optional[int] = None,
        batch_size: int = 32,
        **kwargs,
    ):
        super().__init__(**kwargs)
        settings = get_settings()

        self.chunk_size = settings.chunk_size if chunk_size is None else chunk_size
        overlap = settings.chunk_overlap if overlap is None else overlap

        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if overlap < 0:
            raise ValueError(f"overlap cannot be negative, got {overlap}")
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")

        if overlap >= self.chunk_size:
            logger.warning(f"Chunk overlap {overlap} >= chunk size {self.chunk_size}, clamping to {self.chunk_size - 1}")
            overlap = self.chunk_size - 1

        self.overlap = overlap
        self.batch_size = batch_size
        self._model = model

    @property
    def model(self) -> EmbeddingModel:
        if self._model is None:
            self._model = models.get_default_model()
        return self._model

    def test(self, record: Record) -> bool:
        return (
            record.kind == ContentKind.TEXT
            and record.vector is None
            and not record.is_persisted
        )

    async def process(self, record: Record, run: StageRun) -> None:
        chunks = list(word_windows(record.content, self.chunk_size, self.overlap))
        if not chunks:
            logger.debug("No words to embed, dropping record")
            return None

        vectors: list[list[float]] = []
        for batch in batch_iter(chunks, self.batch_size):
            vectors.extend(await self.model.embed_many(batch))

        if len(vectors) != len(chunks):
            raise EmbeddingError(f"Model returned {len(vectors)} vectors for {len(chunks)} chunks")

        for index, (chunk, vector) in enumerate(zip(chunks, vectors)):
            await run.emit(
                record.derive(
                    content=chunk,
                    vector=vector,
                    metadata={"chunkIndex": index, "chunkCount": len(chunks)},
                )
            )
        return None
