"""
Embedding model interface.

The embedding stage only needs ``embed(text) -> vector``; ``embed_many`` lets
backends that can batch do so.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List


class EmbeddingModel(ABC):
    """Abstract text embedding backend."""

    name: str = "embedding-model"

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Length of the vectors this model produces."""
        pass

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Embed one text into a vector."""
        pass

    async def embed_many(self, texts: List[str]) -> List[List[float]]:
        """
        Embed several texts, in order.

        The default embeds one text at a time; override it when the backend
        accepts batches.
        """
        return [await self.embed(text) for text in texts]

    async def close(self) -> None:
        return None
