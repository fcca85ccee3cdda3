"""
Remote embedding backend on the OpenAI embeddings API.
"""
from __future__ import annotations

import logging
import os
from typing import List, Optional

from openai import AsyncOpenAI, OpenAIError

from ..errors import ConfigError, EmbeddingError
from .base import EmbeddingModel

logger = logging.getLogger(__name__)

# Output sizes of the hosted embedding models
MODEL_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class OpenAIEmbeddingModel(EmbeddingModel):
    """
    Embedding model backed by ``AsyncOpenAI().embeddings.create``.

    Environment Variables:
    - OPENAI_API_KEY: API key (required unless passed in)
    - OPENAI_BASE_URL: Alternative API endpoint (optional)
    - EMBEDDING_MODEL: Model name (default: text-embedding-3-small)
    """

    name = "openai"
    DEFAULT_MODEL = "text-embedding-3-small"

    def __init__(
        self,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        dimensions: Optional[int] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Args:
            model: Embedding model name
            api_key: OpenAI API key (defaults to OPENAI_API_KEY env var)
            base_url: API base URL (defaults to OPENAI_BASE_URL env var)
            dimensions: Requested vector length, for models that can shorten
                their output
            client: Preconfigured client, mostly for tests
        """
        self.model = model or os.getenv("EMBEDDING_MODEL") or self.DEFAULT_MODEL
        self._dimensions = dimensions

        if client is not None:
            self._client = client
            return

        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ConfigError(
                "OpenAI API key required. Set OPENAI_API_KEY environment variable "
                "or pass api_key parameter."
            )
        base_url = base_url or os.getenv("OPENAI_BASE_URL")
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url if base_url else None)

    @property
    def dimensions(self) -> int:
        if self._dimensions is not None:
            return self._dimensions
        return MODEL_DIMENSIONS.get(self.model, 1536)

    async def embed(self, text: str) -> List[float]:
        vectors = await self.embed_many([text])
        return vectors[0]

    async def embed_many(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []

        kwargs = {"model": self.model, "input": texts}
        if self._dimensions is not None:
            kwargs["dimensions"] = self._dimensions

        try:
            response = await self._client.embeddings.create(**kwargs)
        except OpenAIError as e:
            raise EmbeddingError(f"OpenAI embedding request failed: {e}") from e

        # The API may answer out of order; each item carries its input index
        data = sorted(response.data, key=lambda item: item.index)
        logger.debug(f"Embedded {len(texts)} text(s) with {self.model}")
        return [list(item.embedding) for item in data]

    async def close(self) -> None:
        await self._client.close()
