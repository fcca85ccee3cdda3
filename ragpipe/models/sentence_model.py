"""
Local embedding backend on sentence-transformers.
Uses HuggingFace snapshot_download so any hub model can be selected at runtime.
"""
from __future__ import annotations

import asyncio
import logging
import os
import threading
from pathlib import Path
from typing import List, Optional

import torch
from huggingface_hub import snapshot_download
from sentence_transformers import SentenceTransformer

from ..errors import EmbeddingError
from .base import EmbeddingModel

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "sentence-transformers/all-MiniLM-L12-v2"

# Model presets for quick selection
MODEL_PRESETS = {
    "fast": "sentence-transformers/all-MiniLM-L6-v2",
    "balanced": "sentence-transformers/all-mpnet-base-v2",
    "quality": "BAAI/bge-large-en-v1.5",
    "multilingual": "sentence-transformers/paraphrase-multilingual-mpnet-base-v2",
}


def resolve_model_id(model_id: Optional[str] = None) -> str:
    """
    Resolve the model id.
    Priority: preset env var > direct parameter > model env var > default
    """
    preset = os.getenv("EMBEDDING_MODEL_PRESET")
    if preset and preset in MODEL_PRESETS:
        return MODEL_PRESETS[preset]

    candidate = model_id or os.getenv("EMBEDDING_MODEL")
    if candidate:
        return MODEL_PRESETS.get(candidate, candidate)

    return DEFAULT_MODEL


class SentenceTransformerModel(EmbeddingModel):
    """
    Embedding model that downloads and caches any sentence-transformers model.

    Environment Variables:
    - EMBEDDING_MODEL: HuggingFace model id or preset name
    - EMBEDDING_MODEL_PRESET: Preset name (fast, balanced, quality, multilingual)
    - EMBEDDING_CACHE_DIR: Local cache directory (default: "./models/embeddings")
    - EMBEDDING_DEVICE: "cuda", "cpu", or "auto" (default: "auto")
    - HF_TOKEN: HuggingFace token for private models (optional)

    The model is downloaded and loaded on first use. Encoding runs in a
    worker thread so the event loop keeps serving other stages.
    """

    name = "sentence-transformers"

    def __init__(
        self,
        model_id: Optional[str] = None,
        cache_dir: Optional[str] = None,
        device: Optional[str] = None,
        use_auth_token: Optional[str] = None,
        batch_size: int = 32,
    ):
        self.model_id = resolve_model_id(model_id)
        self.cache_dir = Path(cache_dir or os.getenv("EMBEDDING_CACHE_DIR", "./models/embeddings"))
        self.device = device or os.getenv("EMBEDDING_DEVICE", "auto")
        self.use_auth_token = use_auth_token or os.getenv("HF_TOKEN")
        self.batch_size = batch_size

        self.model: Optional[SentenceTransformer] = None
        self._lock = threading.Lock()

        logger.debug(f"SentenceTransformerModel configured: model={self.model_id} cache={self.cache_dir} device={self.device}")

    def download_model(self) -> Path:
        """Download the model snapshot (served from cache when present)."""
        logger.info(f"Downloading embedding model: {self.model_id}")
        self.cache_dir.mkdir(parents=True, exist_ok=True)

        model_path = snapshot_download(
            repo_id=self.model_id,
            cache_dir=str(self.cache_dir),
            token=self.use_auth_token,
        )
        return Path(model_path)

    def load_model(self) -> SentenceTransformer:
        """Load the model once; later calls return the cached instance."""
        with self._lock:
            if self.model is not None:
                return self.model

            model_path = self.download_model()

            if self.device == "auto":
                device = "cuda" if torch.cuda.is_available() else "cpu"
            else:
                device = self.device

            logger.info(f"Loading embedding model on device: {device}")
            self.model = SentenceTransformer(str(model_path), device=device)
            logger.info(f"Embedding model loaded ({self.model.get_sentence_embedding_dimension()} dims)")
            return self.model

    @property
    def dimensions(self) -> int:
        return self.load_model().get_sentence_embedding_dimension()

    def _encode(self, texts: List[str]) -> List[List[float]]:
        model = self.load_model()
        embeddings = model.encode(
            texts,
            batch_size=self.batch_size,
            convert_to_numpy=True,
            normalize_embeddings=True,
            show_progress_bar=False,
        )
        return embeddings.tolist()

    async def embed(self, text: str) -> List[float]:
        vectors = await self.embed_many([text])
        return vectors[0]

    async def embed_many(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        try:
            return await asyncio.to_thread(self._encode, texts)
        except Exception as e:
            raise EmbeddingError(f"{self.model_id} failed to embed {len(texts)} text(s): {e}") from e
