"""
Embedding backends.

    from ragpipe.models import get_default_model

    model = get_default_model()          # chosen by EMBEDDING_BACKEND
    vector = await model.embed("hello")
"""
from __future__ import annotations

from typing import Optional

from ..config import Settings, get_settings
from .base import EmbeddingModel


def create_embedding_model(settings: Optional[Settings] = None) -> EmbeddingModel:
    """Create the embedding backend named by the settings."""
    settings = settings or get_settings()

    # Backends are imported on demand: torch is heavy and openai needs a key
    if settings.embedding_backend == "openai":
        from .openai_model import OpenAIEmbeddingModel
        return OpenAIEmbeddingModel(model=settings.embedding_model)

    from .sentence_model import SentenceTransformerModel
    return SentenceTransformerModel(model_id=settings.embedding_model)


# Global instance - loaded once, reused across pipelines
_default_model: Optional[EmbeddingModel] = None


def get_default_model() -> EmbeddingModel:
    """Get or create the global embedding model."""
    global _default_model

    if _default_model is None:
        _default_model = create_embedding_model()

    return _default_model


def set_default_model(model: Optional[EmbeddingModel]) -> None:
    """Replace (or with None, forget) the global embedding model."""
    global _default_model
    _default_model = model


__all__ = [
    "EmbeddingModel",
    "create_embedding_model",
    "get_default_model",
    "set_default_model",
]
