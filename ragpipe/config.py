"""
Runtime configuration for ragpipe.

Settings are read from the environment. The CLI loads a ``.env`` file with
python-dotenv first, so anything below can live there too.

Environment Variables:
- DATABASE_URL: SQLAlchemy URL of the vector store (default: sqlite+aiosqlite:///./data/ragpipe.db)
- TABLE_NAME: Table holding the records (default: embeddings)
- DIMENSIONS: Vector length the store accepts (default: the embedding model's)
- EMBEDDING_BACKEND: "sentence-transformers" or "openai" (default: sentence-transformers)
- EMBEDDING_MODEL: Model id or preset name for the backend (optional)
- CHUNK_SIZE: Words per embedded window (default: 200)
- CHUNK_OVERLAP: Words shared by consecutive windows (default: 0)
- FETCH_TIMEOUT: URL fetch timeout in seconds (default: 30)
- STAGE_TIMEOUT: Deadline per stage invocation in seconds (default: none)
- SEARCH_RESULTS: Number of nearest records a search returns (default: 3)
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigError

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./data/ragpipe.db"

BACKENDS = ("sentence-transformers", "openai")


def _get_int(env: Mapping[str, str], key: str, default: Optional[int], minimum: int = 0) -> Optional[int]:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise ConfigError(f"{key} must be >= {minimum}, got {value}")
    return value


def _get_float(env: Mapping[str, str], key: str, default: Optional[float]) -> Optional[float]:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {value}")
    return value


@dataclass
class Settings:
    """Configuration shared by the default loaders, models and stores."""

    database_url: str = DEFAULT_DATABASE_URL
    table_name: str = "embeddings"
    dimensions: Optional[int] = None

    embedding_backend: str = "sentence-transformers"
    embedding_model: Optional[str] = None
    chunk_size: int = 200
    chunk_overlap: int = 0

    fetch_timeout: float = 30.0
    stage_timeout: Optional[float] = None
    search_results: int = 3

    def __post_init__(self):
        if self.embedding_backend not in BACKENDS:
            raise ConfigError(
                f"Unknown embedding backend '{self.embedding_backend}', expected one of {', '.join(BACKENDS)}"
            )

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from environment variables (``os.environ`` by default)."""
        env = os.environ if env is None else env

        return cls(
            database_url=env.get("DATABASE_URL") or DEFAULT_DATABASE_URL,
            table_name=env.get("TABLE_NAME") or "embeddings",
            dimensions=_get_int(env, "DIMENSIONS", None, minimum=1),
            embedding_backend=(env.get("EMBEDDING_BACKEND") or "sentence-transformers").lower(),
            embedding_model=env.get("EMBEDDING_MODEL") or None,
            chunk_size=_get_int(env, "CHUNK_SIZE", 200, minimum=1),
            chunk_overlap=_get_int(env, "CHUNK_OVERLAP", 0),
            fetch_timeout=_get_float(env, "FETCH_TIMEOUT", 30.0),
            stage_timeout=_get_float(env, "STAGE_TIMEOUT", None),
            search_results=_get_int(env, "SEARCH_RESULTS", 3, minimum=1),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the process-wide settings, reading the environment on first use."""
    global _settings

    if _settings is None:
        _settings = Settings.from_env()

    return _settings


def reset_settings() -> None:
    """Forget cached settings so the next ``get_settings()`` re-reads the environment."""
    global _settings
    _settings = None
