"""
Loader Registry - named loader factories and the default pipelines.

Add new loaders by registering them with the global registry, then refer
to them by name when building a chain:

    registry = get_registry()
    registry.register("upper", UpperLoader)
    pipeline = registry.build(["file", "text", "upper"])
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Sequence

from ..config import Settings, get_settings
from ..core.loader import Loader
from ..core.pipeline import Pipeline
from ..models.base import EmbeddingModel
from ..stores.sql import SQLVectorStore

logger = logging.getLogger(__name__)

LoaderFactory = Callable[..., Loader]

DEFAULT_WRITE_CHAIN = ("url", "file", "pdf", "docx", "text", "embedding", "store")
DEFAULT_SEARCH_CHAIN = ("embedding", "search")


class LoaderRegistry:
    """
    Registry of loader factories, keyed by name.

    A factory is a Loader subclass or any callable returning a Loader. Every
    ``create()`` returns a fresh instance, so pipelines never share
    collaborator state by accident.
    """

    def __init__(self):
        self._factories: dict[str, tuple[LoaderFactory, dict[str, Any]]] = {}

    def register(self, key: str, factory: LoaderFactory, **defaults: Any) -> None:
        """
        Register a loader factory.

        Args:
            key: Name used by ``create()`` and ``build()``
            factory: Loader class or callable returning a Loader
            **defaults: Keyword arguments passed to the factory on every
                create (may include the stage ``name``)
        """
        if key in self._factories:
            logger.debug(f"Replacing loader factory: {key}")
        self._factories[key] = (factory, defaults)
        logger.debug(f"Registered loader: {key}")

    def unregister(self, key: str) -> bool:
        """Remove a loader factory. Returns True if one was removed."""
        return self._factories.pop(key, None) is not None

    def names(self) -> list[str]:
        return list(self._factories)

    def list_loaders(self) -> list[dict]:
        """List the registered loaders with their factory and default options."""
        return [
            {
                "name": key,
                "factory": getattr(factory, "__name__", repr(factory)),
                "defaults": dict(defaults),
            }
            for key, (factory, defaults) in self._factories.items()
        ]

    def create(self, key: str, **options: Any) -> Loader:
        """
        Create a loader by registered name.

        Raises:
            KeyError: If no loader is registered under ``key``
        """
        if key not in self._factories:
            raise KeyError(f"Unknown loader '{key}'. Registered: {', '.join(self._factories)}")

        factory, defaults = self._factories[key]
        loader = factory(**{**defaults, **options})
        if not isinstance(loader, Loader):
            raise TypeError(f"Factory for '{key}' returned {type(loader).__name__}, not a Loader")
        return loader

    def build(
        self,
        names: Sequence[str],
        options: Optional[dict[str, dict[str, Any]]] = None,
        buffer_size: int = 1,
    ) -> Pipeline:
        """
        Build a pipeline from loader names.

        Args:
            names: Loader names, in chain order
            options: Per-name keyword arguments for ``create()``
            buffer_size: Queue size between stages
        """
        options = options or {}
        loaders = [self.create(name, **options.get(name, {})) for name in names]
        return Pipeline(loaders, buffer_size=buffer_size)


# Global registry instance
_global_registry: Optional[LoaderRegistry] = None


def get_registry() -> LoaderRegistry:
    """Get the global loader registry, creating it if needed."""
    global _global_registry

    if _global_registry is None:
        registry = LoaderRegistry()
        _setup_default_loaders(registry)
        _global_registry = registry

    return _global_registry


def reset_registry() -> None:
    """Drop the global registry so the next ``get_registry()`` rebuilds it."""
    global _global_registry
    _global_registry = None


def _setup_default_loaders(registry: LoaderRegistry) -> None:
    """Register the built-in loaders."""
    from .datastore import DataStoreLoader
    from .documents import DocxLoader, PdfLoader, TextLoader
    from .embedding import EmbeddingLoader
    from .sources import FileLoader, UrlLoader

    registry.register("url", UrlLoader)
    registry.register("file", FileLoader)
    registry.register("pdf", PdfLoader)
    registry.register("docx", DocxLoader)
    registry.register("text", TextLoader)
    registry.register("embedding", EmbeddingLoader)
    registry.register("store", DataStoreLoader)
    registry.register("search", DataStoreLoader, search=True, name="search")

    logger.debug(f"Registered {len(registry.names())} built-in loaders")


def _stage_options(
    settings: Settings,
    model: Optional[EmbeddingModel],
    store: Optional[SQLVectorStore],
) -> dict[str, dict[str, Any]]:
    options: dict[str, dict[str, Any]] = {
        "embedding": {"model": model},
        "store": {"store": store},
        "search": {"store": store, "k": settings.search_results},
    }
    if settings.stage_timeout is not None:
        for name in DEFAULT_WRITE_CHAIN + DEFAULT_SEARCH_CHAIN:
            options.setdefault(name, {})["timeout"] = settings.stage_timeout
    return options


def default_write_pipeline(
    model: Optional[EmbeddingModel] = None,
    store: Optional[SQLVectorStore] = None,
    settings: Optional[Settings] = None,
) -> Pipeline:
    """
    The ingestion chain: url, file, pdf, docx, text, embedding, store.

    Any input (URL, path, raw buffer or text) ends up embedded and stored.
    """
    settings = settings or get_settings()
    return get_registry().build(DEFAULT_WRITE_CHAIN, _stage_options(settings, model, store))


def default_search_pipeline(
    model: Optional[EmbeddingModel] = None,
    store: Optional[SQLVectorStore] = None,
    k: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> Pipeline:
    """The query chain: embed the query text, then emit its nearest stored records."""
    settings = settings or get_settings()
    options = _stage_options(settings, model, store)
    if k is not None:
        options["search"]["k"] = k
    return get_registry().build(DEFAULT_SEARCH_CHAIN, options)
