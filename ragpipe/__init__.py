"""
ragpipe - staged ingestion pipelines for retrieval.

This package provides:
- Record / Loader / Pipeline: the streaming stage core
- Built-in loaders: url, file, pdf, docx, text, embedding, store
- SQLVectorStore: vector storage with cosine search
- CLI: command-line interface for loading and searching

Quick Start:
    import asyncio
    import ragpipe

    records = asyncio.run(ragpipe.load("notes.pdf", {"project": "demo"}))
    hits = asyncio.run(ragpipe.search("what did we decide?"))
"""

from .api import count, get, load, reset, search
from .config import Settings, get_settings
from .core import (
    ContentKind,
    DocumentFormat,
    FailedRecord,
    Loader,
    LoaderEvent,
    Pipeline,
    PipelineResult,
    Record,
    StageRun,
    detect_format,
)
from .errors import (
    ConfigError,
    EmbeddingError,
    ExtractionError,
    FetchError,
    InputError,
    PipelineError,
    RagpipeError,
    RecordError,
    RecordNotFoundError,
    StageError,
    StageTimeoutError,
    StorageError,
)
from .loaders import (
    DataStoreLoader,
    DocxLoader,
    EmbeddingLoader,
    FileLoader,
    PdfLoader,
    TextLoader,
    UrlLoader,
    default_search_pipeline,
    default_write_pipeline,
    get_registry,
)
from .stores import SQLVectorStore

__version__ = "0.1.0"

__all__ = [
    # Facade
    "load",
    "search",
    "get",
    "reset",
    "count",
    # Core
    "Record",
    "ContentKind",
    "DocumentFormat",
    "detect_format",
    "Loader",
    "LoaderEvent",
    "StageRun",
    "FailedRecord",
    "Pipeline",
    "PipelineResult",
    # Loaders
    "UrlLoader",
    "FileLoader",
    "PdfLoader",
    "DocxLoader",
    "TextLoader",
    "EmbeddingLoader",
    "DataStoreLoader",
    "get_registry",
    "default_write_pipeline",
    "default_search_pipeline",
    # Storage
    "SQLVectorStore",
    # Config
    "Settings",
    "get_settings",
    # Errors
    "RagpipeError",
    "ConfigError",
    "InputError",
    "RecordError",
    "StageError",
    "FetchError",
    "ExtractionError",
    "EmbeddingError",
    "StageTimeoutError",
    "StorageError",
    "RecordNotFoundError",
    "PipelineError",
]
