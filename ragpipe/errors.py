"""
Error hierarchy for ragpipe.

Per-record problems raised inside a stage (fetch failures, unreadable
documents, embedding or storage errors) never escape a pipeline run: the
runner routes them to the stage's error bucket. Only ``PipelineError``
reaches the caller of ``Pipeline.load()``.
"""
from __future__ import annotations

from typing import Optional


class RagpipeError(Exception):
    """Base exception for ragpipe errors."""
    pass


class ConfigError(RagpipeError):
    """Invalid configuration value (usually from the environment)."""
    pass


class InputError(RagpipeError):
    """A pipeline input could not be turned into a record."""
    pass


class RecordError(RagpipeError):
    """A record was used in a way it does not allow."""
    pass


class StageError(RagpipeError):
    """Error raised by a stage while processing one record."""
    pass


class FetchError(StageError):
    """A URL could not be fetched, or answered with a non-2xx status."""

    def __init__(self, message: str, url: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ExtractionError(StageError):
    """A document buffer was rejected by its format extractor."""
    pass


class EmbeddingError(StageError):
    """Error during embedding generation."""
    pass


class StageTimeoutError(StageError):
    """A stage did not finish processing a record before its deadline."""
    pass


class StorageError(RagpipeError):
    """Error reading from or writing to the vector store."""
    pass


class RecordNotFoundError(StorageError):
    """No stored record has the requested id."""
    pass


class PipelineError(RagpipeError):
    """
    Structural failure of a pipeline run.

    Raised when something breaks the chain itself (the source feed, an
    event listener, the runner) rather than a single record.
    """
    pass
