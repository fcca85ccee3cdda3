"""
Core of ragpipe: the record schema, the stage contract and the pipeline runner.
"""

from .detect import DocumentFormat, detect_format, is_file_path, is_url
from .loader import Loader, LoaderEvent
from .pipeline import Pipeline, PipelineResult
from .record import ContentKind, Record, coerce_input, validate_record
from .stage import FailedRecord, StageRun

__all__ = [
    "ContentKind",
    "DocumentFormat",
    "FailedRecord",
    "Loader",
    "LoaderEvent",
    "Pipeline",
    "PipelineResult",
    "Record",
    "StageRun",
    "coerce_input",
    "detect_format",
    "is_file_path",
    "is_url",
    "validate_record",
]
