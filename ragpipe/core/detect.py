"""
Content classification shared by all stages.

Stages decide applicability with cheap checks on the content prefix (magic
bytes) rather than by trying to parse it, so every loader asks the same
questions the same way.
"""
from __future__ import annotations

import re
from enum import Enum
from pathlib import Path

PDF_MAGIC = b"%PDF"  # 25 50 44 46
ZIP_MAGIC = b"PK\x03\x04"  # 50 4B 03 04, the container DOCX files use

_URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)


class DocumentFormat(str, Enum):
    """Format of a raw byte buffer."""
    PDF = "pdf"
    DOCX = "docx"
    TEXT = "text"
    BINARY = "binary"


def detect_format(data: bytes) -> DocumentFormat:
    """
    Classify a byte buffer.

    PDF and DOCX are recognized by their first four bytes. Anything else is
    TEXT when it decodes as UTF-8 and has no NUL bytes, and BINARY
    otherwise. An empty buffer is (empty) TEXT.
    """
    head = bytes(data[:4])

    if head == PDF_MAGIC:
        return DocumentFormat.PDF
    if head == ZIP_MAGIC:
        return DocumentFormat.DOCX
    if b"\x00" in data:
        return DocumentFormat.BINARY

    try:
        bytes(data).decode("utf-8")
    except UnicodeDecodeError:
        return DocumentFormat.BINARY

    return DocumentFormat.TEXT


def is_url(value: object) -> bool:
    """True for strings that start with an http(s) scheme."""
    return isinstance(value, str) and bool(_URL_PATTERN.match(value))


def is_file_path(value: object) -> bool:
    """True for strings naming an existing regular file."""
    if not isinstance(value, str) or not value:
        return False

    try:
        return Path(value).is_file()
    except (OSError, ValueError):
        # Name too long, embedded NUL, etc. - not a path we can read
        return False
