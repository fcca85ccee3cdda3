"""
Document loaders - turn raw byte buffers into text records.

    PdfLoader   %PDF buffers, one record per page
    DocxLoader  ZIP-container buffers read as Word documents
    TextLoader  buffers that are already UTF-8 text

Applicability is decided by ``detect_format`` on the buffer prefix; the
actual extraction runs in a worker thread.
"""
from __future__ import annotations

import asyncio
import io
import logging
import zipfile
from typing import Any

import docx
import fitz  # pymupdf
from docx.opc.exceptions import PackageNotFoundError

from ..core.detect import DocumentFormat, detect_format
from ..core.loader import Loader
from ..core.record import ContentKind, Record
from ..core.stage import StageRun
from ..errors import ExtractionError

logger = logging.getLogger(__name__)


def _is_bytes_of(record: Record, fmt: DocumentFormat) -> bool:
    return record.kind == ContentKind.BYTES and detect_format(record.content) == fmt


# ============================================================================
# PDF
# ============================================================================

def extract_pdf(data: bytes) -> tuple[list[str], dict[str, Any]]:
    """
    Extract per-page text and document metadata from a PDF buffer.

    Returns:
        Tuple of (page texts in order, non-empty document metadata)

    Raises:
        ExtractionError: If PyMuPDF cannot open the buffer
    """
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except Exception as e:
        # FileDataError and friends, depending on the PyMuPDF version
        raise ExtractionError(f"Invalid PDF: {e}") from e

    with doc:
        # MuPDF repairs what it can; a buffer it cannot repair opens with no pages
        if doc.page_count == 0:
            raise ExtractionError("Invalid PDF: no pages")
        info = {key: value for key, value in (doc.metadata or {}).items() if value}
        pages = [page.get_text("text").strip() for page in doc]

    return pages, info


class PdfLoader(Loader):
    """Split PDF buffers into one text record per page."""

    name = "pdf"

    def test(self, record: Record) -> bool:
        return _is_bytes_of(record, DocumentFormat.PDF)

    async def process(self, record: Record, run: StageRun) -> None:
        pages, info = await asyncio.to_thread(extract_pdf, record.content)
        logger.debug(f"Extracted {len(pages)} page(s) from PDF")

        for number, text in enumerate(pages, start=1):
            await run.emit(
                record.derive(
                    content=text,
                    metadata={**info, "pageNumber": number, "pageCount": len(pages)},
                )
            )
        return None


# ============================================================================
# DOCX
# ============================================================================

_DOCX_PROPERTIES = ("author", "title", "subject", "keywords", "created", "modified")


def extract_docx(data: bytes) -> tuple[str, dict[str, Any]]:
    """
    Extract paragraph text and core properties from a DOCX buffer.

    Raises:
        ExtractionError: If the buffer is not a readable Word document
    """
    try:
        document = docx.Document(io.BytesIO(data))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
        raise ExtractionError(f"Invalid DOCX: {e}") from e

    text = "\n".join(p.text for p in document.paragraphs if p.text.strip())

    info: dict[str, Any] = {}
    props = document.core_properties
    for key in _DOCX_PROPERTIES:
        value = getattr(props, key, None)
        if not value:
            continue
        info[key] = value.isoformat() if hasattr(value, "isoformat") else value

    return text, info


class DocxLoader(Loader):
    """Extract the text of Word documents."""

    name = "docx"

    def test(self, record: Record) -> bool:
        return _is_bytes_of(record, DocumentFormat.DOCX)

    async def process(self, record: Record, run: StageRun) -> Record:
        text, info = await asyncio.to_thread(extract_docx, record.content)
        return record.derive(content=text, metadata=info)


# ============================================================================
# Plain text
# ============================================================================

class TextLoader(Loader):
    """Decode UTF-8 byte buffers (fetched or read text files) into text."""

    name = "text"

    def test(self, record: Record) -> bool:
        return _is_bytes_of(record, DocumentFormat.TEXT)

    async def process(self, record: Record, run: StageRun) -> Record:
        return record.derive(content=record.content.decode("utf-8-sig"))
