"""
Built-in loaders.

    Raw input -> url/file -> pdf/docx/text -> embedding -> store
                 (source)    (extraction)     (vectors)    (persistence)
"""
from .datastore import DataStoreLoader
from .documents import DocxLoader, PdfLoader, TextLoader, extract_docx, extract_pdf
from .embedding import EmbeddingLoader
from .registry import (
    LoaderRegistry,
    default_search_pipeline,
    default_write_pipeline,
    get_registry,
)
from .sources import FileLoader, UrlLoader

__all__ = [
    # Sources
    "UrlLoader",
    "FileLoader",
    # Documents
    "PdfLoader",
    "DocxLoader",
    "TextLoader",
    "extract_pdf",
    "extract_docx",
    # Vectors
    "EmbeddingLoader",
    "DataStoreLoader",
    # Registry
    "LoaderRegistry",
    "get_registry",
    "default_write_pipeline",
    "default_search_pipeline",
]
