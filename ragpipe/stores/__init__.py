"""
Vector storage for embedded records.
"""

from .sql import SQLVectorStore

__all__ = ["SQLVectorStore"]
