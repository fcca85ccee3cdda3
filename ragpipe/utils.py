"""
Utility functions for ragpipe.
Provides helpers for batching and word-window chunking.
"""
from __future__ import annotations

import logging
from typing import Generator, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


# ============================================================================
# Batching Utilities
# ============================================================================

def batch_iter(
    items: list[T],
    batch_size: int,
) -> Generator[list[T], None, None]:
    """
    Iterate over items in batches.

    Args:
        items: List of items to batch
        batch_size: Maximum items per batch

    Yields:
        Lists of items, each up to batch_size in length

    Example:
        for batch in batch_iter(texts, batch_size=32):
            vectors = await model.embed_many(batch)
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    for i in range(0, len(items), batch_size):
        yield items[i:i + batch_size]


# ============================================================================
# Chunking Utilities
# ============================================================================

def word_windows(
    text: str,
    chunk_size: int = 200,
    overlap: int = 0,
) -> Generator[str, None, None]:
    """
    Split text into windows of at most ``chunk_size`` words.

    Consecutive windows share ``overlap`` words. Text that already fits in
    one window is yielded unchanged (stripped), keeping its original
    whitespace; longer text is re-joined with single spaces.

    Args:
        text: The text to split
        chunk_size: Maximum number of words per window
        overlap: Number of words shared by consecutive windows. Values
            >= chunk_size are clamped to chunk_size - 1.

    Yields:
        The text windows, in order
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if overlap < 0:
        raise ValueError(f"overlap cannot be negative, got {overlap}")

    words = text.split()
    if not words:
        return

    if len(words) <= chunk_size:
        yield text.strip()
        return

    if overlap >= chunk_size:
        logger.debug(f"Clamping overlap {overlap} to {chunk_size - 1}")
        overlap = chunk_size - 1

    step = chunk_size - overlap
    start = 0

    while start < len(words):
        end = min(start + chunk_size, len(words))
        yield " ".join(words[start:end])

        # The last window already reached the end of the text
        if end == len(words):
            break
        start += step
