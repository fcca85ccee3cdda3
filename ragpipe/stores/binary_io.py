"""
Binary encoding of vectors for storage.
Vectors are kept as contiguous little-endian float32 blobs (4 bytes per dimension).
"""
from typing import List, Optional, Sequence

import numpy as np

VECTOR_DTYPE = np.dtype("<f4")


def encode_vector(vector: Sequence[float]) -> bytes:
    """
    Encode a vector as a float32 blob.

    Raises:
        ValueError: If the vector is not one-dimensional or not finite
    """
    array = np.asarray(vector, dtype=VECTOR_DTYPE)

    if array.ndim != 1:
        raise ValueError(f"Expected 1D vector, got {array.ndim}D")
    if not np.all(np.isfinite(array)):
        raise ValueError("Vector contains NaN or infinite values")

    return np.ascontiguousarray(array).tobytes()


def decode_vector(blob: bytes, dimensions: Optional[int] = None) -> List[float]:
    """
    Decode a float32 blob back into a list of floats.

    Args:
        blob: Bytes written by ``encode_vector``
        dimensions: Expected vector length, checked when given

    Raises:
        ValueError: If the blob size doesn't match
    """
    if len(blob) % VECTOR_DTYPE.itemsize != 0:
        raise ValueError(f"Blob size {len(blob)} is not a multiple of {VECTOR_DTYPE.itemsize}")

    array = np.frombuffer(blob, dtype=VECTOR_DTYPE)

    if dimensions is not None and array.shape[0] != dimensions:
        raise ValueError(f"Expected {dimensions} dimensions, got {array.shape[0]}")

    return array.astype(np.float64).tolist()


def cosine_distances(query: Sequence[float], blobs: Sequence[bytes]) -> np.ndarray:
    """
    Cosine distance (1 - cosine similarity) between a query and stored blobs.

    Zero vectors have distance 1.0 to everything.
    """
    if not blobs:
        return np.zeros(0, dtype=np.float64)

    matrix = np.stack([np.frombuffer(blob, dtype=VECTOR_DTYPE) for blob in blobs]).astype(np.float64)
    q = np.asarray(query, dtype=np.float64)

    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
    dots = matrix @ q

    similarity = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)
    return 1.0 - similarity
