"""
Embedding helpers.

An embedding (a.k.a. descriptor) is a 1-D numpy vector produced by the face
model. Once produced it is frozen: the array is copied and marked read-only so
no caller can mutate a vector that the registry or a session still holds.
"""

from typing import Iterable, Optional, Union

import numpy as np

Embedding = np.ndarray

ArrayLike = Union[np.ndarray, Iterable[float]]


def as_embedding(values: ArrayLike, expected_dim: Optional[int] = None) -> Embedding:
    """
    Build an immutable embedding from any 1-D sequence of numbers.

    The dtype is kept as produced (float32 from the model, float64 from
    Python lists) so distances are computed at the model's native precision.

    Args:
        values: Vector values.
        expected_dim: If given, the vector length must equal it.

    Returns:
        Read-only 1-D float ndarray.

    Raises:
        ValueError: On empty, non-1-D, non-finite or wrongly sized input.
    """
    arr = np.array(values, copy=True)
    if arr.dtype.kind not in "fiu":
        raise ValueError(f"Embedding must be numeric, got dtype {arr.dtype}")
    if arr.dtype.kind != "f":
        arr = arr.astype(np.float64)
    arr = arr.ravel() if arr.ndim == 2 and 1 in arr.shape else arr

    if arr.ndim != 1 or arr.size == 0:
        raise ValueError(f"Embedding must be a non-empty 1-D vector, got shape {arr.shape}")
    if expected_dim is not None and arr.shape[0] != expected_dim:
        raise ValueError(f"Embedding length {arr.shape[0]} != expected {expected_dim}")
    if not np.all(np.isfinite(arr)):
        raise ValueError("Embedding contains NaN or infinite values")

    arr.setflags(write=False)
    return arr


def embedding_dtype_tag(embedding: Embedding) -> str:
    """Little-endian dtype string of the embedding, e.g. "<f4"."""
    return np.dtype(embedding.dtype).newbyteorder("<").str


def embedding_to_bytes(embedding: Embedding) -> bytes:
    """Serialize in little-endian byte order, keeping the native precision."""
    return np.asarray(embedding, dtype=embedding_dtype_tag(embedding)).tobytes()


def embedding_from_bytes(data: bytes, dtype: str = "<f8") -> Embedding:
    """Inverse of embedding_to_bytes; `dtype` is the tag saved alongside."""
    return as_embedding(np.frombuffer(data, dtype=dtype))
