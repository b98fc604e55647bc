"""Vector helpers: norms, cosine similarity and float32 blob packing."""

from typing import Optional, Sequence, Union

import numpy as np

Vector = Union[Sequence[float], np.ndarray]


def as_vector(vector: Vector) -> np.ndarray:
    """Return *vector* as a 1-D ``float32`` array."""
    return np.asarray(vector, dtype=np.float32).reshape(-1)


def norm(vector: Vector) -> float:
    """Euclidean norm of *vector*."""
    return float(np.linalg.norm(as_vector(vector)))


def cosine_similarity(
    a: Vector,
    b: Vector,
    a_norm: Optional[float] = None,
    b_norm: Optional[float] = None,
) -> float:
    """Cosine similarity ``dot(a, b) / (|a| * |b|)``.

    Precomputed norms are used when given. A zero norm on either side yields
    0.0 instead of dividing by zero.
    """
    a = as_vector(a)
    b = as_vector(b)
    if a_norm is None:
        a_norm = float(np.linalg.norm(a))
    if b_norm is None:
        b_norm = float(np.linalg.norm(b))
    if a_norm == 0.0 or b_norm == 0.0:
        return 0.0
    return float(np.dot(a, b)) / (a_norm * b_norm)


def pack_float32(vector: Vector) -> bytes:
    """Pack *vector* into a contiguous little-endian ``float32`` blob."""
    return np.ascontiguousarray(as_vector(vector), dtype="<f4").tobytes()


def unpack_float32(blob: bytes) -> list[float]:
    """Inverse of :func:`pack_float32`."""
    return np.frombuffer(blob, dtype="<f4").tolist()
