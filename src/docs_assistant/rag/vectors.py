"""Vector math and serialization for the linear-scan backend.

Vectors are stored as little-endian float32 blobs. Similarity is computed in
float64 so that scores are reproducible across platforms.
"""

from typing import List, Sequence, TypeVar

import numpy as np

# Fixed wire format of the SQLite blob column
BLOB_DTYPE = np.dtype('<f4')

T = TypeVar('T')


def as_vector(values) -> np.ndarray:
    """Coerce a sequence of numbers to a 1-D float32 array."""
    return np.asarray(values, dtype=np.float32).reshape(-1)


def vector_to_blob(vector) -> bytes:
    """Serialize a vector as fixed-width little-endian float32 values."""
    return np.asarray(vector, dtype=BLOB_DTYPE).reshape(-1).tobytes()


def blob_to_vector(blob: bytes) -> np.ndarray:
    """Inverse of vector_to_blob.

    A blob whose length is not a multiple of 4 bytes is corrupt and decodes
    to an empty vector, which scores 0 against everything.
    """
    if not blob or len(blob) % BLOB_DTYPE.itemsize != 0:
        return np.zeros(0, dtype=np.float32)
    return np.frombuffer(blob, dtype=BLOB_DTYPE).astype(np.float32)


def cosine_similarity(a, b) -> float:
    """dot(a, b) / (|a| * |b|), defined as 0.0 when either norm is 0.

    Vectors of different lengths also score 0.0.
    """
    a = np.asarray(a, dtype=np.float64).reshape(-1)
    b = np.asarray(b, dtype=np.float64).reshape(-1)
    if a.shape != b.shape or a.size == 0:
        return 0.0

    norm_a = np.sqrt(np.dot(a, a))
    norm_b = np.sqrt(np.dot(b, b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(a, b) / (norm_a * norm_b))


def top_k(items: Sequence[T], scores: Sequence[float], k: int) -> List[T]:
    """Select the k highest-scoring items by repeated selection.

    Ties keep encounter order: among equal scores the earlier item wins.
    k <= 0 returns an empty list; fewer than k items returns all of them,
    still ordered by score.
    """
    if k <= 0:
        return []

    remaining = list(zip(items, scores))
    selected: List[T] = []
    while remaining and len(selected) < k:
        best = 0
        for index in range(1, len(remaining)):
            if remaining[index][1] > remaining[best][1]:
                best = index
        selected.append(remaining.pop(best)[0])
    return selected
