"""
Vector math helpers for embeddings.

Pure functions over fixed-length real vectors. Cosine values are clamped to
[-1, 1] so distances stay inside [0, 2] despite floating point error.
"""

from __future__ import annotations

from typing import Optional, Sequence
import numpy as np

ZERO_SIMILARITY = 0.0
ZERO_DISTANCE = 1.0


def dot_product(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.dot(a, b))


def magnitude(v: np.ndarray) -> float:
    return float(np.linalg.norm(v))


def row_magnitudes(X: np.ndarray) -> np.ndarray:
    """L2 norm of every row of ``X``."""
    return np.linalg.norm(X, axis=1)


def normalize(v: np.ndarray) -> np.ndarray:
    """Unit-length copy of ``v``; a zero vector is returned unchanged."""
    mag = magnitude(v)
    if mag == 0.0:
        return np.asarray(v, dtype=np.float64)
    return np.asarray(v, dtype=np.float64) / mag


def cosine_similarity(
    a: np.ndarray,
    b: np.ndarray,
    mag_a: Optional[float] = None,
    mag_b: Optional[float] = None,
) -> float:
    """
    Cosine similarity in [-1, 1].

    Magnitudes may be passed in when they are already known. A zero vector
    has similarity 0.0 to everything.
    """
    if mag_a is None:
        mag_a = magnitude(a)
    if mag_b is None:
        mag_b = magnitude(b)
    if mag_a == 0.0 or mag_b == 0.0:
        return ZERO_SIMILARITY
    sim = float(np.dot(a, b)) / (mag_a * mag_b)
    return min(1.0, max(-1.0, sim))


def cosine_distance(
    a: np.ndarray,
    b: np.ndarray,
    mag_a: Optional[float] = None,
    mag_b: Optional[float] = None,
) -> float:
    """
    Cosine distance (1 - similarity).

    Returns 0.0 if identical, 1.0 if orthogonal, 2.0 if opposite. A zero
    vector is treated as orthogonal to everything.
    """
    if mag_a is None:
        mag_a = magnitude(a)
    if mag_b is None:
        mag_b = magnitude(b)
    if mag_a == 0.0 or mag_b == 0.0:
        return ZERO_DISTANCE
    return 1.0 - cosine_similarity(a, b, mag_a, mag_b)


def cosine_similarity_matrix(
    X: np.ndarray, Y: Optional[np.ndarray] = None
) -> np.ndarray:
    """
    Pairwise cosine similarities between rows of ``X`` and rows of ``Y``.

    Rows with zero magnitude get similarity 0.0 against everything,
    including themselves.
    """
    if Y is None:
        Y = X
    mx = row_magnitudes(X)
    my = row_magnitudes(Y)
    denom = np.outer(mx, my)
    dots = X @ Y.T
    safe = np.where(denom > 0.0, denom, 1.0)
    sims = np.where(denom > 0.0, dots / safe, 0.0)
    return np.clip(sims, -1.0, 1.0)


def centroid(vectors: Sequence[np.ndarray]) -> np.ndarray:
    """Mean vector of a non-empty collection."""
    arr = np.asarray(vectors, dtype=np.float64)
    if arr.ndim != 2 or arr.shape[0] == 0:
        raise ValueError("centroid requires a non-empty collection of vectors")
    return arr.mean(axis=0)


def blend(child: np.ndarray, parent: np.ndarray, child_weight: float = 0.8) -> np.ndarray:
    """
    Mix a child vector with its parent's context.

    Vectors of different shapes cannot be blended; the child is returned
    unchanged in that case.
    """
    child = np.asarray(child, dtype=np.float64)
    parent = np.asarray(parent, dtype=np.float64)
    if child.shape != parent.shape:
        return child
    return child * child_weight + parent * (1.0 - child_weight)


def euclidean_distance(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.linalg.norm(np.asarray(a) - np.asarray(b)))
