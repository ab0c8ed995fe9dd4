"""
Dimensionality reduction utilities for embeddings.

Provides a two-component PCA by power iteration and unit-square
normalization for display coordinates.
"""

from __future__ import annotations

from typing import Any, Dict, List, Sequence, Tuple
import numpy as np

from ..utils.logging_config import get_logger
from .types import Point
from .validation import EmbeddingsIn, as_embedding_matrix

logger = get_logger(__name__)

Array2D = np.ndarray


def power_iteration(data: Array2D, n_iter: int = 20, seed: int = 42) -> np.ndarray:
    """
    Approximate the dominant principal axis of centered data.

    Uses ``v <- X^T (X v)`` so the covariance matrix is never formed. The
    start vector is drawn from a seeded generator, which keeps the result
    (and therefore the map orientation) identical across runs. Every
    non-zero update is rescaled to unit length, so the result does not
    depend on the magnitude of the data.

    Args:
        data: Centered data of shape (n_samples, n_features)
        n_iter: Number of iterations
        seed: Seed for the start vector

    Returns:
        Unit axis of shape (n_features,); the zero vector when the data
        has no spread along any direction
    """
    d = data.shape[1]
    rng = np.random.default_rng(seed)
    v = rng.random(d) - 0.5
    v = v / np.linalg.norm(v)

    for _ in range(n_iter):
        scores = data @ v
        nxt = data.T @ scores
        norm = np.linalg.norm(nxt)
        if norm == 0.0:
            return nxt
        v = nxt / norm
    return v


def pca_power_project(
    embeddings: EmbeddingsIn, n_iter: int = 20, seed: int = 42
) -> Tuple[Array2D, Dict[str, Any]]:
    """
    Project data to 2 dimensions using PCA via power iteration.

    Centers the data, finds the first axis, deflates the data by removing
    its projection on that axis, finds the second axis, and projects the
    centered data onto both.

    Args:
        embeddings: Input data of shape (n_samples, n_features), list of
            vectors, or list of Points
        n_iter: Power iterations per axis
        seed: Seed for the power-iteration start vector

    Returns:
        Tuple of:
        - Z: Raw (unbounded) projections of shape (n_samples, 2)
        - meta: Dictionary with:
            - mean: Mean vector used for centering
            - axes: The two principal axes, shape (2, n_features)
            - n_iter: Iterations used per axis
            - seed: Start-vector seed
    """
    if n_iter < 1:
        raise ValueError(f"n_iter must be >= 1, got {n_iter}")

    X = as_embedding_matrix(embeddings, stage="projection")
    n = X.shape[0]
    if n == 0:
        return np.zeros((0, 2)), {"mean": [], "axes": [], "n_iter": n_iter, "seed": seed}

    mu = X.mean(axis=0, keepdims=True)
    Xc = X - mu

    pc1 = power_iteration(Xc, n_iter=n_iter, seed=seed)
    residual = Xc - np.outer(Xc @ pc1, pc1)
    pc2 = power_iteration(residual, n_iter=n_iter, seed=seed)

    Z = np.column_stack([Xc @ pc1, Xc @ pc2])
    meta = {
        "mean": mu.squeeze(0).tolist(),
        "axes": np.vstack([pc1, pc2]).tolist(),
        "n_iter": n_iter,
        "seed": seed,
    }
    logger.debug("Projected %d points from %d dims to 2", n, X.shape[1])
    return Z, meta


def normalize_to_unit_square(Z: Array2D, min_range: float = 1e-9) -> Array2D:
    """
    Rescale each column of ``Z`` into [0, 1].

    A column with no spread is mapped to 0 rather than divided by zero.
    """
    Z = np.asarray(Z, dtype=np.float64)
    if Z.shape[0] == 0:
        return np.zeros((0, 2))
    lo = Z.min(axis=0)
    rng = np.maximum(Z.max(axis=0) - lo, min_range)
    return (Z - lo) / rng


def project_points(
    points: Sequence[Point], n_iter: int = 20, seed: int = 42
) -> List[Point]:
    """Return copies of ``points`` with unit-square projections attached."""
    if not points:
        return []
    Z, _ = pca_power_project(points, n_iter=n_iter, seed=seed)
    U = normalize_to_unit_square(Z)
    return [p.with_projection(x, y) for p, (x, y) in zip(points, U)]
