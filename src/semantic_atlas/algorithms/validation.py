"""
Input validation for the pipeline stages.

Malformed input fails fast with a ``PipelineInputError`` naming the stage.
Degenerate but valid input (zero points) passes through as an empty matrix.
"""

from __future__ import annotations

from typing import Any, Sequence, Union
import numpy as np

from .types import Point

EmbeddingsIn = Union[np.ndarray, Sequence[Any]]


class PipelineInputError(ValueError):
    """Raised when a stage receives input it cannot process."""

    def __init__(self, stage: str, message: str):
        self.stage = stage
        super().__init__(f"[{stage}] {message}")


def as_embedding_matrix(data: EmbeddingsIn, stage: str = "input") -> np.ndarray:
    """
    Coerce embeddings into a float64 matrix of shape (n_points, dim).

    Accepts:
    - np.ndarray of shape (n, d)
    - list of vectors (lists or 1-D arrays) of equal length
    - list of ``Point`` objects (their embeddings are used)

    Args:
        data: Embeddings in one of the supported forms
        stage: Stage name used in error messages

    Returns:
        Array of shape (n, d); shape (0, 0) for empty input

    Raises:
        PipelineInputError: On zero-length, ragged, non-2D or non-finite input
    """
    if isinstance(data, np.ndarray):
        if data.size == 0 and data.ndim <= 2 and data.shape[0] == 0:
            return np.zeros((0, 0), dtype=np.float64)
        X = data.astype(np.float64, copy=False)
    else:
        rows = list(data)
        if not rows:
            return np.zeros((0, 0), dtype=np.float64)
        vectors = [r.embedding if isinstance(r, Point) else r for r in rows]
        expected = None
        converted = []
        for i, v in enumerate(vectors):
            a = np.asarray(v, dtype=np.float64)
            if a.ndim != 1:
                raise PipelineInputError(
                    stage, f"embedding {i} must be 1-D, got shape {a.shape}"
                )
            if expected is None:
                expected = a.shape[0]
            elif a.shape[0] != expected:
                raise PipelineInputError(
                    stage,
                    f"embeddings have inconsistent dimensionality: "
                    f"embedding {i} has {a.shape[0]}, expected {expected}",
                )
            converted.append(a)
        X = np.stack(converted, axis=0)

    if X.ndim != 2:
        raise PipelineInputError(stage, f"expected a 2-D embedding matrix, got shape {X.shape}")
    if X.shape[1] == 0:
        raise PipelineInputError(stage, "embeddings must not be zero-length")
    if not np.all(np.isfinite(X)):
        raise PipelineInputError(stage, "embeddings contain NaN or infinite values")
    return X


def check_labels(labels: np.ndarray, n_points: int, stage: str) -> np.ndarray:
    """Validate a label array against the point count and return it as int."""
    labels = np.asarray(labels)
    if labels.shape != (n_points,):
        raise PipelineInputError(
            stage, f"label array has shape {labels.shape}, expected ({n_points},)"
        )
    if n_points and np.any(labels == 0):
        raise PipelineInputError(stage, "label array contains the unvisited sentinel 0")
    return labels.astype(int, copy=False)
