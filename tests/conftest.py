"""
Pytest configuration and shared fixtures.

This file is automatically discovered by pytest and provides fixtures
available to all test modules.
"""

import numpy as np
import pytest

from semantic_atlas.algorithms.types import Point


def _cone(axis: int, u: int, v: int, dim: int, n: int, half_angle: float) -> np.ndarray:
    """
    ``n`` unit vectors spread evenly on a cone around basis vector ``axis``.

    With half_angle=0.15 and n=6 the pairwise cosine distances inside the
    group range from about 0.011 (neighbors) to about 0.045 (opposites).
    """
    out = np.zeros((n, dim))
    for i in range(n):
        phi = 2.0 * np.pi * i / n
        out[i, axis] = np.cos(half_angle)
        out[i, u] = np.sin(half_angle) * np.cos(phi)
        out[i, v] = np.sin(half_angle) * np.sin(phi)
    return out


@pytest.fixture
def two_group_embeddings():
    """
    12 embeddings forming two tight groups of 6.

    Intra-group cosine distances lie in (0.01, 0.05); the groups are
    orthogonal (distance 1.0).
    """
    group_a = _cone(axis=0, u=2, v=3, dim=8, n=6, half_angle=0.15)
    group_b = _cone(axis=1, u=4, v=5, dim=8, n=6, half_angle=0.15)
    return np.vstack([group_a, group_b])


@pytest.fixture
def two_group_points(two_group_embeddings):
    """Points for the two-group embeddings, with topical metadata."""
    texts = ["budget review meeting"] * 6 + ["server outage report"] * 6
    return [
        Point(id=f"p{i}", embedding=two_group_embeddings[i], metadata=texts[i])
        for i in range(len(texts))
    ]


@pytest.fixture
def line_cluster():
    """25 points evenly spaced along one axis, all labelled cluster 1."""
    n, d = 25, 6
    X = np.zeros((n, d))
    X[:, 0] = 10.0
    X[:, 1] = np.arange(n, dtype=np.float64)
    labels = np.ones(n, dtype=int)
    return X, labels


@pytest.fixture
def rng():
    return np.random.default_rng(42)
