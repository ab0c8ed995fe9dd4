"""
Tests for dimensionality reduction.
"""

import numpy as np
import pytest

from semantic_atlas.algorithms.dimensionality_reduction import (
    normalize_to_unit_square,
    pca_power_project,
    power_iteration,
    project_points,
)
from semantic_atlas.algorithms.types import Point


def test_pca_power_project_shape_and_meta(rng):
    X = rng.standard_normal((30, 8))
    Z, meta = pca_power_project(X, n_iter=20, seed=42)

    assert Z.shape == (30, 2)
    assert len(meta["mean"]) == 8
    assert np.array(meta["axes"]).shape == (2, 8)
    assert meta["n_iter"] == 20
    assert meta["seed"] == 42


def test_pca_power_project_is_deterministic(rng):
    X = rng.standard_normal((25, 6))
    Z1, _ = pca_power_project(X, seed=7)
    Z2, _ = pca_power_project(X, seed=7)
    np.testing.assert_array_equal(Z1, Z2)


def test_pca_axes_orthonormal(rng):
    X = rng.standard_normal((50, 10)) * np.linspace(5.0, 0.5, 10)
    _, meta = pca_power_project(X, n_iter=50)
    pc1, pc2 = np.array(meta["axes"])

    assert np.linalg.norm(pc1) == pytest.approx(1.0)
    assert np.linalg.norm(pc2) == pytest.approx(1.0)
    assert abs(np.dot(pc1, pc2)) < 1e-8


def test_pca_recovers_dominant_axis(rng):
    scales = np.array([0.1, 0.1, 0.1, 5.0, 0.1])
    X = rng.standard_normal((100, 5)) * scales
    _, meta = pca_power_project(X)
    pc1 = np.array(meta["axes"][0])
    assert abs(pc1[3]) > 0.99


def test_power_iteration_unit_length(rng):
    X = rng.standard_normal((20, 4))
    v = power_iteration(X - X.mean(axis=0))
    assert np.linalg.norm(v) == pytest.approx(1.0)


def test_small_scale_data_keeps_two_axes(rng):
    """Embeddings with tiny values still give two orthonormal axes."""
    scales = np.array([5.0, 3.0, 1.0, 0.5, 0.5, 0.5, 0.5, 0.5]) * 1e-5
    X = rng.standard_normal((40, 8)) * scales
    Z, meta = pca_power_project(X)
    pc1, pc2 = np.array(meta["axes"])

    assert np.linalg.norm(pc1) == pytest.approx(1.0)
    assert np.linalg.norm(pc2) == pytest.approx(1.0)
    assert abs(np.dot(pc1, pc2)) < 1e-8
    assert abs(np.corrcoef(Z[:, 0], Z[:, 1])[0, 1]) < 0.5


def test_pca_is_scale_invariant(rng):
    X = rng.standard_normal((30, 6)) * np.linspace(4.0, 0.5, 6)
    _, meta_big = pca_power_project(X)
    _, meta_small = pca_power_project(X * 1e-6)
    np.testing.assert_allclose(meta_small["axes"], meta_big["axes"], atol=1e-8)


def test_identical_points_project_to_origin():
    # Exactly representable values keep the centered data exactly zero
    X = np.tile([0.5, -0.25, 1.0], (6, 1))
    Z, meta = pca_power_project(X)
    np.testing.assert_array_equal(Z, np.zeros((6, 2)))
    np.testing.assert_array_equal(meta["axes"], np.zeros((2, 3)))
    np.testing.assert_array_equal(normalize_to_unit_square(Z), np.zeros((6, 2)))


def test_empty_input():
    Z, meta = pca_power_project([])
    assert Z.shape == (0, 2)
    assert meta["axes"] == []
    assert normalize_to_unit_square(np.zeros((0, 2))).shape == (0, 2)


def test_invalid_iterations(rng):
    with pytest.raises(ValueError, match="n_iter"):
        pca_power_project(rng.standard_normal((5, 3)), n_iter=0)


def test_normalize_to_unit_square(rng):
    Z = rng.standard_normal((40, 2)) * 10.0 + 3.0
    U = normalize_to_unit_square(Z)

    np.testing.assert_allclose(U.min(axis=0), [0.0, 0.0])
    np.testing.assert_allclose(U.max(axis=0), [1.0, 1.0])


def test_normalize_flat_column_maps_to_zero():
    Z = np.array([[1.0, 5.0], [2.0, 5.0], [3.0, 5.0]])
    U = normalize_to_unit_square(Z)
    np.testing.assert_allclose(U[:, 0], [0.0, 0.5, 1.0])
    np.testing.assert_allclose(U[:, 1], [0.0, 0.0, 0.0])


def test_project_points(rng):
    X = rng.standard_normal((10, 4))
    points = [Point(id=f"p{i}", embedding=X[i]) for i in range(10)]
    projected = project_points(points)

    assert [p.id for p in projected] == [p.id for p in points]
    coords = np.array([p.projected for p in projected])
    assert coords.min() >= 0.0
    assert coords.max() <= 1.0
    # Originals are untouched
    assert all(p.projected == (0.0, 0.0) for p in points)
    assert project_points([]) == []
