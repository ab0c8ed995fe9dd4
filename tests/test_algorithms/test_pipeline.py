"""
Tests for the end-to-end pipeline.
"""

import asyncio
import dataclasses
import threading
import time

import numpy as np
import pytest

from semantic_atlas.algorithms.layout import LayoutConfig
from semantic_atlas.algorithms.pipeline import (
    PipelineConfig,
    PipelineResult,
    label_clusters,
    run_pipeline,
    run_pipeline_async,
)
from semantic_atlas.algorithms.types import NOISE, Point
from semantic_atlas.algorithms.validation import PipelineInputError


def _with_orphan(two_group_embeddings):
    """Two groups plus one point 0.45 rad away from the first group's axis."""
    orphan = np.zeros(8)
    orphan[0] = np.cos(0.45)
    orphan[6] = np.sin(0.45)
    return np.vstack([two_group_embeddings, orphan])


def _check_consistent(result: PipelineResult):
    """Every cluster id in the labels is laid out, bounded and blobbed."""
    ids = set(int(k) for k in np.unique(result.labels[result.labels > 0]))
    assert set(result.virtual_points) == ids
    assert set(result.boundaries) == ids
    assert set(result.connections) == ids
    assert sorted(c for members in result.blobs.values() for c in members) == sorted(ids)
    assert result.cluster_count == len(ids)
    assert result.noise_count == int(np.sum(result.labels == NOISE))
    for p, label in zip(result.points, result.labels):
        assert p.cluster_id == label


# ------------------------------------------------------------------
# run_pipeline
# ------------------------------------------------------------------


def test_run_pipeline_two_groups(two_group_embeddings):
    result = run_pipeline(two_group_embeddings)

    assert isinstance(result, PipelineResult)
    assert result.cluster_count == 2
    assert result.noise_count == 0
    np.testing.assert_array_equal(result.labels, [1] * 6 + [2] * 6)
    assert result.epsilon == pytest.approx(0.23)
    assert result.projected.shape == (12, 2)
    assert result.positions.shape == (12, 2)
    assert [p.id for p in result.points] == [str(i) for i in range(12)]
    _check_consistent(result)


def test_run_pipeline_members_inside_their_island(two_group_embeddings):
    result = run_pipeline(two_group_embeddings)
    for cid, vp in result.virtual_points.items():
        d = np.linalg.norm(result.positions[result.labels == cid] - [vp.x, vp.y], axis=1)
        assert np.all(d <= vp.radius + 1e-9)


def test_run_pipeline_no_dangling_ids(rng):
    X = rng.standard_normal((80, 6))
    cfg = PipelineConfig(epsilon=0.5, min_points=3, max_cluster_size=10, min_fragment_size=3)
    result = run_pipeline(X, cfg)
    _check_consistent(result)


def test_run_pipeline_accepts_points(two_group_points):
    result = run_pipeline(two_group_points)

    assert [p.id for p in result.points] == [p.id for p in two_group_points]
    assert [p.metadata for p in result.points] == [p.metadata for p in two_group_points]
    # Inputs are not modified
    assert all(p.cluster_id == NOISE for p in two_group_points)


def test_run_pipeline_empty_input():
    for empty in ([], np.zeros((0, 5))):
        result = run_pipeline(empty)
        assert result.cluster_count == 0
        assert result.noise_count == 0
        assert result.labels.shape == (0,)
        assert result.positions.shape == (0, 2)
        assert result.virtual_points == {}


def test_run_pipeline_malformed_input():
    with pytest.raises(PipelineInputError) as exc_info:
        run_pipeline([[1.0, 2.0], [1.0]])
    assert exc_info.value.stage == "input"


def test_run_pipeline_auto_epsilon(two_group_embeddings):
    cfg = PipelineConfig(auto_epsilon=True, epsilon_search=(0.005, 0.2, 0.005))
    result = run_pipeline(two_group_embeddings, cfg)

    assert result.epsilon == pytest.approx(0.035)
    assert result.cluster_count == 2


def test_run_pipeline_orphan_budget(two_group_embeddings):
    X = _with_orphan(two_group_embeddings)

    fixed = run_pipeline(X, PipelineConfig(epsilon=0.05, orphan_max_distance=0.25))
    assert fixed.labels[12] == 1

    scaled = run_pipeline(X, PipelineConfig(epsilon=0.05, orphan_distance_scale=1.2))
    assert scaled.labels[12] == NOISE
    assert scaled.noise_count == 1


def test_run_pipeline_result_is_immutable(two_group_embeddings):
    result = run_pipeline(two_group_embeddings)

    with pytest.raises(dataclasses.FrozenInstanceError):
        result.cluster_count = 5
    with pytest.raises(ValueError):
        result.labels[0] = 7
    with pytest.raises(ValueError):
        result.positions[0, 0] = 1.0


def test_run_pipeline_custom_layout(two_group_embeddings):
    cfg = PipelineConfig(layout=LayoutConfig(radius_scale=2.0, padding=1.0))
    result = run_pipeline(two_group_embeddings, cfg)
    for vp in result.virtual_points.values():
        assert vp.radius == pytest.approx(2.0 * np.sqrt(6))


# ------------------------------------------------------------------
# Labelling
# ------------------------------------------------------------------


def test_run_pipeline_with_labeler(two_group_points):
    calls = []

    def labeler(texts):
        calls.append(list(texts))
        if texts[0].startswith("budget"):
            return "  the BUDGET! review, meeting notes"
        return "outages"

    result = run_pipeline(two_group_points, labeler=labeler)

    assert result.labels_text == {1: "The Budget", 2: "Outages"}
    assert result.virtual_points[1].label == "The Budget"
    assert result.virtual_points[2].label == "Outages"
    assert len(calls) == 2
    assert all(len(texts) == 6 for texts in calls)


def test_label_clusters_limits_snippets(two_group_points):
    seen = []
    labels = np.array([1] * 12)
    label_clusters(two_group_points, labels, lambda t: seen.append(len(t)) or "x", max_snippets=4)
    assert seen == [4]


def test_failing_labeler_leaves_empty_label(two_group_points, caplog):
    def labeler(texts):
        raise RuntimeError("model unavailable")

    result = run_pipeline(two_group_points, labeler=labeler)

    assert result.labels_text == {1: "", 2: ""}
    assert result.cluster_count == 2
    assert "Labeling failed" in caplog.text


def test_labeler_not_called_without_text(two_group_embeddings):
    points = [Point(id=str(i), embedding=v) for i, v in enumerate(two_group_embeddings)]

    def labeler(texts):
        raise AssertionError("should not be called")

    result = run_pipeline(points, labeler=labeler)
    assert result.labels_text == {1: "", 2: ""}


# ------------------------------------------------------------------
# Async
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_run_pipeline_async_matches_sync(two_group_embeddings):
    sync_result = run_pipeline(two_group_embeddings)
    async_result = await run_pipeline_async(two_group_embeddings)

    np.testing.assert_array_equal(async_result.labels, sync_result.labels)
    np.testing.assert_allclose(async_result.positions, sync_result.positions)
    assert async_result.virtual_points == sync_result.virtual_points


@pytest.mark.asyncio
async def test_run_pipeline_async_cancel_does_not_block(two_group_points):
    """Cancelling a run hands control back while the worker is still busy."""
    started = threading.Event()
    release = threading.Event()

    def slow_labeler(texts):
        started.set()
        release.wait(timeout=10)
        return "late"

    task = asyncio.create_task(run_pipeline_async(two_group_points, labeler=slow_labeler))
    try:
        while not started.is_set():
            await asyncio.sleep(0.01)

        t0 = time.monotonic()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert time.monotonic() - t0 < 2.0
        assert not release.is_set()
    finally:
        release.set()

    # A new run can start straight away
    result = await run_pipeline_async(two_group_points)
    assert result.cluster_count == 2
