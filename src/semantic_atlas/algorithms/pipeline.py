"""
Pipeline orchestration from embeddings to a finished map.

Runs clustering, refinement, projection, layout and boundary generation in
order and returns a single immutable snapshot. Nothing is published until
every stage has finished, so callers never see a half-updated map.
"""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union
import numpy as np

from ..utils.logging_config import get_logger
from ..utils.text_utils import clean_texts, sanitize_label
from .density_clustering import auto_epsilon_search, dbscan_cosine
from .dimensionality_reduction import normalize_to_unit_square, pca_power_project
from .geometry import cluster_boundaries
from .layout import LayoutConfig, compute_layout, map_members_to_islands
from .refinement import adoption_distance, assign_orphans, split_large_clusters
from .types import Point, VirtualPoint
from .validation import EmbeddingsIn, as_embedding_matrix

logger = get_logger(__name__)

Array2D = np.ndarray
Labeler = Callable[[List[str]], str]


@dataclass
class PipelineConfig:
    """Configuration for one pipeline run."""

    epsilon: float = 0.23
    min_points: int = 3
    auto_epsilon: bool = False
    epsilon_search: Tuple[float, float, float] = (0.05, 0.40, 0.01)  # start, stop, step
    target_clusters: Optional[int] = None
    orphan_max_distance: float = 0.25
    orphan_distance_scale: Optional[float] = None  # budget = epsilon * scale when set
    max_cluster_size: int = 20
    min_fragment_size: int = 5
    dust_size: int = 3
    pca_iterations: int = 20
    pca_seed: int = 42
    smoothing_iterations: int = 3
    smoothing_tension: float = 0.25
    max_label_snippets: int = 10
    layout: LayoutConfig = field(default_factory=LayoutConfig)


@dataclass(frozen=True)
class PipelineResult:
    """Complete, immutable output of one pipeline run."""

    points: Tuple[Point, ...]
    labels: np.ndarray
    cluster_count: int
    noise_count: int
    epsilon: float
    projected: Array2D
    positions: Array2D
    virtual_points: Dict[int, VirtualPoint]
    blobs: Dict[int, List[int]]
    connections: Dict[int, List[int]]
    boundaries: Dict[int, Array2D]
    labels_text: Dict[int, str] = field(default_factory=dict)


def _as_points(data: Union[Sequence[Point], EmbeddingsIn]) -> Tuple[List[Point], Array2D]:
    """Accept Points or bare embeddings; bare embeddings get index ids."""
    if isinstance(data, np.ndarray):
        X = as_embedding_matrix(data, stage="input")
        return [Point(id=str(i), embedding=X[i]) for i in range(X.shape[0])], X
    items = list(data)
    X = as_embedding_matrix(items, stage="input")
    if items and isinstance(items[0], Point):
        return items, X
    return [Point(id=str(i), embedding=X[i]) for i in range(X.shape[0])], X


def _empty_result(points: List[Point], epsilon: float) -> PipelineResult:
    return PipelineResult(
        points=tuple(points),
        labels=np.zeros(0, dtype=int),
        cluster_count=0,
        noise_count=0,
        epsilon=epsilon,
        projected=np.zeros((0, 2)),
        positions=np.zeros((0, 2)),
        virtual_points={},
        blobs={},
        connections={},
        boundaries={},
    )


def label_clusters(
    points: Sequence[Point],
    labels: np.ndarray,
    labeler: Labeler,
    max_snippets: int = 10,
) -> Dict[int, str]:
    """
    Ask ``labeler`` for a short name per cluster.

    The labeler receives up to ``max_snippets`` cleaned member texts and
    returns free text, which is sanitized. A labeler failure is logged and
    leaves that cluster with an empty label.
    """
    names: Dict[int, str] = {}
    for k in np.unique(labels[labels > 0]):
        k = int(k)
        texts = clean_texts(points[i].metadata for i in np.flatnonzero(labels == k))
        if not texts:
            names[k] = ""
            continue
        try:
            names[k] = sanitize_label(labeler(texts[:max_snippets]))
        except Exception as e:
            logger.warning("Labeling failed for cluster %d: %s", k, e)
            names[k] = ""
    return names


def run_pipeline(
    data: Union[Sequence[Point], EmbeddingsIn],
    cfg: Optional[PipelineConfig] = None,
    *,
    labeler: Optional[Labeler] = None,
) -> PipelineResult:
    """
    Build a map from embeddings.

    Pipeline:
    1. DBSCAN (fixed epsilon, or an epsilon scan when ``cfg.auto_epsilon``)
    2. Orphan adoption within the distance budget
    3. Splitting of oversized clusters
    4. Power-iteration PCA to 2D, normalized to the unit square
    5. Blob formation and spiral placement of clusters
    6. Member points mapped into their cluster discs
    7. Smoothed hull per cluster
    8. Optional labelling via ``labeler``

    Args:
        data: Points, an (n, d) embedding matrix or a list of vectors
        cfg: PipelineConfig; defaults used when None
        labeler: Optional ``texts -> label`` callable, run once per cluster

    Returns:
        PipelineResult snapshot

    Raises:
        PipelineInputError: If the embeddings are malformed
        ValueError: If a parameter is out of range
    """
    cfg = cfg or PipelineConfig()
    points, X = _as_points(data)
    n = X.shape[0]
    if n == 0:
        logger.info("Pipeline called with no points; returning empty result")
        return _empty_result(points, cfg.epsilon)

    # 1. Clustering
    if cfg.auto_epsilon:
        start, stop, step = cfg.epsilon_search
        search = auto_epsilon_search(
            X, cfg.min_points, start=start, stop=stop, step=step,
            target_clusters=cfg.target_clusters,
        )
        clustered = search.result
    else:
        clustered = dbscan_cosine(X, cfg.epsilon, cfg.min_points)
    epsilon = clustered.epsilon
    logger.info(
        "Clustering: %d clusters, %d noise (eps=%.3f)",
        clustered.cluster_count, clustered.noise_count, epsilon,
    )

    # 2-3. Refinement
    budget = cfg.orphan_max_distance
    if cfg.orphan_distance_scale is not None:
        budget = adoption_distance(epsilon, cfg.orphan_distance_scale)
    labels, _ = assign_orphans(X, clustered.labels, max_distance=budget)
    labels = split_large_clusters(
        X, labels,
        max_cluster_size=cfg.max_cluster_size,
        min_fragment_size=cfg.min_fragment_size,
        dust_size=cfg.dust_size,
    )

    # 4. Projection
    Z, _ = pca_power_project(X, n_iter=cfg.pca_iterations, seed=cfg.pca_seed)
    projected = normalize_to_unit_square(Z)

    # 5-6. Layout
    layout = compute_layout(X, labels, cfg.layout)
    positions = map_members_to_islands(projected, labels, layout.virtual_points)

    # 7. Boundaries
    boundaries = cluster_boundaries(
        positions, labels,
        iterations=cfg.smoothing_iterations,
        tension=cfg.smoothing_tension,
    )

    # 8. Labels
    labels_text: Dict[int, str] = {}
    if labeler is not None:
        labels_text = label_clusters(points, labels, labeler, cfg.max_label_snippets)
    virtual_points = {
        cid: VirtualPoint(vp.cluster_id, vp.x, vp.y, vp.radius, labels_text.get(cid, vp.label))
        for cid, vp in layout.virtual_points.items()
    }

    updated = tuple(
        p.with_cluster(labels[i]).with_projection(*positions[i])
        for i, p in enumerate(points)
    )
    labels.setflags(write=False)
    positions.setflags(write=False)
    projected.setflags(write=False)

    return PipelineResult(
        points=updated,
        labels=labels,
        cluster_count=len(virtual_points),
        noise_count=int(np.sum(labels == -1)),
        epsilon=epsilon,
        projected=projected,
        positions=positions,
        virtual_points=virtual_points,
        blobs=layout.blobs,
        connections=layout.connections,
        boundaries=boundaries,
        labels_text=labels_text,
    )


async def run_pipeline_async(
    data: Union[Sequence[Point], EmbeddingsIn],
    cfg: Optional[PipelineConfig] = None,
    *,
    labeler: Optional[Labeler] = None,
) -> PipelineResult:
    """
    Run ``run_pipeline`` on a worker thread.

    The event loop stays responsive while the CPU-bound stages run; the
    finished snapshot is handed back in one piece. Cancelling the awaiting
    task returns control at once; the abandoned run finishes on its thread
    and its result is discarded.
    """
    loop = asyncio.get_running_loop()
    executor = ThreadPoolExecutor(max_workers=1)
    try:
        return await loop.run_in_executor(
            executor, lambda: run_pipeline(data, cfg, labeler=labeler)
        )
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
