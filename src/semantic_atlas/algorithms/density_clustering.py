"""
Density-based clustering of embeddings.

DBSCAN with cosine distance as the neighbor metric, plus an explicit
epsilon search for data sets where a good radius is not known up front.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple
import numpy as np

from ..utils.logging_config import get_logger
from .types import ClusterResult, NOISE, UNVISITED
from .validation import EmbeddingsIn, as_embedding_matrix
from .vector_math import row_magnitudes

logger = get_logger(__name__)

Array2D = np.ndarray


def _region_query(
    X: Array2D, magnitudes: np.ndarray, index: int, epsilon: float
) -> List[int]:
    """Indices of all other points within ``epsilon`` cosine distance of ``index``."""
    denom = magnitudes * magnitudes[index]
    dots = X @ X[index]
    safe = np.where(denom > 0.0, denom, 1.0)
    sims = np.clip(np.where(denom > 0.0, dots / safe, 0.0), -1.0, 1.0)
    within = (1.0 - sims) <= epsilon
    within[index] = False
    return np.flatnonzero(within).tolist()


def _expand_cluster(
    X: Array2D,
    magnitudes: np.ndarray,
    labels: np.ndarray,
    seeds: List[int],
    cluster_id: int,
    epsilon: float,
    min_points: int,
) -> None:
    """Grow ``cluster_id`` breadth-first from the seed neighborhood."""
    frontier = list(seeds)
    i = 0
    while i < len(frontier):
        q = frontier[i]
        i += 1
        if labels[q] == NOISE:
            # Border point: joins the cluster but does not extend it
            labels[q] = cluster_id
        elif labels[q] == UNVISITED:
            labels[q] = cluster_id
            neighbors = _region_query(X, magnitudes, q, epsilon)
            if len(neighbors) >= min_points:
                frontier.extend(neighbors)


def dbscan_cosine(
    embeddings: EmbeddingsIn, epsilon: float, min_points: int
) -> ClusterResult:
    """
    Cluster embeddings with DBSCAN under cosine distance.

    A point whose epsilon-neighborhood (other points only) holds at least
    ``min_points`` members seeds a cluster; clusters are grown breadth-first
    and never merged afterwards.

    Args:
        embeddings: Embedding matrix (n, d), list of vectors, or list of Points
        epsilon: Neighborhood radius in cosine distance (0 = identical,
            1 = orthogonal)
        min_points: Minimum neighbor count for a core point

    Returns:
        ClusterResult with labels (-1 noise, 1..k clusters)

    Raises:
        ValueError: If epsilon < 0 or min_points < 1
        PipelineInputError: If embeddings are malformed
    """
    if epsilon < 0:
        raise ValueError(f"epsilon must be >= 0, got {epsilon}")
    if min_points < 1:
        raise ValueError(f"min_points must be >= 1, got {min_points}")

    X = as_embedding_matrix(embeddings, stage="clustering")
    n = X.shape[0]
    labels = np.full(n, UNVISITED, dtype=int)
    if n == 0:
        return ClusterResult(labels=labels, cluster_count=0, noise_count=0, epsilon=epsilon)

    magnitudes = row_magnitudes(X)
    cluster_id = 0

    for i in range(n):
        if labels[i] != UNVISITED:
            continue
        neighbors = _region_query(X, magnitudes, i, epsilon)
        if len(neighbors) < min_points:
            labels[i] = NOISE
            continue
        cluster_id += 1
        labels[i] = cluster_id
        _expand_cluster(X, magnitudes, labels, neighbors, cluster_id, epsilon, min_points)

    noise_count = int(np.sum(labels == NOISE))
    logger.debug(
        "DBSCAN eps=%.4f min_points=%d: %d clusters, %d noise of %d points",
        epsilon, min_points, cluster_id, noise_count, n,
    )
    return ClusterResult(
        labels=labels,
        cluster_count=cluster_id,
        noise_count=noise_count,
        epsilon=epsilon,
    )


@dataclass
class EpsilonSearch:
    """Outcome of an epsilon scan."""

    epsilon: float
    result: ClusterResult
    history: List[Tuple[float, int]] = field(default_factory=list)


def auto_epsilon_search(
    embeddings: EmbeddingsIn,
    min_points: int,
    *,
    start: float = 0.05,
    stop: float = 0.40,
    step: float = 0.01,
    target_clusters: Optional[int] = None,
) -> EpsilonSearch:
    """
    Scan increasing epsilon values and keep the one with the most clusters.

    Stopping rule:
    - ``target_clusters`` reached (cluster count >= target), or
    - the cluster count strictly decreases after the best count so far has
      reached at least 2 (the peak has been passed), or
    - ``stop`` is reached.

    When several epsilons tie for the maximum count the smallest one wins.

    Args:
        embeddings: Embedding matrix or list of Points
        min_points: DBSCAN min_points used for every trial
        start: First epsilon tried
        stop: Last epsilon tried (inclusive)
        step: Increment between trials
        target_clusters: Optional cluster count that ends the scan early

    Returns:
        EpsilonSearch with the chosen epsilon, its ClusterResult and the
        (epsilon, cluster_count) history of every trial

    Raises:
        ValueError: If the scan range is empty or step is not positive
    """
    if step <= 0:
        raise ValueError(f"step must be > 0, got {step}")
    if stop < start:
        raise ValueError(f"stop ({stop}) must be >= start ({start})")

    X = as_embedding_matrix(embeddings, stage="clustering")
    n_trials = int(round((stop - start) / step)) + 1

    best: Optional[ClusterResult] = None
    previous_count = -1
    history: List[Tuple[float, int]] = []

    for t in range(n_trials):
        eps = round(start + t * step, 10)
        result = dbscan_cosine(X, eps, min_points)
        count = result.cluster_count
        history.append((eps, count))

        if best is None or count > best.cluster_count:
            best = result

        if target_clusters is not None and count >= target_clusters:
            break
        if best.cluster_count >= 2 and count < previous_count:
            break
        previous_count = count

    logger.info(
        "Epsilon search picked eps=%.4f (%d clusters) after %d trials",
        best.epsilon, best.cluster_count, len(history),
    )
    return EpsilonSearch(epsilon=best.epsilon, result=best, history=history)
