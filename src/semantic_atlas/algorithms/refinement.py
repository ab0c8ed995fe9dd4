"""
Cluster refinement: orphan adoption and size-bounded splitting.

Both passes take a label array and return a new one; the input array is
never modified, so each pass can be tested on its own.
"""

from __future__ import annotations

from typing import Dict, List, Tuple
import numpy as np

from ..utils.logging_config import get_logger
from .types import NOISE
from .validation import EmbeddingsIn, as_embedding_matrix, check_labels
from .vector_math import row_magnitudes

logger = get_logger(__name__)

Array2D = np.ndarray


def cluster_sizes(labels: np.ndarray) -> Dict[int, int]:
    """Member count per positive cluster id."""
    labels = np.asarray(labels)
    ids, counts = np.unique(labels[labels > 0], return_counts=True)
    return {int(i): int(c) for i, c in zip(ids, counts)}


def compute_centroids(X: Array2D, labels: np.ndarray) -> Dict[int, np.ndarray]:
    """
    Mean embedding per positive cluster id, ordered by id.

    Always recomputed from the labels given; callers must not reuse the
    result after membership changes.
    """
    labels = np.asarray(labels)
    centroids: Dict[int, np.ndarray] = {}
    for k in np.unique(labels[labels > 0]):
        centroids[int(k)] = X[labels == k].mean(axis=0)
    return centroids


def adoption_distance(epsilon: float, scale: float = 1.2) -> float:
    """Orphan adoption budget derived from the clustering epsilon."""
    if scale <= 0:
        raise ValueError(f"scale must be > 0, got {scale}")
    return epsilon * scale


def assign_orphans(
    embeddings: EmbeddingsIn,
    labels: np.ndarray,
    max_distance: float = 0.25,
) -> Tuple[np.ndarray, int]:
    """
    Adopt noise points into the nearest cluster centroid.

    Centroids come from the labels as given (before any adoption). A noise
    point joins the centroid with the smallest cosine distance if that
    distance is within ``max_distance``; ties go to the lowest cluster id.
    Points that already have a cluster are never reassigned.

    Args:
        embeddings: Embedding matrix or list of Points
        labels: Current label array (-1 noise, >0 cluster)
        max_distance: Largest cosine distance at which a point is adopted

    Returns:
        Tuple of (new label array, number of adopted points)
    """
    X = as_embedding_matrix(embeddings, stage="refinement")
    labels = check_labels(labels, X.shape[0], stage="refinement")
    new_labels = labels.copy()

    orphans = np.flatnonzero(labels == NOISE)
    centroids = compute_centroids(X, labels)
    if len(orphans) == 0 or not centroids:
        return new_labels, 0

    ids = np.array(list(centroids.keys()), dtype=int)
    C = np.stack([centroids[k] for k in ids], axis=0)
    c_mags = row_magnitudes(C)

    O = X[orphans]
    o_mags = row_magnitudes(O)
    denom = np.outer(o_mags, c_mags)
    safe = np.where(denom > 0.0, denom, 1.0)
    sims = np.clip(np.where(denom > 0.0, (O @ C.T) / safe, 0.0), -1.0, 1.0)
    dists = 1.0 - sims

    # argmin returns the first minimum, i.e. the lowest id on ties
    nearest = np.argmin(dists, axis=1)
    nearest_dist = dists[np.arange(len(orphans)), nearest]
    adopt = nearest_dist <= max_distance
    new_labels[orphans[adopt]] = ids[nearest[adopt]]

    n_adopted = int(adopt.sum())
    logger.info(
        "Adopted %d of %d orphans into %d clusters (max_distance=%.3f)",
        n_adopted, len(orphans), len(ids), max_distance,
    )
    return new_labels, n_adopted


def _bisect(
    X: Array2D, indices: np.ndarray, min_fragment_size: int
) -> List[np.ndarray]:
    """
    Split one fragment in two along its long axis.

    Returns ``[indices]`` unchanged when the fragment cannot be split: all
    members identical, or too few members for both halves to reach
    ``min_fragment_size``.
    """
    n = len(indices)
    first_cut = min_fragment_size - 1
    last_cut = n - min_fragment_size - 1
    if first_cut > last_cut:
        return [indices]

    vectors = X[indices]
    center = vectors.mean(axis=0)
    spread = np.linalg.norm(vectors - center, axis=1)
    farthest = vectors[int(np.argmax(spread))]
    axis = farthest - center
    if np.linalg.norm(axis) == 0.0:
        return [indices]

    projections = vectors @ axis
    order = np.argsort(projections, kind="stable")
    sorted_proj = projections[order]

    # gaps[i] lies between sorted positions i and i + 1
    gaps = np.diff(sorted_proj)[first_cut:last_cut + 1]
    cut = first_cut + int(np.argmax(gaps))
    return [indices[order[:cut + 1]], indices[order[cut + 1:]]]


def _fracture(
    X: Array2D,
    indices: np.ndarray,
    max_cluster_size: int,
    min_fragment_size: int,
) -> List[np.ndarray]:
    """Split a cluster until every fragment fits or can no longer be split."""
    done: List[np.ndarray] = []
    stack = [indices]
    while stack:
        fragment = stack.pop()
        if len(fragment) <= max_cluster_size:
            done.append(fragment)
            continue
        halves = _bisect(X, fragment, min_fragment_size)
        if len(halves) == 1:
            done.append(fragment)
            continue
        # Push the upper half first so fragments come out in axis order
        stack.append(halves[1])
        stack.append(halves[0])
    return done


def split_large_clusters(
    embeddings: EmbeddingsIn,
    labels: np.ndarray,
    max_cluster_size: int = 20,
    min_fragment_size: int = 5,
    dust_size: int = 3,
) -> np.ndarray:
    """
    Break up clusters larger than ``max_cluster_size``.

    Each oversized cluster is bisected repeatedly at the largest gap along
    its long axis (centroid to farthest member). Cuts that would leave fewer
    than ``min_fragment_size`` points on either side are not considered, so
    a fragment can stay oversized when no valid cut exists. Every fragment
    of a split cluster receives a fresh id above the current maximum;
    fragments smaller than ``dust_size`` become noise. A cluster that cannot
    be split at all keeps its id.

    Args:
        embeddings: Embedding matrix or list of Points
        labels: Current label array (-1 noise, >0 cluster)
        max_cluster_size: Size above which a cluster is split
        min_fragment_size: Smallest fragment a cut may produce
        dust_size: Fragments below this size revert to noise

    Returns:
        New label array

    Raises:
        ValueError: If max_cluster_size or min_fragment_size is < 1
    """
    if max_cluster_size < 1:
        raise ValueError(f"max_cluster_size must be >= 1, got {max_cluster_size}")
    if min_fragment_size < 1:
        raise ValueError(f"min_fragment_size must be >= 1, got {min_fragment_size}")

    X = as_embedding_matrix(embeddings, stage="refinement")
    labels = check_labels(labels, X.shape[0], stage="refinement")
    new_labels = labels.copy()
    if X.shape[0] == 0:
        return new_labels

    if min_fragment_size * 2 > max_cluster_size:
        logger.debug(
            "min_fragment_size=%d leaves little room under max_cluster_size=%d; "
            "some clusters may stay oversized",
            min_fragment_size, max_cluster_size,
        )

    next_id = int(labels.max()) + 1 if labels.max() > 0 else 1
    n_split = 0
    for cluster_id, size in cluster_sizes(labels).items():
        if size <= max_cluster_size:
            continue
        members = np.flatnonzero(labels == cluster_id)
        fragments = _fracture(X, members, max_cluster_size, min_fragment_size)
        if len(fragments) == 1:
            logger.warning(
                "Cluster %d (%d points) cannot be split (min_fragment_size=%d or no spread)",
                cluster_id, size, min_fragment_size,
            )
            continue
        n_split += 1
        for fragment in fragments:
            if len(fragment) < dust_size:
                new_labels[fragment] = NOISE
            else:
                new_labels[fragment] = next_id
                next_id += 1
        oversized = [len(f) for f in fragments if len(f) > max_cluster_size]
        if oversized:
            logger.warning(
                "Cluster %d (%d points) left with oversized fragments %s: "
                "no cut satisfies min_fragment_size=%d",
                cluster_id, size, oversized, min_fragment_size,
            )

    logger.info("Split %d oversized clusters (max size %d)", n_split, max_cluster_size)
    return new_labels
