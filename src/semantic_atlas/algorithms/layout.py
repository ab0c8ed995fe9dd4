"""
Layout of clusters on a 2D canvas.

Clusters are grouped into size-bounded blobs by greedy agglomeration on
centroid similarity. Blobs are placed on the canvas and clusters inside
their blob with the same spiral placement: every item starts from an ideal
spot derived from its similarity to the two most dissimilar items of its
set, then walks outward along a spiral until it no longer overlaps anything
placed before it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import math
from typing import Dict, List, Optional, Sequence, Tuple
import numpy as np

from ..utils.logging_config import get_logger
from .refinement import cluster_sizes, compute_centroids
from .types import VirtualPoint
from .validation import EmbeddingsIn, as_embedding_matrix, check_labels
from .vector_math import cosine_similarity_matrix, normalize

logger = get_logger(__name__)

Array2D = np.ndarray


@dataclass
class LayoutConfig:
    """Tunable parameters for blob formation and placement."""

    max_blob_size: int = 5
    merge_threshold: float = 0.8
    connection_threshold: float = 0.5
    radius_scale: float = 10.0
    packing_buffer: float = 0.4
    padding: float = 15.0
    spiral_step: float = 2.0
    spiral_angle_step: float = 0.5
    max_attempts: int = 500
    canvas_scale: Optional[float] = None

    def __post_init__(self):
        """Reject settings that would make placement meaningless."""
        if self.max_blob_size < 1:
            raise ValueError(f"max_blob_size must be >= 1, got {self.max_blob_size}")
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.spiral_step <= 0:
            raise ValueError(f"spiral_step must be > 0, got {self.spiral_step}")
        if self.radius_scale <= 0:
            raise ValueError(f"radius_scale must be > 0, got {self.radius_scale}")


@dataclass
class SpiralPlacement:
    """Positions found by ``spiral_place``."""

    positions: Dict[int, Tuple[float, float]] = field(default_factory=dict)
    exhausted: List[int] = field(default_factory=list)


@dataclass
class LayoutResult:
    """Output of ``compute_layout``."""

    virtual_points: Dict[int, VirtualPoint] = field(default_factory=dict)
    blobs: Dict[int, List[int]] = field(default_factory=dict)
    blob_of: Dict[int, int] = field(default_factory=dict)
    connections: Dict[int, List[int]] = field(default_factory=dict)
    exhausted: List[int] = field(default_factory=list)


# ------------------------------------------------------------------
# Blob formation
# ------------------------------------------------------------------

def form_blobs(
    cluster_ids: Sequence[int],
    similarity: Array2D,
    max_blob_size: int = 5,
    merge_threshold: float = 0.8,
) -> List[List[int]]:
    """
    Greedily merge clusters into blobs.

    Starts with one blob per cluster. Each round merges the pair of blobs
    with the highest mean pairwise centroid similarity whose combined size
    fits in ``max_blob_size``. Stops when the best eligible score does not
    exceed ``merge_threshold`` or no pair fits. Ties go to the first pair in
    (i, j) order, so results are reproducible.

    Args:
        cluster_ids: Cluster ids, index-aligned with ``similarity``
        similarity: (k, k) centroid similarity matrix
        max_blob_size: Maximum clusters per blob
        merge_threshold: Minimum (exclusive) similarity for a merge

    Returns:
        Blobs as lists of cluster ids
    """
    position = {cid: i for i, cid in enumerate(cluster_ids)}
    blobs: List[List[int]] = [[cid] for cid in cluster_ids]

    while len(blobs) > 1:
        best_pair = None
        best_score = -math.inf
        for i in range(len(blobs)):
            rows = [position[c] for c in blobs[i]]
            for j in range(i + 1, len(blobs)):
                if len(blobs[i]) + len(blobs[j]) > max_blob_size:
                    continue
                cols = [position[c] for c in blobs[j]]
                score = float(similarity[np.ix_(rows, cols)].mean())
                if score > best_score:
                    best_score = score
                    best_pair = (i, j)

        if best_pair is None or best_score <= merge_threshold:
            break
        i, j = best_pair
        logger.debug("Merging blobs %s + %s (similarity %.3f)", blobs[i], blobs[j], best_score)
        blobs[i] = blobs[i] + blobs[j]
        del blobs[j]

    return blobs


# ------------------------------------------------------------------
# Sizing
# ------------------------------------------------------------------

def cluster_radius(count: int, radius_scale: float = 10.0) -> float:
    """Placement radius that grows with the square root of the member count."""
    return radius_scale * math.sqrt(max(count, 1))


def blob_radius(radii: Sequence[float], packing_buffer: float = 0.4) -> float:
    """Radius of a circle holding the members' total area plus a packing buffer."""
    area = sum(r * r for r in radii)
    return math.sqrt((1.0 + packing_buffer) * area)


# ------------------------------------------------------------------
# Spiral placement
# ------------------------------------------------------------------

def ideal_positions(
    vectors: Array2D,
    scale: float,
    center: Tuple[float, float] = (0.0, 0.0),
) -> Array2D:
    """
    Semantic target position for each item.

    The two most mutually dissimilar items act as axes: an item's raw
    coordinates are its cosine similarities to each of them. Coordinates are
    centered on their mean and scaled so the farthest item lies ``scale``
    from ``center``.
    """
    k = vectors.shape[0]
    out = np.tile(np.asarray(center, dtype=np.float64), (k, 1))
    if k < 2:
        return out

    sims = cosine_similarity_matrix(vectors)
    masked = sims + np.eye(k) * 3.0
    a, b = np.unravel_index(int(np.argmin(masked)), masked.shape)
    raw = np.column_stack([sims[:, a], sims[:, b]])
    raw = raw - raw.mean(axis=0)

    extent = float(np.max(np.linalg.norm(raw, axis=1)))
    if extent < 1e-12:
        return out
    return out + raw * (scale / extent)


def _collides(
    x: float,
    y: float,
    radius: float,
    placed: List[Tuple[float, float, float]],
    padding: float,
) -> bool:
    for px, py, pr in placed:
        if math.hypot(x - px, y - py) < radius + pr + padding:
            return True
    return False


def spiral_place(
    keys: Sequence[int],
    vectors: Array2D,
    radii: Sequence[float],
    *,
    scale: float,
    center: Tuple[float, float] = (0.0, 0.0),
    padding: float = 15.0,
    step: float = 2.0,
    angle_step: float = 0.5,
    max_attempts: int = 500,
    obstacles: Sequence[Tuple[float, float, float]] = (),
) -> SpiralPlacement:
    """
    Place circles near their ideal positions without overlap.

    Items are handled in order of increasing distance of their ideal spot
    from ``center`` (ties by key), so core items claim their spot first.
    An item whose ideal spot collides with an already placed one walks an
    outward spiral (angle and radius both growing) from that spot. After
    ``max_attempts`` candidates the last one is accepted and the key is
    reported in ``exhausted``.

    Args:
        keys: Item identifiers
        vectors: (k, d) semantic vectors, index-aligned with ``keys``
        radii: Circle radius per item
        scale: Distance from center of the farthest ideal spot
        center: Center of the region being filled
        padding: Extra clearance required between circles
        step: Spiral radius growth per attempt
        angle_step: Spiral angle growth per attempt (radians)
        max_attempts: Candidates tried before giving up
        obstacles: Circles ``(x, y, radius)`` already on the canvas that new
            items must also clear

    Returns:
        SpiralPlacement with a position per key
    """
    result = SpiralPlacement()
    if len(keys) == 0:
        return result

    ideal = ideal_positions(np.asarray(vectors, dtype=np.float64), scale, center)
    cx, cy = center
    order = sorted(
        range(len(keys)),
        key=lambda i: (math.hypot(ideal[i, 0] - cx, ideal[i, 1] - cy), keys[i]),
    )

    placed: List[Tuple[float, float, float]] = list(obstacles)
    for i in order:
        x, y = float(ideal[i, 0]), float(ideal[i, 1])
        r = float(radii[i])
        if _collides(x, y, r, placed, padding):
            angle = 0.0
            offset = 0.0
            found = False
            for _ in range(max_attempts):
                angle += angle_step
                offset += step
                x = float(ideal[i, 0]) + offset * math.cos(angle)
                y = float(ideal[i, 1]) + offset * math.sin(angle)
                if not _collides(x, y, r, placed, padding):
                    found = True
                    break
            if not found:
                result.exhausted.append(keys[i])
        placed.append((x, y, r))
        result.positions[keys[i]] = (x, y)

    if result.exhausted:
        logger.warning(
            "Spiral search exhausted %d attempts for %d items; accepted overlapping spots",
            max_attempts, len(result.exhausted),
        )
    return result


# ------------------------------------------------------------------
# Connections
# ------------------------------------------------------------------

def compute_connections(
    cluster_ids: Sequence[int], similarity: Array2D, threshold: float = 0.5
) -> Dict[int, List[int]]:
    """Symmetric adjacency between clusters whose centroid similarity exceeds ``threshold``."""
    connections: Dict[int, List[int]] = {cid: [] for cid in cluster_ids}
    k = len(cluster_ids)
    for i in range(k):
        for j in range(i + 1, k):
            if similarity[i, j] > threshold:
                connections[cluster_ids[i]].append(cluster_ids[j])
                connections[cluster_ids[j]].append(cluster_ids[i])
    return connections


# ------------------------------------------------------------------
# Full layout
# ------------------------------------------------------------------

def compute_layout(
    embeddings: EmbeddingsIn,
    labels: np.ndarray,
    config: Optional[LayoutConfig] = None,
) -> LayoutResult:
    """
    Place every cluster on the canvas.

    Pipeline:
    1. Centroid per cluster and centroid similarity matrix
    2. Greedy blob formation
    3. Cluster radius from member count, blob radius from member area
    4. Spiral placement of blobs on the canvas, then of clusters in blobs;
       each cluster also clears the clusters of blobs placed before it
    5. Connection graph from the (looser) connection threshold

    Args:
        embeddings: Embedding matrix or list of Points
        labels: Final label array (-1 noise, >0 cluster)
        config: LayoutConfig, defaults used when None

    Returns:
        LayoutResult keyed by cluster id; blob ids are the smallest member id
    """
    cfg = config or LayoutConfig()
    X = as_embedding_matrix(embeddings, stage="layout")
    labels = check_labels(labels, X.shape[0], stage="layout")

    centroids = compute_centroids(X, labels)
    result = LayoutResult()
    if not centroids:
        return result

    cluster_ids = list(centroids.keys())
    C = np.stack([normalize(centroids[c]) for c in cluster_ids], axis=0)
    similarity = cosine_similarity_matrix(C)
    position = {cid: i for i, cid in enumerate(cluster_ids)}

    blobs = form_blobs(cluster_ids, similarity, cfg.max_blob_size, cfg.merge_threshold)
    blobs = [sorted(b) for b in blobs]

    sizes = cluster_sizes(labels)
    radii = {cid: cluster_radius(sizes[cid], cfg.radius_scale) for cid in cluster_ids}
    blob_ids = [b[0] for b in blobs]
    blob_radii = [blob_radius([radii[c] for c in b], cfg.packing_buffer) for b in blobs]
    blob_vectors = np.stack(
        [normalize(C[[position[c] for c in b]].mean(axis=0)) for b in blobs], axis=0
    )

    canvas_scale = cfg.canvas_scale
    if canvas_scale is None:
        canvas_scale = math.sqrt(sum(r * r for r in blob_radii))

    blob_placement = spiral_place(
        blob_ids, blob_vectors, blob_radii,
        scale=canvas_scale,
        padding=cfg.padding,
        step=cfg.spiral_step,
        angle_step=cfg.spiral_angle_step,
        max_attempts=cfg.max_attempts,
    )
    result.exhausted.extend(blob_placement.exhausted)

    # Clusters of every blob must also clear clusters of blobs placed earlier
    placed: List[Tuple[float, float, float]] = []
    for blob, bid, brad in zip(blobs, blob_ids, blob_radii):
        result.blobs[bid] = list(blob)
        for cid in blob:
            result.blob_of[cid] = bid

        inner_scale = max(brad - max(radii[c] for c in blob), 0.0)
        placement = spiral_place(
            blob,
            C[[position[c] for c in blob]],
            [radii[c] for c in blob],
            scale=inner_scale,
            center=blob_placement.positions[bid],
            padding=cfg.padding,
            step=cfg.spiral_step,
            angle_step=cfg.spiral_angle_step,
            max_attempts=cfg.max_attempts,
            obstacles=placed,
        )
        result.exhausted.extend(placement.exhausted)
        for cid in blob:
            x, y = placement.positions[cid]
            placed.append((x, y, radii[cid]))
            result.virtual_points[cid] = VirtualPoint(
                cluster_id=cid, x=x, y=y, radius=radii[cid]
            )

    result.connections = compute_connections(cluster_ids, similarity, cfg.connection_threshold)
    logger.info(
        "Laid out %d clusters in %d blobs (%d connections)",
        len(cluster_ids), len(blobs),
        sum(len(v) for v in result.connections.values()) // 2,
    )
    return result


# ------------------------------------------------------------------
# Member placement
# ------------------------------------------------------------------

def map_members_to_islands(
    coords: Array2D,
    labels: np.ndarray,
    virtual_points: Dict[int, VirtualPoint],
    gravity: float = 0.9,
) -> Array2D:
    """
    Move every member point into the disc of its cluster's VirtualPoint.

    Members keep their relative arrangement from ``coords`` (typically the
    unit-square projection): they are centered on their own centroid,
    scaled so the farthest member touches the cluster radius, pulled inward
    by ``gravity`` and clamped to the disc. Noise points are spread over the
    bounding box of the placed clusters according to their ``coords``.

    Args:
        coords: (n, 2) projected coordinates
        labels: Final label array
        virtual_points: Cluster placements from ``compute_layout``
        gravity: Inward pull factor in (0, 1]

    Returns:
        (n, 2) canvas coordinates
    """
    coords = np.asarray(coords, dtype=np.float64)
    labels = np.asarray(labels)
    out = coords.copy()
    if coords.shape[0] == 0 or not virtual_points:
        return out

    for cid, vp in virtual_points.items():
        idx = np.flatnonzero(labels == cid)
        if len(idx) == 0:
            continue
        local = coords[idx] - coords[idx].mean(axis=0)
        spread = max(float(np.max(np.linalg.norm(local, axis=1))), 1e-3)
        local = local * (vp.radius / spread) * gravity
        dist = np.linalg.norm(local, axis=1)
        over = dist > vp.radius
        local[over] *= (vp.radius / dist[over])[:, None]
        out[idx] = local + np.array([vp.x, vp.y])

    noise = np.flatnonzero(labels <= 0)
    if len(noise):
        xs = [vp.x for vp in virtual_points.values()]
        ys = [vp.y for vp in virtual_points.values()]
        pad = max(vp.radius for vp in virtual_points.values())
        lo = np.array([min(xs) - pad, min(ys) - pad])
        hi = np.array([max(xs) + pad, max(ys) + pad])
        out[noise] = lo + coords[noise] * (hi - lo)
    return out
