"""
Boundary shapes for clusters on the 2D canvas.

Convex hull by gift wrapping (Jarvis march) and Chaikin corner cutting to
round the hull into an organic outline.
"""

from __future__ import annotations

from typing import Dict, Sequence
import numpy as np

from ..utils.logging_config import get_logger

logger = get_logger(__name__)

Array2D = np.ndarray

_COLLINEAR_TOL = 1e-12


def _cross(o: np.ndarray, a: np.ndarray, b: np.ndarray) -> float:
    """Positive when o -> a -> b turns left."""
    return float((a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0]))


def convex_hull(points: Sequence[Sequence[float]]) -> Array2D:
    """
    Convex hull of planar points by gift wrapping.

    Starts from the leftmost point (lowest y on ties) and repeatedly picks
    the point with no other point to its left, preferring the farthest one
    when several are collinear. Vertices come out in clockwise order
    (y axis pointing up).

    Args:
        points: Sequence of (x, y) pairs

    Returns:
        Hull vertices of shape (k, 2). Inputs with fewer than 3 points are
        returned unchanged.
    """
    P = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    n = P.shape[0]
    if n < 3:
        return P

    start = int(np.lexsort((P[:, 1], P[:, 0]))[0])
    hull = []
    current = start
    # A hull never has more vertices than input points
    for _ in range(n + 1):
        hull.append(current)
        candidate = -1
        for i in range(n):
            if np.array_equal(P[i], P[current]):
                continue
            if candidate == -1:
                candidate = i
                continue
            turn = _cross(P[current], P[candidate], P[i])
            if turn > _COLLINEAR_TOL:
                candidate = i
            elif abs(turn) <= _COLLINEAR_TOL:
                if (np.sum((P[i] - P[current]) ** 2)
                        > np.sum((P[candidate] - P[current]) ** 2)):
                    candidate = i
        if candidate == -1:
            break
        current = candidate
        if np.array_equal(P[current], P[start]):
            break

    return P[hull]


def smooth_polygon(
    points: Sequence[Sequence[float]], iterations: int = 3, tension: float = 0.25
) -> Array2D:
    """
    Round a closed polygon by Chaikin corner cutting.

    Each iteration replaces every edge (p0, p1), including the closing edge
    from the last vertex back to the first, with the two points at
    ``tension`` and ``1 - tension`` along it, doubling the vertex count.

    Args:
        points: Polygon vertices in cyclic order
        iterations: Number of cutting passes
        tension: Interpolation fraction, in (0, 0.5)

    Returns:
        Smoothed vertices of shape (n * 2**iterations, 2); inputs with fewer
        than 3 points are returned unchanged
    """
    if not 0.0 < tension < 0.5:
        raise ValueError(f"tension must be in (0, 0.5), got {tension}")
    if iterations < 0:
        raise ValueError(f"iterations must be >= 0, got {iterations}")

    current = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    if current.shape[0] < 3:
        return current

    for _ in range(iterations):
        nxt = np.roll(current, -1, axis=0)
        q = current * (1.0 - tension) + nxt * tension
        r = current * tension + nxt * (1.0 - tension)
        current = np.empty((current.shape[0] * 2, 2))
        current[0::2] = q
        current[1::2] = r
    return current


def cluster_boundaries(
    coords: Array2D,
    labels: np.ndarray,
    iterations: int = 3,
    tension: float = 0.25,
) -> Dict[int, Array2D]:
    """
    Smoothed hull outline for every positive cluster id.

    Clusters with fewer than 3 members keep their raw member coordinates,
    since no hull can be formed.
    """
    coords = np.asarray(coords, dtype=np.float64)
    labels = np.asarray(labels)
    boundaries: Dict[int, Array2D] = {}
    for k in np.unique(labels[labels > 0]):
        members = coords[labels == k]
        hull = convex_hull(members)
        boundaries[int(k)] = smooth_polygon(hull, iterations=iterations, tension=tension)
    logger.debug("Built %d cluster boundaries", len(boundaries))
    return boundaries
