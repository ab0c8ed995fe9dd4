"""
Data types shared across the clustering and layout stages.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Tuple
import numpy as np

NOISE = -1
UNVISITED = 0


@dataclass(frozen=True)
class Point:
    """
    One text fragment and its embedding.

    Only ``projected`` and ``cluster_id`` are derived by the pipeline; stages
    return updated copies (see ``with_cluster`` / ``with_projection``) instead
    of mutating a point in place.

    Attributes:
        id: Opaque identifier supplied by the caller
        embedding: Fixed-length embedding vector
        projected: 2D coordinate written by the projector, then the layout
        cluster_id: -1 for noise, >0 for a cluster
        metadata: Free text used for labelling/display only
    """

    id: str
    embedding: np.ndarray = field(compare=False, repr=False)
    projected: Tuple[float, float] = (0.0, 0.0)
    cluster_id: int = NOISE
    metadata: str = ""

    def with_cluster(self, cluster_id: int) -> "Point":
        return replace(self, cluster_id=int(cluster_id))

    def with_projection(self, x: float, y: float) -> "Point":
        return replace(self, projected=(float(x), float(y)))


@dataclass
class ClusterResult:
    """Output of a density clustering run."""

    labels: np.ndarray
    cluster_count: int
    noise_count: int
    epsilon: float = 0.0


@dataclass
class VirtualPoint:
    """Placement of one cluster on the canvas."""

    cluster_id: int
    x: float
    y: float
    radius: float
    label: str = ""
