"""
Algorithm Core Library - clustering and spatial layout of embeddings.

This module provides the numeric core of Semantic Atlas with numpy as its
only dependency, separate from any UI or storage layer. Designed for reuse
and testing.
"""

from .types import Point, ClusterResult, VirtualPoint, NOISE
from .validation import PipelineInputError, as_embedding_matrix
from .vector_math import (
    cosine_distance,
    cosine_similarity,
    cosine_similarity_matrix,
    centroid,
    blend,
)
from .density_clustering import dbscan_cosine, auto_epsilon_search, EpsilonSearch
from .refinement import (
    assign_orphans,
    split_large_clusters,
    compute_centroids,
    cluster_sizes,
    adoption_distance,
)
from .dimensionality_reduction import (
    pca_power_project,
    normalize_to_unit_square,
    project_points,
)
from .layout import (
    LayoutConfig,
    LayoutResult,
    compute_layout,
    form_blobs,
    spiral_place,
    compute_connections,
    map_members_to_islands,
)
from .geometry import convex_hull, smooth_polygon, cluster_boundaries
from .pipeline import PipelineConfig, PipelineResult, run_pipeline, run_pipeline_async

__all__ = [
    # Types
    "Point",
    "ClusterResult",
    "VirtualPoint",
    "NOISE",
    "PipelineInputError",
    "as_embedding_matrix",
    # Vector math
    "cosine_distance",
    "cosine_similarity",
    "cosine_similarity_matrix",
    "centroid",
    "blend",
    # Clustering
    "dbscan_cosine",
    "auto_epsilon_search",
    "EpsilonSearch",
    # Refinement
    "assign_orphans",
    "split_large_clusters",
    "compute_centroids",
    "cluster_sizes",
    "adoption_distance",
    # Dimensionality reduction
    "pca_power_project",
    "normalize_to_unit_square",
    "project_points",
    # Layout
    "LayoutConfig",
    "LayoutResult",
    "compute_layout",
    "form_blobs",
    "spiral_place",
    "compute_connections",
    "map_members_to_islands",
    # Geometry
    "convex_hull",
    "smooth_polygon",
    "cluster_boundaries",
    # Pipeline orchestration
    "PipelineConfig",
    "PipelineResult",
    "run_pipeline",
    "run_pipeline_async",
]
