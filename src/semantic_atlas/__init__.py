"""
Semantic Atlas - Core Package

Turns a set of text-fragment embeddings into a navigable 2D map grouped by
semantic similarity.

This package provides:
- Density clustering and cluster refinement
- Power-iteration PCA projection
- Blob/spiral layout of clusters and smoothed boundary shapes
"""

__version__ = "0.1.0"

from .algorithms import (
    Point,
    VirtualPoint,
    PipelineConfig,
    PipelineResult,
    run_pipeline,
    run_pipeline_async,
)

from . import algorithms
from . import utils

__all__ = [
    "Point",
    "VirtualPoint",
    "PipelineConfig",
    "PipelineResult",
    "run_pipeline",
    "run_pipeline_async",
    "algorithms",
    "utils",
]
