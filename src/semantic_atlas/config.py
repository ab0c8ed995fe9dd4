"""
Configuration management for Semantic Atlas.

Loads pipeline parameters from environment variables (typically from a .env
file). Uses python-dotenv to load .env automatically.

Usage:
    from semantic_atlas.config import config

    cfg = config.pipeline_config()
    result = run_pipeline(embeddings, cfg)
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, TypeVar

from dotenv import load_dotenv

from .algorithms.layout import LayoutConfig
from .algorithms.pipeline import PipelineConfig

# Look for .env in project root (parent of src/)
env_path = Path(__file__).parent.parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)

T = TypeVar("T")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_bool(value: str) -> bool:
    v = value.strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _env(name: str, parse: Callable[[str], T], default: T) -> T:
    """Read and parse one environment variable, naming it on failure."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return parse(raw)
    except ValueError as e:
        raise ValueError(f"Invalid value for {name}: {raw!r} ({e})") from e


@dataclass
class ClusteringSettings:
    """Clustering and refinement settings."""
    epsilon: float
    min_points: int
    auto_epsilon: bool
    orphan_max_distance: float
    max_cluster_size: int
    min_fragment_size: int


@dataclass
class LayoutSettings:
    """Blob and connection settings."""
    max_blob_size: int
    merge_threshold: float
    connection_threshold: float


class Config:
    """
    Pipeline defaults read from ``ATLAS_*`` environment variables.

    ``clustering`` holds the DBSCAN and refinement knobs, ``layout`` the blob
    and connection thresholds, ``log_level`` the level for ``setup_logging``.
    A variable that is unset or blank keeps the PipelineConfig/LayoutConfig
    default; a value that does not parse raises ValueError naming the
    variable.
    """

    def __init__(self):
        """Load configuration from environment."""
        defaults = PipelineConfig()
        layout_defaults = LayoutConfig()

        self.clustering = ClusteringSettings(
            epsilon=_env("ATLAS_EPSILON", float, defaults.epsilon),
            min_points=_env("ATLAS_MIN_POINTS", int, defaults.min_points),
            auto_epsilon=_env("ATLAS_AUTO_EPSILON", _parse_bool, defaults.auto_epsilon),
            orphan_max_distance=_env(
                "ATLAS_ORPHAN_MAX_DISTANCE", float, defaults.orphan_max_distance
            ),
            max_cluster_size=_env("ATLAS_MAX_CLUSTER_SIZE", int, defaults.max_cluster_size),
            min_fragment_size=_env("ATLAS_MIN_FRAGMENT_SIZE", int, defaults.min_fragment_size),
        )
        self.layout = LayoutSettings(
            max_blob_size=_env("ATLAS_MAX_BLOB_SIZE", int, layout_defaults.max_blob_size),
            merge_threshold=_env(
                "ATLAS_MERGE_THRESHOLD", float, layout_defaults.merge_threshold
            ),
            connection_threshold=_env(
                "ATLAS_CONNECTION_THRESHOLD", float, layout_defaults.connection_threshold
            ),
        )
        self.log_level: str = os.getenv("ATLAS_LOG_LEVEL", "INFO")

    def pipeline_config(self, **overrides) -> PipelineConfig:
        """
        Build a PipelineConfig from the loaded settings.

        Args:
            **overrides: PipelineConfig fields that take precedence over the
                environment

        Returns:
            PipelineConfig ready for ``run_pipeline``
        """
        layout = LayoutConfig(
            max_blob_size=self.layout.max_blob_size,
            merge_threshold=self.layout.merge_threshold,
            connection_threshold=self.layout.connection_threshold,
        )
        fields = dict(
            epsilon=self.clustering.epsilon,
            min_points=self.clustering.min_points,
            auto_epsilon=self.clustering.auto_epsilon,
            orphan_max_distance=self.clustering.orphan_max_distance,
            max_cluster_size=self.clustering.max_cluster_size,
            min_fragment_size=self.clustering.min_fragment_size,
            layout=layout,
        )
        fields.update(overrides)
        return PipelineConfig(**fields)


# Global config instance
config = Config()


def reload_config() -> Config:
    """Re-read the environment and replace the global config instance."""
    global config
    config = Config()
    return config


def describe(cfg: Optional[Config] = None) -> str:
    """One-line summary of the active settings, for logs."""
    cfg = cfg or config
    c, lay = cfg.clustering, cfg.layout
    return (
        f"eps={c.epsilon} min_points={c.min_points} auto_eps={c.auto_epsilon} "
        f"orphan_dist={c.orphan_max_distance} max_cluster={c.max_cluster_size} "
        f"min_fragment={c.min_fragment_size} max_blob={lay.max_blob_size} "
        f"merge={lay.merge_threshold} connect={lay.connection_threshold}"
    )
