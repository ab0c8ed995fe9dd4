#!/usr/bin/env python3
"""
Build a semantic map from an embedding matrix and write a JSON summary.

The embeddings file is a .npy array of shape (n_items, dim). An optional
text file with one fragment per line supplies the point metadata.

Usage:
    python scripts/build_layout.py embeddings.npy --out layout.json
    python scripts/build_layout.py embeddings.npy --texts fragments.txt --auto-epsilon
"""

import argparse
import json
import sys
from pathlib import Path

# Allow running from project root or scripts/ directory
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import numpy as np

from semantic_atlas.algorithms import Point, run_pipeline
from semantic_atlas.config import config, describe
from semantic_atlas.utils.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


def result_to_dict(result) -> dict:
    """Convert a PipelineResult into JSON-safe primitives."""
    return {
        "epsilon": result.epsilon,
        "cluster_count": result.cluster_count,
        "noise_count": result.noise_count,
        "points": [
            {"id": p.id, "cluster_id": p.cluster_id, "x": p.projected[0], "y": p.projected[1]}
            for p in result.points
        ],
        "clusters": {
            str(cid): {
                "x": vp.x,
                "y": vp.y,
                "radius": vp.radius,
                "label": vp.label,
                "boundary": result.boundaries.get(cid, np.zeros((0, 2))).tolist(),
            }
            for cid, vp in result.virtual_points.items()
        },
        "blobs": {str(k): v for k, v in result.blobs.items()},
        "connections": {str(k): v for k, v in result.connections.items()},
    }


def main():
    parser = argparse.ArgumentParser(description="Cluster and lay out embeddings")
    parser.add_argument("embeddings", type=Path, help="Path to a .npy embedding matrix")
    parser.add_argument("--texts", type=Path, default=None, help="One text fragment per line")
    parser.add_argument("--out", type=Path, default=None, help="Output JSON (default: stdout)")
    parser.add_argument("--epsilon", type=float, default=None, help="Override DBSCAN epsilon")
    parser.add_argument("--min-points", type=int, default=None, help="Override DBSCAN min_points")
    parser.add_argument("--auto-epsilon", action="store_true", help="Scan epsilon automatically")
    parser.add_argument("--log-level", default=None, help="Log level (default: ATLAS_LOG_LEVEL)")
    args = parser.parse_args()

    setup_logging(args.log_level or config.log_level)

    X = np.load(args.embeddings)
    texts = [""] * X.shape[0]
    if args.texts is not None:
        lines = args.texts.read_text(encoding="utf-8").splitlines()
        if len(lines) != X.shape[0]:
            print(f"ERROR: {len(lines)} texts for {X.shape[0]} embeddings.")
            sys.exit(1)
        texts = lines

    overrides = {}
    if args.epsilon is not None:
        overrides["epsilon"] = args.epsilon
    if args.min_points is not None:
        overrides["min_points"] = args.min_points
    if args.auto_epsilon:
        overrides["auto_epsilon"] = True
    cfg = config.pipeline_config(**overrides)
    logger.info("Settings: %s", describe())

    points = [Point(id=str(i), embedding=X[i], metadata=texts[i]) for i in range(X.shape[0])]
    result = run_pipeline(points, cfg)

    payload = json.dumps(result_to_dict(result), indent=2)
    if args.out is None:
        print(payload)
    else:
        args.out.write_text(payload, encoding="utf-8")
        print(f"Wrote {result.cluster_count} clusters to {args.out}")


if __name__ == "__main__":
    main()
