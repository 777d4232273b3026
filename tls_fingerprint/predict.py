#!/usr/bin/env python3
"""
CLI Entry Point — Classify One Session
======================================

Reads a single session's feature string and prints the predicted site
and the per-class probabilities.  The file may contain either a bare
``size_direction;...`` string or a feature-CSV row (``label,features``,
optionally under the usual header); only the first session is used.

Usage examples::

    tls-predict session.txt
    tls-predict session.csv --model data/tls_model.bin --label-map data/site_labels.csv
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from loguru import logger

from .data.dataset import STATS_SIZE
from .data.pipeline import FeaturePipeline
from .data.records import read_label_map
from .network.network import TOPOLOGIES
from .training.persistence import CheckpointError, read_checkpoint, read_header
from .utils.config import load_config
from .utils.logging import setup_logging


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Predict the website behind one TLS session.",
    )
    parser.add_argument("features", type=Path, help="File holding the session's feature string.")
    parser.add_argument("--config", type=Path, default=None, help="YAML config file.")
    parser.add_argument("--model", type=Path, default=None, help="Checkpoint path.")
    parser.add_argument("--label-map", type=Path, default=None, help="label,site_name CSV.")
    parser.add_argument("--topology", choices=TOPOLOGIES, default=None,
                        help="Layout the checkpoint was trained with.")
    parser.add_argument("--log-level", default="WARNING", help="Console log level.")
    return parser.parse_args(argv)


def read_session(path: Path) -> str:
    """Return the feature string of the first session in ``path``."""
    with open(path, "r", encoding="utf-8") as fh:
        for line in fh:
            line = line.strip()
            if not line or line.startswith("site_label"):
                continue
            label, sep, features = line.partition(",")
            return features if sep else label
    raise ValueError(f"{path} contains no session")


def run(args: argparse.Namespace) -> int:
    try:
        cfg = load_config(args.config)
    except FileNotFoundError as exc:
        logger.error(str(exc))
        return 1
    if args.topology is not None:
        cfg.model.topology = args.topology
    model_path = args.model or Path(cfg.paths.checkpoint)
    label_map_path = args.label_map or Path(cfg.data.label_map)

    try:
        input_dim, num_labels = read_header(model_path)
        network = read_checkpoint(model_path, input_dim, num_labels, cfg.model)
    except CheckpointError as exc:
        logger.error(f"Cannot use model: {exc}")
        return 1

    max_len = (input_dim - STATS_SIZE) // 2
    try:
        x = FeaturePipeline.encode(read_session(args.features), max_len)
    except (OSError, ValueError) as exc:
        logger.error(f"Cannot read session: {exc}")
        return 1

    probs = network.forward(x)
    network.clear_cache()

    names = {i: str(i) for i in range(num_labels)}
    if label_map_path.exists():
        names.update(read_label_map(label_map_path))

    best = int(probs.argmax())
    print(f"Predicted: {names[best]} (label {best}, p={probs[best]:.4f})")
    print("Probabilities:")
    for label in sorted(range(num_labels), key=lambda k: -probs[k]):
        print(f"  {label:>3d}  {names[label]:<24} {probs[label]:.4f}")
    return 0


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.log_level)
    sys.exit(run(args))


if __name__ == "__main__":
    main()
