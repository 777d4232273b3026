#!/usr/bin/env python3
"""
CLI Entry Point — Train the TLS Fingerprint Classifier
======================================================

Usage examples::

    tls-train
    tls-train --data data/tls_features.csv --epochs 100 --lr 0.005
    tls-train --continue            # resume from the saved checkpoint
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import numpy as np
from loguru import logger

from .data.dataset import Dataset, to_arrays
from .data.pipeline import FeatureFileError, FeaturePipeline
from .data.records import read_label_map
from .network.network import TOPOLOGIES, Network
from .training import persistence
from .training.trainer import Trainer, TrainingResult
from .utils.config import AppConfig, load_config
from .utils.logging import setup_logging
from .utils.metrics import accuracy, classification_report, confusion_matrix


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Train a website classifier on TLS record sizes and directions.",
    )
    parser.add_argument("--config", type=Path, default=None, help="YAML config file.")
    parser.add_argument("--data", type=Path, default=None, help="Feature CSV to train on.")
    parser.add_argument("--model", type=Path, default=None, help="Checkpoint path.")
    parser.add_argument(
        "--continue", dest="resume", action="store_true",
        help="Load the existing checkpoint instead of initializing a fresh model.",
    )
    parser.add_argument("--epochs", type=int, default=None, help="Maximum number of epochs.")
    parser.add_argument("--lr", type=float, default=None, help="Initial learning rate.")
    parser.add_argument("--topology", choices=TOPOLOGIES, default=None, help="Network layout.")
    parser.add_argument("--seed", type=int, default=None, help="Seed for reproducible runs.")
    parser.add_argument("--log-level", default="INFO", help="Console log level.")
    return parser.parse_args(argv)


def apply_overrides(cfg: AppConfig, args: argparse.Namespace) -> AppConfig:
    """CLI flags take precedence over the config file."""
    if args.data is not None:
        cfg.data.features_csv = str(args.data)
    if args.model is not None:
        cfg.paths.checkpoint = str(args.model)
    if args.epochs is not None:
        cfg.training.epochs = args.epochs
    if args.lr is not None:
        cfg.training.learning_rate = args.lr
    if args.topology is not None:
        cfg.model.topology = args.topology
    if args.seed is not None:
        cfg.seed = args.seed
    return cfg


def _site_names(cfg: AppConfig, num_labels: int) -> list[str]:
    names = [str(i) for i in range(num_labels)]
    path = Path(cfg.data.label_map)
    if path.exists():
        for label, site in read_label_map(path).items():
            if 0 <= label < num_labels:
                names[label] = site
    return names


def report(network: Network, dataset: Dataset, result: TrainingResult, cfg: AppConfig) -> None:
    """Log the test-set confusion matrix and per-class scores; save plots."""
    X_test, y_test = to_arrays(dataset.test, dataset.feature_dim)
    if len(y_test) == 0:
        logger.warning("Test set is empty; skipping evaluation report")
        return

    y_pred = network.predict(X_test)
    cm = confusion_matrix(y_test, y_pred, dataset.num_labels)
    names = _site_names(cfg, dataset.num_labels)
    logger.info(f"Test accuracy of the best checkpoint: {accuracy(y_test, y_pred):.2%}")
    logger.info(f"Per-class results on the test set:\n{classification_report(cm, names)}")
    logger.info(f"Confusion matrix (rows = true, cols = predicted):\n{cm}")

    if cfg.paths.reports:
        from .utils.visualization import plot_confusion_matrix, plot_training_curves

        out = Path(cfg.paths.reports)
        plot_training_curves(result.history, save_path=out / "training_curves.png")
        plot_confusion_matrix(cm, names, save_path=out / "confusion_matrix.png")
        logger.info(f"Plots saved to {out}")


def run(args: argparse.Namespace) -> int:
    try:
        cfg = apply_overrides(load_config(args.config), args)
    except FileNotFoundError as exc:
        logger.error(str(exc))
        return 1
    if cfg.paths.logs:
        setup_logging(args.log_level, cfg.paths.logs)
    rng = np.random.default_rng(cfg.seed)

    try:
        dataset = FeaturePipeline(cfg.data, rng=rng).load()
    except FeatureFileError as exc:
        logger.error(str(exc))
        return 1
    if not dataset.train:
        logger.error("No usable samples in the feature file")
        return 1
    logger.info(f"Samples per label: {dict(sorted(dataset.class_counts.items()))}")

    checkpoint = Path(cfg.paths.checkpoint)
    if args.resume:
        logger.info(f"Resuming from {checkpoint}")
        network = persistence.load(
            checkpoint, dataset.feature_dim, dataset.num_labels, cfg.model, rng=rng
        )
    else:
        network = Network.build(dataset.feature_dim, dataset.num_labels, cfg.model, rng=rng)
    logger.info(f"Model summary:\n{network.summary()}")

    trainer = Trainer(network, dataset, cfg.training, checkpoint_path=checkpoint, rng=rng)
    result = trainer.fit()
    logger.info(
        f"Stopped after {result.epochs_run} epochs ({result.stop_reason.value}); "
        f"best test accuracy {result.best_test_accuracy:.2%}"
    )

    if checkpoint.exists():
        network = persistence.load(checkpoint, dataset.feature_dim, dataset.num_labels, cfg.model)
    report(network, dataset, result, cfg)
    return 0


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.log_level)
    sys.exit(run(args))


if __name__ == "__main__":
    main()
