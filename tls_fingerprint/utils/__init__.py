"""Utility functions: configuration, logging setup, metrics."""

from .config import AppConfig, DataConfig, ModelConfig, PathsConfig, TrainerConfig, load_config
from .metrics import accuracy, classification_report, confusion_matrix, per_class_precision_recall

__all__ = [
    "AppConfig", "DataConfig", "ModelConfig", "PathsConfig", "TrainerConfig", "load_config",
    "accuracy", "confusion_matrix", "per_class_precision_recall", "classification_report",
]
