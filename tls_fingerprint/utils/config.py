"""Configuration loading: YAML file → typed dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml
from loguru import logger


def project_root() -> Path:
    """Return the repository root (one level above the package)."""
    return Path(__file__).resolve().parent.parent.parent


DEFAULT_CONFIG_PATH = project_root() / "configs" / "default.yaml"


@dataclass
class DataConfig:
    """Feature-pipeline inputs and preprocessing policy."""

    features_csv: str = "data/tls_features.csv"
    label_map: str = "data/site_labels.csv"
    test_ratio: float = 0.2
    balance: bool = True
    noise_std: float = 0.02


@dataclass
class ModelConfig:
    """Network topology and initialization policy."""

    topology: str = "conv"  # "conv" | "dense"
    init: str = "he"        # "he" | "xavier"
    hidden_size: int = 64
    conv_channels: int = 16
    kernel_size: int = 5
    stride: int = 2
    padding: int = 0
    clip_norm: float = 1.0


@dataclass
class TrainerConfig:
    """Epoch loop, learning-rate schedule and stopping rules."""

    epochs: int = 50
    batch_size: int = 32
    learning_rate: float = 0.01
    decay_every: int = 10
    decay_factor: float = 0.9
    min_learning_rate: float = 1e-4
    eval_every: int = 5
    max_patience: int = 5
    target_train_accuracy: float = 0.99
    target_test_accuracy: float = 0.95
    loss_ceiling: float = 10.0


@dataclass
class PathsConfig:
    checkpoint: str = "data/tls_model.bin"
    reports: str | None = "outputs/reports"
    logs: str | None = None


@dataclass
class AppConfig:
    data: DataConfig = field(default_factory=DataConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    training: TrainerConfig = field(default_factory=TrainerConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    seed: int | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> "AppConfig":
        """Build from a parsed YAML mapping; unknown keys are ignored."""
        raw = raw or {}
        return cls(
            data=_section(DataConfig, raw.get("data")),
            model=_section(ModelConfig, raw.get("model")),
            training=_section(TrainerConfig, raw.get("training")),
            paths=_section(PathsConfig, raw.get("paths")),
            seed=raw.get("seed"),
        )


def _section(cls: type, raw: dict[str, Any] | None) -> Any:
    known = {f.name for f in fields(cls)}
    values = {k: v for k, v in (raw or {}).items() if k in known}
    unknown = sorted(set(raw or {}) - known)
    if unknown:
        logger.debug(f"Ignoring unknown {cls.__name__} keys: {unknown}")
    return cls(**values)


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load a YAML config.  Defaults to ``configs/default.yaml``.

    With no explicit path and no default file on disk, the dataclass
    defaults are returned.  An explicit path that does not exist raises
    ``FileNotFoundError``.
    """
    if path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            logger.info("No config file found, using built-in defaults")
            return AppConfig()
        path = DEFAULT_CONFIG_PATH
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    with open(path, "r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    logger.info(f"Loaded config from {path}")
    return AppConfig.from_dict(raw)
