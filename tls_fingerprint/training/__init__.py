"""Training loop and checkpoint persistence."""

from .persistence import CheckpointError, load, read_checkpoint, read_header, save
from .trainer import StopReason, Trainer, TrainingResult, TrainingState

__all__ = [
    "Trainer", "TrainingState", "TrainingResult", "StopReason",
    "save", "load", "read_checkpoint", "read_header", "CheckpointError",
]
