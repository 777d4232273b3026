"""
Training Loop
=============

Per-sample SGD over shuffled mini-batches with:

  • learning-rate decay every ``decay_every`` epochs, floored at
    ``min_learning_rate``
  • evaluation every ``eval_every`` epochs (and on the last epoch)
  • checkpointing whenever test accuracy strictly improves
  • early stopping on patience exhaustion or when both accuracy targets
    are met

Parameters are updated after every sample (batch of one through the
network); the batch only groups samples for loss reporting.  A sample
whose loss is NaN, infinite or above ``loss_ceiling`` is skipped: no
update, no contribution to the reported loss.  The loss is clamped at
``LOSS_CAP``, so a ceiling at or above it never fires.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import numpy as np
from loguru import logger

from ..core.optimizers import SGD
from ..data.dataset import BatchGenerator, Dataset, Sample, to_arrays
from ..network.network import Network
from ..utils.config import TrainerConfig
from . import persistence


class StopReason(Enum):
    RUNNING = "running"
    NO_IMPROVEMENT = "no_improvement"
    TARGET_REACHED = "target_reached"
    COMPLETED = "completed"


@dataclass
class TrainingState:
    """Mutable loop state; discarded when ``fit`` returns."""

    epoch: int = 0
    learning_rate: float = 0.01
    best_test_accuracy: float = -1.0
    patience: int = 0
    stop_reason: StopReason = StopReason.RUNNING


@dataclass
class EpochStats:
    loss: float
    trained: int
    skipped: int


@dataclass
class TrainingResult:
    history: dict[str, list[float]]
    best_test_accuracy: float
    epochs_run: int
    stop_reason: StopReason
    checkpoint_path: Path | None = None


class Trainer:
    """Drive ``Network`` over a ``Dataset``.

    Parameters
    ----------
    network : Network
    dataset : Dataset
    config : TrainerConfig
    checkpoint_path : path or None — where improving models are saved
        (no checkpointing when ``None``).
    rng : Generator | None — shuffling source.
    """

    def __init__(
        self,
        network: Network,
        dataset: Dataset,
        config: TrainerConfig | None = None,
        checkpoint_path: str | Path | None = None,
        rng: np.random.Generator | None = None,
    ) -> None:
        self.network = network
        self.dataset = dataset
        self.config = config or TrainerConfig()
        self.checkpoint_path = Path(checkpoint_path) if checkpoint_path else None
        self.optimizer = SGD(lr=self.config.learning_rate)
        self._rng = rng if rng is not None else np.random.default_rng()

        self.history: dict[str, list[float]] = {
            "train_loss": [],
            "learning_rate": [],
            "eval_epoch": [],
            "train_acc": [],
            "test_acc": [],
        }

    # ── single sample ────────────────────────────────────────────
    def train_sample(self, sample: Sample) -> float | None:
        """Forward, loss, backward and update for one sample.

        Returns the loss, or ``None`` when the sample was skipped.
        """
        output = self.network.forward(sample.features)
        loss = self.network.loss(output, sample.label)
        if not math.isfinite(loss) or loss > self.config.loss_ceiling:
            self.network.clear_cache()
            logger.debug(f"Skipping sample (label {sample.label}) with loss {loss}")
            return None
        self.network.backward(output, sample.label)
        self.optimizer.step(self.network.layers)
        return loss

    # ── one epoch ────────────────────────────────────────────────
    def train_epoch(self) -> EpochStats:
        """One shuffled pass over the training set."""
        batch_losses: list[float] = []
        trained = skipped = 0
        batches = BatchGenerator(
            self.dataset.train, self.config.batch_size, shuffle=True, rng=self._rng
        )
        for batch in batches:
            losses = []
            for sample in batch:
                loss = self.train_sample(sample)
                if loss is None:
                    skipped += 1
                else:
                    losses.append(loss)
            trained += len(losses)
            if losses:
                batch_losses.append(float(np.mean(losses)))

        avg = float(np.mean(batch_losses)) if batch_losses else float("nan")
        return EpochStats(loss=avg, trained=trained, skipped=skipped)

    # ── evaluation ───────────────────────────────────────────────
    def evaluate(self, samples: list[Sample]) -> float:
        """Argmax accuracy on ``samples`` (0.0 when empty)."""
        X, y = to_arrays(samples, self.dataset.feature_dim)
        return self.network.accuracy(X, y)

    # ── scheduling ───────────────────────────────────────────────
    def _decay_learning_rate(self, state: TrainingState) -> None:
        cfg = self.config
        if cfg.decay_every > 0 and state.epoch % cfg.decay_every == 0:
            new_lr = max(state.learning_rate * cfg.decay_factor, cfg.min_learning_rate)
            if new_lr != state.learning_rate:
                logger.info(f"Learning rate {state.learning_rate:.6g} → {new_lr:.6g}")
            state.learning_rate = new_lr
            self.optimizer.lr = new_lr

    def _checkpoint(self, state: TrainingState, test_acc: float) -> None:
        state.best_test_accuracy = test_acc
        state.patience = 0
        if self.checkpoint_path is not None:
            persistence.save(self.checkpoint_path, self.network)

    def _after_evaluation(self, state: TrainingState, train_acc: float, test_acc: float) -> None:
        cfg = self.config
        if test_acc > state.best_test_accuracy:
            self._checkpoint(state, test_acc)
        else:
            state.patience += 1
            if state.patience > cfg.max_patience:
                state.stop_reason = StopReason.NO_IMPROVEMENT
                return

        if train_acc >= cfg.target_train_accuracy and test_acc >= cfg.target_test_accuracy:
            state.stop_reason = StopReason.TARGET_REACHED

    # ── full loop ────────────────────────────────────────────────
    def fit(self) -> TrainingResult:
        """Run epochs until a stopping condition is met."""
        if not self.dataset.train:
            raise ValueError("Training set is empty")

        cfg = self.config
        state = TrainingState(learning_rate=cfg.learning_rate)
        self.optimizer.lr = cfg.learning_rate
        eval_every = max(cfg.eval_every, 1)

        logger.info(
            f"Training {self.network.topology} network "
            f"({self.network.count_params():,} params) on "
            f"{len(self.dataset.train)} samples for up to {cfg.epochs} epochs"
        )
        t_start = time.time()

        while state.stop_reason is StopReason.RUNNING and state.epoch < cfg.epochs:
            state.epoch += 1
            t0 = time.time()

            stats = self.train_epoch()
            self.history["train_loss"].append(stats.loss)
            self.history["learning_rate"].append(state.learning_rate)
            if stats.skipped:
                logger.warning(f"Epoch {state.epoch}: skipped {stats.skipped} unstable samples")

            msg = (
                f"Epoch {state.epoch:>4d}/{cfg.epochs}  loss: {stats.loss:.4f}  "
                f"lr: {state.learning_rate:.5g}"
            )

            if state.epoch % eval_every == 0 or state.epoch == cfg.epochs:
                train_acc = self.evaluate(self.dataset.train)
                test_acc = self.evaluate(self.dataset.test)
                self.history["eval_epoch"].append(state.epoch)
                self.history["train_acc"].append(train_acc)
                self.history["test_acc"].append(test_acc)
                msg += f"  train acc: {train_acc:.2%}  test acc: {test_acc:.2%}"
                self._after_evaluation(state, train_acc, test_acc)

            logger.info(msg + f"  ({time.time() - t0:.2f}s)")
            self._decay_learning_rate(state)

        if state.stop_reason is StopReason.RUNNING:
            state.stop_reason = StopReason.COMPLETED
        elif state.stop_reason is StopReason.NO_IMPROVEMENT:
            logger.info(
                f"Early stopping at epoch {state.epoch}: no test-accuracy improvement "
                f"in {state.patience} evaluations"
            )
        else:
            logger.info(f"Early stopping at epoch {state.epoch}: accuracy targets reached")

        logger.info(
            f"Training finished in {time.time() - t_start:.1f}s; "
            f"best test accuracy {max(state.best_test_accuracy, 0.0):.2%}"
        )
        return TrainingResult(
            history=self.history,
            best_test_accuracy=max(state.best_test_accuracy, 0.0),
            epochs_run=state.epoch,
            stop_reason=state.stop_reason,
            checkpoint_path=self.checkpoint_path,
        )
