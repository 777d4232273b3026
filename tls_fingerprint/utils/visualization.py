"""
Visualization Utilities
=======================

Matplotlib helpers for training curves and confusion matrices.

All functions accept a ``save_path`` argument (pathlib.Path); the
figure is written there when given and closed either way.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import numpy as np
from numpy.typing import NDArray

import matplotlib
matplotlib.use("Agg")  # non-interactive backend
import matplotlib.pyplot as plt  # noqa: E402


def _save(fig, save_path: Optional[Path]) -> None:
    if save_path:
        save_path = Path(save_path)
        save_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(save_path, dpi=150, bbox_inches="tight")
    plt.close(fig)


# ────────────────────────────────────────────────────────────────────
# Training curves
# ────────────────────────────────────────────────────────────────────
def plot_training_curves(
    history: dict[str, list[float]],
    save_path: Optional[Path] = None,
    title: str = "Training History",
) -> None:
    """Plot per-epoch loss and per-evaluation train/test accuracy.

    Parameters
    ----------
    history : dict from ``Trainer`` with keys 'train_loss', 'eval_epoch',
              'train_acc', 'test_acc'.
    save_path : Path, optional — if given, saves the figure.
    """
    fig, axes = plt.subplots(1, 2, figsize=(14, 5))

    # ── Loss ──
    ax = axes[0]
    losses = history.get("train_loss", [])
    ax.plot(range(1, len(losses) + 1), losses, label="Train Loss")
    ax.set_xlabel("Epoch")
    ax.set_ylabel("Loss")
    ax.set_title("Loss")
    ax.legend()
    ax.grid(True, alpha=0.3)

    # ── Accuracy ──
    ax = axes[1]
    epochs = history.get("eval_epoch", [])
    if epochs:
        ax.plot(epochs, history.get("train_acc", []), marker="o", label="Train Acc")
        ax.plot(epochs, history.get("test_acc", []), marker="o", label="Test Acc")
    ax.set_xlabel("Epoch")
    ax.set_ylabel("Accuracy")
    ax.set_title("Accuracy")
    ax.legend()
    ax.grid(True, alpha=0.3)

    fig.suptitle(title, fontsize=14)
    fig.tight_layout()
    _save(fig, save_path)


# ────────────────────────────────────────────────────────────────────
# Confusion matrix heatmap
# ────────────────────────────────────────────────────────────────────
def plot_confusion_matrix(
    cm: NDArray,
    class_names: list[str] | None = None,
    save_path: Optional[Path] = None,
    title: str = "Confusion Matrix",
) -> None:
    """Plot a confusion matrix as a heatmap."""
    fig, ax = plt.subplots(figsize=(8, 6))
    im = ax.imshow(cm, interpolation="nearest", cmap="Blues")
    fig.colorbar(im, ax=ax)

    n = cm.shape[0]
    if class_names is None:
        class_names = [str(i) for i in range(n)]

    ax.set(
        xticks=np.arange(n), yticks=np.arange(n),
        xticklabels=class_names, yticklabels=class_names,
        xlabel="Predicted", ylabel="True",
        title=title,
    )

    thresh = cm.max() / 2.0 if cm.size else 0.0
    for i in range(n):
        for j in range(n):
            ax.text(
                j, i, f"{cm[i, j]}",
                ha="center", va="center",
                color="white" if cm[i, j] > thresh else "black",
            )

    fig.tight_layout()
    _save(fig, save_path)
