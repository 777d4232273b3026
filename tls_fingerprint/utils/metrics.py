"""
Evaluation Metrics
==================

Classification metrics implemented in pure NumPy.
All assume integer label arrays as inputs.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray


def accuracy(y_true: NDArray, y_pred: NDArray) -> float:
    """Classification accuracy; 0.0 for empty input.

    .. math::
        \\text{Accuracy} = \\frac{1}{m} \\sum_{i=1}^{m} \\mathbb{1}[\\hat{y}_i = y_i]
    """
    if y_true.size == 0:
        return 0.0
    return float(np.mean(y_true.ravel() == y_pred.ravel()))


def confusion_matrix(y_true: NDArray, y_pred: NDArray, n_classes: int | None = None) -> NDArray:
    """Compute confusion matrix.

    Returns
    -------
    cm : ndarray, shape (n_classes, n_classes)
        cm[i, j] = number of samples with true label i predicted as j.
    """
    y_true = y_true.ravel().astype(int)
    y_pred = y_pred.ravel().astype(int)
    if n_classes is None:
        n_classes = int(max(y_true.max(initial=-1), y_pred.max(initial=-1))) + 1
    cm = np.zeros((n_classes, n_classes), dtype=int)
    np.add.at(cm, (y_true, y_pred), 1)
    return cm


def per_class_precision_recall(cm: NDArray) -> tuple[NDArray, NDArray]:
    """Precision and recall for every class from a confusion matrix.

    .. math::
        P_k = \\frac{TP_k}{TP_k + FP_k} \\qquad R_k = \\frac{TP_k}{TP_k + FN_k}

    Classes that are never predicted (or never present) get 0.
    """
    tp = np.diag(cm).astype(np.float64)
    predicted = cm.sum(axis=0)
    actual = cm.sum(axis=1)
    precision = np.divide(tp, predicted, out=np.zeros_like(tp), where=predicted > 0)
    recall = np.divide(tp, actual, out=np.zeros_like(tp), where=actual > 0)
    return precision, recall


def classification_report(cm: NDArray, class_names: list[str] | None = None) -> str:
    """Plain-text per-class precision / recall / support table."""
    precision, recall = per_class_precision_recall(cm)
    support = cm.sum(axis=1)
    n = cm.shape[0]
    names = class_names or [str(i) for i in range(n)]

    width = max([len(name) for name in names] + [8])
    lines = [f"{'class':<{width}} {'precision':>10} {'recall':>10} {'support':>8}"]
    for k in range(n):
        lines.append(
            f"{names[k]:<{width}} {precision[k]:>10.3f} {recall[k]:>10.3f} {support[k]:>8d}"
        )
    return "\n".join(lines)
