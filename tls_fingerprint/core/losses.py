"""
Loss Function — Categorical Cross-Entropy (softmax output)
==========================================================

Notation
--------
  Ŷ (Y_hat) : softmax probabilities — shape (n_classes,) or (batch, n_classes)
  y         : integer class label(s)
  ε         : probability floor (PROB_FLOOR)

Numerical-stability policy
--------------------------
  PROB_FLOOR : the probability of the true class is floored before the
               log, so a zero probability yields a finite loss.
  LOSS_CAP   : the per-sample loss is clamped to this value.  It equals
               ``-ln(PROB_FLOOR)``, the largest loss the floor allows,
               and bounds the effect of any single pathological sample.
"""

from __future__ import annotations

import math

import numpy as np
from numpy.typing import NDArray

PROB_FLOOR: float = 1e-7
LOSS_CAP: float = -math.log(PROB_FLOOR)


def one_hot(labels: NDArray | int, n_classes: int) -> NDArray:
    """Convert integer label(s) to one-hot row(s).

    Returns shape ``(n_classes,)`` for a scalar label and
    ``(n_samples, n_classes)`` for an array of labels.
    """
    labels_arr = np.asarray(labels, dtype=int)
    encoded: NDArray = np.zeros(labels_arr.shape + (n_classes,), dtype=np.float64)
    if labels_arr.ndim == 0:
        encoded[int(labels_arr)] = 1.0
    else:
        encoded[np.arange(labels_arr.shape[0]), labels_arr] = 1.0
    return encoded


class CrossEntropyLoss:
    r"""Categorical cross-entropy for a softmax output.

    Forward
    -------
    .. math::
        L = \min\!\left(-\ln\max(\hat{Y}_{y}, \varepsilon),\; L_{cap}\right)

    averaged over the batch when given several rows.

    Backward (combined softmax + cross-entropy shortcut)
    ----------------------------------------------------
    .. math::
        \frac{\partial L}{\partial Z} = \hat{Y} - \text{onehot}(y)

    ``Z`` are the pre-softmax logits; the full softmax Jacobian is never
    formed.
    """

    def forward(self, Y_hat: NDArray, y: NDArray | int) -> float:
        """Compute the (mean) clamped cross-entropy loss."""
        probs = np.atleast_2d(Y_hat)
        labels = np.atleast_1d(np.asarray(y, dtype=int))

        p_true: NDArray = probs[np.arange(labels.shape[0]), labels]
        losses = -np.log(np.maximum(p_true, PROB_FLOOR))
        # NaN propagates through minimum, so the caller can still detect it
        losses = np.minimum(losses, LOSS_CAP)
        return float(np.mean(losses))

    def backward(self, Y_hat: NDArray, y: NDArray | int) -> NDArray:
        """Return dZ = Ŷ − onehot(y), same shape as ``Y_hat``."""
        return Y_hat - one_hot(y, Y_hat.shape[-1])

    def __repr__(self) -> str:
        return "CrossEntropyLoss()"
