"""
Optimizer & Gradient Clipping
=============================

Notation
--------
  θ   : parameter (W or b)
  g   : gradient ∂L/∂θ
  η   : learning rate (lr)
  c   : clipping cap on the L2 norm of a gradient
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray


def clip_by_norm(grad: NDArray, max_norm: float) -> NDArray:
    r"""Rescale ``grad`` so that its L2 norm is at most ``max_norm``.

    .. math::
        g \leftarrow g \cdot \min\!\left(1,\; \frac{c}{\lVert g \rVert_2}\right)

    Direction is preserved; a gradient already within the cap is
    returned unchanged.  Non-finite norms are left alone so the caller
    can detect them.
    """
    norm = float(np.linalg.norm(grad))
    if norm > max_norm and np.isfinite(norm):
        return grad * (max_norm / norm)
    return grad


class SGD:
    r"""Stochastic Gradient Descent (vanilla, no momentum).

    Update rule
    -----------
    .. math::
        \theta \leftarrow \theta - \eta \, g

    ``lr`` is a plain attribute so a scheduler can decay it between
    epochs.

    Parameters
    ----------
    lr : float — learning rate η.
    """

    def __init__(self, lr: float = 0.01) -> None:
        self.lr = lr

    def step(self, layers: list) -> None:  # type: ignore[type-arg]
        """Apply θ ← θ − η·g in place to every trainable layer."""
        for layer in layers:
            if not layer.trainable:
                continue
            params = layer.params
            grads = layer.grads
            for key in params:
                params[key] -= self.lr * grads[key]

    def __repr__(self) -> str:
        return f"SGD(lr={self.lr})"
