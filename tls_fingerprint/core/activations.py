"""
Activation Functions — Forward & Backward Passes
=================================================

Stateless element-wise / row-wise math shared by every layer of the
network.  The caller (``Network``) owns the forward cache; these
functions only transform arrays.

Mathematical conventions
------------------------
  Z : pre-activation   (shape: batch × neurons)
  A : post-activation  (shape: batch × neurons)
  dA: upstream gradient ∂L/∂A
  dZ: downstream gradient ∂L/∂Z = dA ⊙ f'(Z)   (element-wise Hadamard ⊙)

Numerical-stability policy
--------------------------
All clamping constants live here and in ``losses`` so they are
documented once:

  SOFTMAX_EXP_CAP : upper bound on the exponent argument after the
                    row-max shift.  After the shift every argument is
                    ≤ 0, so the cap only matters for non-finite input.
  SOFTMAX_SUM_EPS : floor for the normalizing sum; softmax never
                    divides by exact zero.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

SOFTMAX_EXP_CAP: float = 80.0
SOFTMAX_SUM_EPS: float = 1e-7


# ---------------------------------------------------------------------------
# ReLU
# ---------------------------------------------------------------------------
def relu(Z: NDArray) -> NDArray:  # noqa: N803
    r"""Rectified Linear Unit.

    .. math::
        A = \max(0, Z)
    """
    return np.maximum(0.0, Z)


def relu_backward(dA: NDArray, A: NDArray) -> NDArray:  # noqa: N803
    r"""Gradient of ReLU, gated on the *forward output*.

    .. math::
        dZ = dA \odot \mathbb{1}(A > 0)

    Gating on ``A`` rather than ``Z`` is equivalent for ReLU
    (``A > 0  ⇔  Z > 0``) and lets the network cache only outputs.

    Parameters
    ----------
    dA : ndarray — upstream gradient ∂L/∂A.
    A  : ndarray — output of the matching ``relu`` call (same shape).

    Returns
    -------
    dZ : ndarray — exactly 0 where ``A == 0``, ``dA`` elsewhere.
    """
    mask: NDArray = A > 0
    return np.where(mask, dA, 0.0)


# ---------------------------------------------------------------------------
# Softmax
# ---------------------------------------------------------------------------
def softmax(Z: NDArray) -> NDArray:  # noqa: N803
    r"""Numerically stable softmax over the last axis.

    .. math::
        A_{j} = \frac{e^{\min(Z_{j} - \max_k Z_{k},\; c)}}
                     {\max\!\left(\sum_k e^{\min(Z_{k} - \max_k Z_{k},\; c)},\; \varepsilon\right)}

    The max subtraction does not change the result (shift-invariance of
    softmax) but keeps every exponent ≤ 0 for finite input.

    Accepts a single vector ``(n_classes,)`` or a batch
    ``(batch_size, n_classes)``.
    """
    # Step 1: shift by the row max
    Z_shifted: NDArray = Z - np.max(Z, axis=-1, keepdims=True)

    # Step 2: exponentiate with a capped argument
    exp_Z: NDArray = np.exp(np.minimum(Z_shifted, SOFTMAX_EXP_CAP))

    # Step 3: normalize by a floored sum
    total: NDArray = np.maximum(np.sum(exp_Z, axis=-1, keepdims=True), SOFTMAX_SUM_EPS)
    return exp_Z / total
