"""
Layer Abstractions — Base Layer & Dense (Fully-Connected) Layer
===============================================================

A *layer* transforms an input tensor X into an output tensor Y, caches
the input for the backward pass, and computes parameter gradients.
Activations are applied by the owning ``Network``, not by the layer.

Notation
--------
  X  : input          — shape (batch_size, n_in)
  Y  : output         — shape (batch_size, n_out)
  W  : weight matrix  — shape (n_out, n_in)
  b  : bias vector    — shape (n_out,)
  dY : upstream grad  — ∂L/∂Y, shape (batch_size, n_out)
  dX : downstream grad — ∂L/∂X, shape (batch_size, n_in)
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from .initializers import Initializer, he_init


# ────────────────────────────────────────────────────────────────────
# Base class
# ────────────────────────────────────────────────────────────────────
class Layer:
    """Abstract layer interface.

    Every concrete layer must implement ``forward`` and ``backward`` and
    expose its parameters through ``params`` / ``grads`` (same keys).
    """

    trainable: bool = False

    def forward(self, X: NDArray) -> NDArray:  # noqa: N803
        raise NotImplementedError

    def backward(self, dY: NDArray) -> NDArray:
        raise NotImplementedError

    @property
    def input_size(self) -> int:
        """Flattened input width per sample."""
        raise NotImplementedError

    @property
    def output_size(self) -> int:
        """Flattened output width per sample."""
        raise NotImplementedError

    @property
    def params(self) -> dict[str, NDArray]:
        """Return dict of trainable parameters."""
        return {}

    @property
    def grads(self) -> dict[str, NDArray]:
        """Return dict of parameter gradients (same keys as ``params``)."""
        return {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


# ────────────────────────────────────────────────────────────────────
# Dense (fully-connected) layer
# ────────────────────────────────────────────────────────────────────
class DenseLayer(Layer):
    r"""Fully-connected (dense / affine) layer.

    Forward pass
    -------------
    .. math::
        Y = X \cdot W^T + b

    Backward pass
    -------------
    Receive upstream gradient ``dY``.

    Parameter gradients (averaged over the batch):

    .. math::
        \frac{\partial L}{\partial W} = \frac{1}{m}\, dY^T \cdot X
        \qquad\text{shape: } (n_{out}, n_{in})

    .. math::
        \frac{\partial L}{\partial b} = \frac{1}{m} \sum_i dY_i
        \qquad\text{shape: } (n_{out},)

    For a single sample this is exactly ``dW = dOut ⊗ in`` and
    ``db = dOut``.

    Downstream gradient:

    .. math::
        dX = dY \cdot W
        \qquad\text{shape: } (batch, n_{in})

    Parameters
    ----------
    n_in : int
        Number of input features.
    n_out : int
        Number of output neurons.
    weight_init : callable
        Initialization policy for W  (default: He normal).
    rng : Generator | None
        Random source; a fresh entropy-seeded generator when omitted.
    """

    trainable: bool = True

    def __init__(
        self,
        n_in: int,
        n_out: int,
        weight_init: Initializer = he_init,
        rng: np.random.Generator | None = None,
    ) -> None:
        super().__init__()
        if n_in <= 0 or n_out <= 0:
            raise ValueError(f"DenseLayer sizes must be positive, got ({n_in}, {n_out})")
        self.n_in = n_in
        self.n_out = n_out

        rng = rng if rng is not None else np.random.default_rng()

        # W: (n_out, n_in)   b: (n_out,)
        self.W: NDArray = weight_init(n_in, n_out, (n_out, n_in), rng)
        self.b: NDArray = np.zeros(n_out, dtype=np.float64)

        self.dW: NDArray = np.zeros_like(self.W)
        self.db: NDArray = np.zeros_like(self.b)

        self._cache: dict[str, NDArray] = {}

    # ── forward ──────────────────────────────────────────────────
    def forward(self, X: NDArray) -> NDArray:
        """Compute Y = X · Wᵀ + b.

        Parameters
        ----------
        X : ndarray, shape (batch_size, n_in)

        Returns
        -------
        Y : ndarray, shape (batch_size, n_out)
        """
        self._cache["X"] = X
        return X @ self.W.T + self.b

    # ── backward ─────────────────────────────────────────────────
    def backward(self, dY: NDArray) -> NDArray:
        """Compute parameter gradients and downstream gradient.

        The downstream gradient uses the current (pre-update) weights.
        """
        X = self._cache["X"]  # (batch, n_in)
        batch_size = X.shape[0]

        self.dW = (dY.T @ X) / batch_size
        self.db = np.sum(dY, axis=0) / batch_size

        dX: NDArray = dY @ self.W
        return dX

    # ── properties ───────────────────────────────────────────────
    @property
    def input_size(self) -> int:
        return self.n_in

    @property
    def output_size(self) -> int:
        return self.n_out

    @property
    def params(self) -> dict[str, NDArray]:
        return {"W": self.W, "b": self.b}

    @property
    def grads(self) -> dict[str, NDArray]:
        return {"W": self.dW, "b": self.db}

    def __repr__(self) -> str:
        return f"DenseLayer({self.n_in}, {self.n_out})"
