"""
1-D Convolution Layer
=====================

Slides a bank of kernels along the packet sequence.  The flat feature
vector of a session is read as ``in_channels`` rows of equal width
(channel-major), and the output is flattened the same way so the layer
can feed a ``DenseLayer`` directly.

Notation
--------
  X   : input           — shape (batch, C_in · W_in)   viewed as (batch, C_in, W_in)
  Y   : output          — shape (batch, C_out · W_out) viewed as (batch, C_out, W_out)
  K   : kernel bank     — shape (C_out, C_in, k)
  b   : bias            — shape (C_out,)
  s, p: stride, zero padding

Output width:

.. math::
    W_{out} = \\left\\lfloor \\frac{W_{in} + 2p - k}{s} \\right\\rfloor + 1

Index mapping
-------------
Output position ``o`` and tap ``t`` read input position

.. math::
    i = o \\cdot s - p + t

Positions outside ``[0, W_in)`` are zero padding and contribute
nothing.  The backward pass inverts this relation exactly: input
position ``i`` receives gradient from tap ``t`` only when
``(i + p - t)`` is divisible by ``s`` and ``o = (i + p - t) / s`` is a
valid output position.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from .initializers import Initializer, he_init
from .layer import Layer


class Conv1DLayer(Layer):
    """1-D convolution with stride and zero padding.

    Parameters
    ----------
    in_channels : int
    out_channels : int
    kernel_size : int
    input_width : int
        Width of one input channel.  Fixed at construction so the output
        width (and the next layer's fan-in) is known up front.
    stride : int
    padding : int
    weight_init : callable
        Initialization policy, called with
        ``fan_in = in_channels·kernel_size`` and
        ``fan_out = out_channels·kernel_size``.
    rng : Generator | None
    """

    trainable: bool = True

    def __init__(
        self,
        in_channels: int,
        out_channels: int,
        kernel_size: int,
        input_width: int,
        stride: int = 1,
        padding: int = 0,
        weight_init: Initializer = he_init,
        rng: np.random.Generator | None = None,
    ) -> None:
        super().__init__()
        if min(in_channels, out_channels, kernel_size, input_width, stride) <= 0:
            raise ValueError("Conv1DLayer sizes and stride must be positive")
        if padding < 0:
            raise ValueError(f"padding must be non-negative, got {padding}")

        self.in_channels = in_channels
        self.out_channels = out_channels
        self.kernel_size = kernel_size
        self.input_width = input_width
        self.stride = stride
        self.padding = padding

        span = input_width + 2 * padding - kernel_size
        if span < 0:
            raise ValueError(
                f"kernel_size={kernel_size} exceeds padded input width "
                f"{input_width + 2 * padding}"
            )
        self.output_width: int = span // stride + 1

        rng = rng if rng is not None else np.random.default_rng()
        self.K: NDArray = weight_init(
            in_channels * kernel_size,
            out_channels * kernel_size,
            (out_channels, in_channels, kernel_size),
            rng,
        )
        self.b: NDArray = np.zeros(out_channels, dtype=np.float64)

        self.dK: NDArray = np.zeros_like(self.K)
        self.db: NDArray = np.zeros_like(self.b)

        self._cache: dict[str, NDArray] = {}

        # Per-tap index tables, computed once.
        self._taps = [self._tap_indices(t) for t in range(kernel_size)]

    # ── index bookkeeping ────────────────────────────────────────
    def _tap_indices(self, tap: int) -> tuple[NDArray, NDArray]:
        """Return (output positions, input positions) linked by ``tap``.

        Built from the input side: position ``i`` is kept only when
        ``(i + p - tap) % s == 0`` and the resulting output position lies
        in ``[0, W_out)``.  The same table drives forward and backward so
        the two mappings cannot drift apart.
        """
        in_pos = np.arange(self.input_width)
        shifted = in_pos + self.padding - tap
        out_pos = shifted // self.stride
        valid = (
            (shifted >= 0)
            & (shifted % self.stride == 0)
            & (out_pos < self.output_width)
        )
        return out_pos[valid], in_pos[valid]

    # ── forward ──────────────────────────────────────────────────
    def forward(self, X: NDArray) -> NDArray:
        """Compute the convolution for a batch of flattened inputs.

        Parameters
        ----------
        X : ndarray, shape (batch, in_channels · input_width)

        Returns
        -------
        Y : ndarray, shape (batch, out_channels · output_width)
        """
        batch = X.shape[0]
        x = X.reshape(batch, self.in_channels, self.input_width)
        self._cache["x"] = x

        y = np.zeros((batch, self.out_channels, self.output_width), dtype=np.float64)
        for tap, (out_pos, in_pos) in enumerate(self._taps):
            if out_pos.size == 0:
                continue
            # (C_out, C_in) · (batch, C_in, n) → (batch, C_out, n)
            y[:, :, out_pos] += np.einsum(
                "oc,bcn->bon", self.K[:, :, tap], x[:, :, in_pos]
            )
        y += self.b[None, :, None]
        return y.reshape(batch, self.out_channels * self.output_width)

    # ── backward ─────────────────────────────────────────────────
    def backward(self, dY: NDArray) -> NDArray:
        """Kernel, bias and input gradients (averaged over the batch).

        * ``dK[:, :, t]`` correlates ``dY`` with the input window read by
          tap ``t``.
        * ``db`` sums ``dY`` over every output position per channel.
        * ``dX`` scatters ``dY`` back through the same taps (transposed
          convolution).
        """
        x = self._cache["x"]
        batch = x.shape[0]
        dy = dY.reshape(batch, self.out_channels, self.output_width)

        dK = np.zeros_like(self.K)
        dx = np.zeros_like(x)
        for tap, (out_pos, in_pos) in enumerate(self._taps):
            if out_pos.size == 0:
                continue
            g = dy[:, :, out_pos]  # (batch, C_out, n)
            dK[:, :, tap] = np.einsum("bon,bcn->oc", g, x[:, :, in_pos])
            dx[:, :, in_pos] += np.einsum("oc,bon->bcn", self.K[:, :, tap], g)

        self.dK = dK / batch
        self.db = np.sum(dy, axis=(0, 2)) / batch
        return dx.reshape(batch, self.in_channels * self.input_width)

    # ── properties ───────────────────────────────────────────────
    @property
    def input_size(self) -> int:
        return self.in_channels * self.input_width

    @property
    def output_size(self) -> int:
        return self.out_channels * self.output_width

    @property
    def params(self) -> dict[str, NDArray]:
        return {"W": self.K, "b": self.b}

    @property
    def grads(self) -> dict[str, NDArray]:
        return {"W": self.dK, "b": self.db}

    def __repr__(self) -> str:
        return (
            f"Conv1DLayer({self.in_channels}, {self.out_channels}, "
            f"kernel_size={self.kernel_size}, stride={self.stride}, "
            f"padding={self.padding})"
        )
