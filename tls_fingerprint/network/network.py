"""
Classifier Network
==================

A fixed, small composition of layers chosen at construction.  ReLU
follows every hidden layer and softmax follows the last one.

Topologies
----------
::

    conv :  X ─→ [Conv1D] ─ReLU─→ [Dense] ─ReLU─→ [Dense] ─softmax─→ Ŷ
    dense:  X ─→ [Dense]  ─ReLU─→ [Dense] ─softmax─→ Ŷ

    ∂L/∂X ←─ ... ←─ clip ←─ [layer] ←─ clip ←─ (Ŷ − onehot(y))

Each forward call caches every layer's output; the cache lives for
exactly one forward/backward cycle.
"""

from __future__ import annotations

from typing import Iterator

import numpy as np
from numpy.typing import NDArray

from ..core.activations import relu, relu_backward, softmax
from ..core.conv import Conv1DLayer
from ..core.initializers import get_initializer
from ..core.layer import DenseLayer, Layer
from ..core.losses import CrossEntropyLoss
from ..core.optimizers import clip_by_norm
from ..utils.config import ModelConfig

TOPOLOGIES = ("conv", "dense")


class Network:
    """Ordered layer stack with softmax output and per-boundary clipping.

    Parameters
    ----------
    layers : list[Layer]
        Layers in forward order; consecutive sizes must agree.
    clip_norm : float
        Cap on the L2 norm of the gradient entering each layer.
    topology : str
        Informational name of the layout (``"conv"``, ``"dense"`` or
        ``"custom"``).
    """

    def __init__(
        self,
        layers: list[Layer],
        clip_norm: float = 1.0,
        topology: str = "custom",
    ) -> None:
        if not layers:
            raise ValueError("Network needs at least one layer")
        for prev, nxt in zip(layers, layers[1:]):
            if prev.output_size != nxt.input_size:
                raise ValueError(
                    f"Layer size mismatch: {prev!r} outputs {prev.output_size}, "
                    f"{nxt!r} expects {nxt.input_size}"
                )
        self._layers: list[Layer] = list(layers)
        self.clip_norm = clip_norm
        self.topology = topology
        self.loss_fn = CrossEntropyLoss()
        self._outputs: list[NDArray] | None = None

    # ── construction ─────────────────────────────────────────────
    @classmethod
    def build(
        cls,
        input_dim: int,
        num_labels: int,
        config: ModelConfig | None = None,
        rng: np.random.Generator | None = None,
    ) -> "Network":
        """Compose one of the fixed topologies from ``config``."""
        config = config or ModelConfig()
        rng = rng if rng is not None else np.random.default_rng()
        init = get_initializer(config.init)

        if config.topology == "conv":
            conv = Conv1DLayer(
                in_channels=1,
                out_channels=config.conv_channels,
                kernel_size=config.kernel_size,
                input_width=input_dim,
                stride=config.stride,
                padding=config.padding,
                weight_init=init,
                rng=rng,
            )
            layers: list[Layer] = [
                conv,
                DenseLayer(conv.output_size, config.hidden_size, weight_init=init, rng=rng),
                DenseLayer(config.hidden_size, num_labels, weight_init=init, rng=rng),
            ]
        elif config.topology == "dense":
            layers = [
                DenseLayer(input_dim, config.hidden_size, weight_init=init, rng=rng),
                DenseLayer(config.hidden_size, num_labels, weight_init=init, rng=rng),
            ]
        else:
            raise ValueError(
                f"Unknown topology {config.topology!r}; expected one of {TOPOLOGIES}"
            )
        return cls(layers, clip_norm=config.clip_norm, topology=config.topology)

    # ── layer access ─────────────────────────────────────────────
    @property
    def layers(self) -> list[Layer]:
        return self._layers

    @property
    def input_dim(self) -> int:
        return self._layers[0].input_size

    @property
    def num_labels(self) -> int:
        return self._layers[-1].output_size

    # ── forward ──────────────────────────────────────────────────
    def forward(self, x: NDArray) -> NDArray:
        """Run every layer in order and return softmax probabilities.

        Parameters
        ----------
        x : ndarray, shape (input_dim,) or (batch, input_dim)

        Returns
        -------
        Ŷ : ndarray of the same rank as ``x`` — rows sum to 1.
        """
        single = np.ndim(x) == 1
        h: NDArray = np.atleast_2d(np.asarray(x, dtype=np.float64))
        if h.shape[1] != self.input_dim:
            raise ValueError(f"Expected {self.input_dim} features, got {h.shape[1]}")

        outputs: list[NDArray] = []
        last = len(self._layers) - 1
        for i, layer in enumerate(self._layers):
            h = layer.forward(h)
            if i < last:
                h = relu(h)
            outputs.append(h)
        self._outputs = outputs

        probs = softmax(h)
        return probs[0] if single else probs

    # ── loss ─────────────────────────────────────────────────────
    def loss(self, output: NDArray, label: NDArray | int) -> float:
        """Clamped categorical cross-entropy of ``output`` against ``label``."""
        return self.loss_fn.forward(output, label)

    # ── backward ─────────────────────────────────────────────────
    def backward(self, output: NDArray, label: NDArray | int) -> NDArray:
        """Propagate ``Ŷ − onehot(label)`` back through every layer.

        Leaves parameter gradients in each layer (apply them with an
        optimizer) and returns the gradient w.r.t. the network input.
        Must follow the ``forward`` call that produced ``output``.
        """
        if self._outputs is None:
            raise RuntimeError("backward() called without a preceding forward()")
        outputs, self._outputs = self._outputs, None

        grad: NDArray = self.loss_fn.backward(np.atleast_2d(output), label)
        last = len(self._layers) - 1
        for i in range(last, -1, -1):
            if i < last:
                grad = relu_backward(grad, outputs[i])
            grad = clip_by_norm(grad, self.clip_norm)
            grad = self._layers[i].backward(grad)
        return grad

    def clear_cache(self) -> None:
        """Drop the forward cache without running backward."""
        self._outputs = None

    # ── inference helpers ────────────────────────────────────────
    def predict(self, X: NDArray) -> NDArray:
        """Argmax class labels for a batch (or a single vector)."""
        probs = self.forward(X)
        self.clear_cache()
        return np.argmax(probs, axis=-1)

    def accuracy(self, X: NDArray, y: NDArray) -> float:
        """Fraction of rows whose argmax matches ``y``; 0.0 when empty."""
        if len(y) == 0:
            return 0.0
        return float(np.mean(self.predict(X) == np.asarray(y)))

    # ── utilities ────────────────────────────────────────────────
    def count_params(self) -> int:
        """Total number of trainable scalar parameters."""
        return sum(p.size for layer in self._layers for p in layer.params.values())

    def summary(self) -> str:
        """Keras-style model summary."""
        lines: list[str] = []
        header = f"{'Layer':<50} {'Output':>8} {'# Params':>10}"
        lines.append(header)
        lines.append("=" * len(header))
        for layer in self._layers:
            n_params = sum(p.size for p in layer.params.values())
            lines.append(f"{str(layer):<50} {layer.output_size:>8} {n_params:>10,}")
        lines.append("=" * len(header))
        lines.append(f"Total trainable params: {self.count_params():,}")
        return "\n".join(lines)

    def __len__(self) -> int:
        return len(self._layers)

    def __iter__(self) -> Iterator[Layer]:
        return iter(self._layers)

    def __repr__(self) -> str:
        inner = ",\n  ".join(repr(layer) for layer in self._layers)
        return f"Network[{self.topology}](\n  {inner}\n)"
