"""
Weight Initializers
===================

Two initialization policies are in use for this network and are
selected by name from configuration (``"he"`` or ``"xavier"``).
All initializers follow the pattern:

    W = init_fn(fan_in, fan_out, shape, rng) → ndarray of ``shape``

where ``fan_in`` = number of input units feeding one output and
``fan_out`` = number of output units fed by one input.  For a dense
layer ``shape`` is ``(n_out, n_in)``; for a 1-D convolution it is
``(out_channels, in_channels, kernel_size)``.
"""

from __future__ import annotations

from typing import Callable

import numpy as np
from numpy.typing import NDArray

Initializer = Callable[..., NDArray]


def xavier_init(
    fan_in: int,
    fan_out: int,
    shape: tuple[int, ...],
    rng: np.random.Generator | None = None,
) -> NDArray:
    r"""Glorot / Xavier uniform initialization.

    .. math::
        W \sim \mathcal{U}\!\left[
            -\sqrt{\frac{6}{n_{\text{in}} + n_{\text{out}}}},\;
             \sqrt{\frac{6}{n_{\text{in}} + n_{\text{out}}}}
        \right]

    Reference: Glorot & Bengio, 2010.
    """
    if rng is None:
        rng = np.random.default_rng()

    limit: float = np.sqrt(6.0 / (fan_in + fan_out))
    W: NDArray = rng.uniform(-limit, limit, size=shape)
    return W.astype(np.float64)


def he_init(
    fan_in: int,
    fan_out: int,
    shape: tuple[int, ...],
    rng: np.random.Generator | None = None,
) -> NDArray:
    r"""He (Kaiming) normal initialization.

    .. math::
        W \sim \mathcal{N}\!\left(0,\; \sqrt{\frac{2}{n_{\text{in}}}}\right)

    Derived for ReLU activations, which zero out half the units.

    Reference: He et al., 2015.
    """
    if rng is None:
        rng = np.random.default_rng()

    std: float = np.sqrt(2.0 / fan_in)
    W: NDArray = rng.normal(0.0, std, size=shape)
    return W.astype(np.float64)


INITIALIZERS: dict[str, Initializer] = {
    "he": he_init,
    "xavier": xavier_init,
}


def get_initializer(name: str) -> Initializer:
    """Look up an initialization policy by its config name."""
    try:
        return INITIALIZERS[name.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown initialization policy {name!r}; "
            f"expected one of {sorted(INITIALIZERS)}"
        ) from None
