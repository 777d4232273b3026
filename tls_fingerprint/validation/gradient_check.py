"""
Gradient Checking — Numerical Verification of Backpropagation
=============================================================

Compares the **analytical** gradients produced by a layer's (or the
whole network's) ``backward`` with a **numerical** estimate from
centred finite differences:

.. math::
    \\frac{\\partial L}{\\partial \\theta_i}
    \\approx \\frac{L(\\theta_i + \\varepsilon) - L(\\theta_i - \\varepsilon)}
                   {2 \\varepsilon}

Relative error
--------------
.. math::
    \\text{rel\\_error} =
        \\frac{\\|g_{\\text{analytic}} - g_{\\text{numeric}}\\|_2}
             {\\|g_{\\text{analytic}}\\|_2 + \\|g_{\\text{numeric}}\\|_2 + 10^{-15}}

Rules of thumb:
  • rel_error < 1e-5  — correct implementation
  • rel_error < 1e-3  — may have a bug
  • rel_error > 1e-3  — almost certainly buggy

The transposed-convolution input gradient is the easiest place to get
an off-by-one wrong, so ``gradient_check_layer`` also verifies ``dX``.
"""

from __future__ import annotations

from typing import Callable

import numpy as np
from loguru import logger
from numpy.typing import NDArray


def _relative_error(analytic: NDArray, numeric: NDArray) -> float:
    diff = np.linalg.norm(analytic - numeric)
    norm_sum = np.linalg.norm(analytic) + np.linalg.norm(numeric) + 1e-15
    return float(diff / norm_sum)


def _status(rel_err: float) -> str:
    if rel_err < 1e-5:
        return "ok"
    return "suspicious" if rel_err < 1e-3 else "FAILED"


def _numeric_grad(
    array: NDArray,
    objective: Callable[[], float],
    epsilon: float,
) -> NDArray:
    """Centred differences of ``objective`` w.r.t. every element of ``array``.

    ``array`` is perturbed in place and restored after each element.
    """
    numeric = np.zeros_like(array)
    it = np.nditer(array, flags=["multi_index"], op_flags=["readwrite"])
    while not it.finished:
        idx = it.multi_index
        original = array[idx]

        array[idx] = original + epsilon
        loss_plus = objective()
        array[idx] = original - epsilon
        loss_minus = objective()
        array[idx] = original

        numeric[idx] = (loss_plus - loss_minus) / (2.0 * epsilon)
        it.iternext()
    return numeric


def gradient_check(
    loss_fn: Callable[[NDArray], float],
    params: NDArray,
    analytic_grad: NDArray,
    epsilon: float = 1e-7,
) -> float:
    """Check gradient of a scalar loss function w.r.t. a flat parameter array.

    Parameters
    ----------
    loss_fn       : callable — takes params (flat ndarray) → scalar loss.
    params        : ndarray, shape (D,) — current parameter values.
    analytic_grad : ndarray, shape (D,) — gradient from backprop.
    epsilon       : float — perturbation size.

    Returns
    -------
    rel_error : float — relative error between numeric and analytic grads.
    """
    work = np.array(params, dtype=np.float64)
    numeric = _numeric_grad(work, lambda: loss_fn(work.copy()), epsilon)
    return _relative_error(analytic_grad, numeric)


def gradient_check_layer(
    layer,
    X: NDArray,
    dY: NDArray,
    epsilon: float = 1e-6,
) -> dict[str, float]:
    """Check parameter and input gradients for a single layer.

    Uses the proxy loss ``L = sum(Y · dY) / batch`` so that ``∂L/∂Y``
    equals ``dY / batch``, matching the layer's batch-averaged
    parameter gradients.

    Parameters
    ----------
    layer : DenseLayer | Conv1DLayer
    X     : ndarray, shape (batch, layer.input_size)
    dY    : ndarray, shape (batch, layer.output_size) — upstream gradient.

    Returns
    -------
    errors : dict[str, float] — relative error per parameter name plus
             ``"X"`` for the input gradient.
    """
    X = np.array(X, dtype=np.float64)
    batch_size = X.shape[0]

    def objective() -> float:
        return float(np.sum(layer.forward(X) * dY)) / batch_size

    layer.forward(X)
    dX = layer.backward(dY)
    analytic = {name: grad.copy() for name, grad in layer.grads.items()}

    errors: dict[str, float] = {}
    for name, param in layer.params.items():
        numeric = _numeric_grad(param, objective, epsilon)
        errors[name] = _relative_error(analytic[name], numeric)

    # dX is the full (un-averaged) gradient of sum(Y · dY)
    numeric_x = _numeric_grad(X, objective, epsilon) * batch_size
    errors["X"] = _relative_error(dX, numeric_x)

    # restore the layer's cache and gradients
    layer.forward(X)
    layer.backward(dY)

    for name, rel_err in errors.items():
        logger.debug(f"{layer!r} {name:>2s}  rel_error = {rel_err:.2e}  {_status(rel_err)}")
    return errors


def gradient_check_network(
    network,
    x: NDArray,
    label: int,
    epsilon: float = 1e-6,
) -> dict[str, float]:
    """Check every layer's parameter gradients through the full network.

    The objective is the unclamped cross-entropy ``-log Ŷ[label]``.  The
    check is only meaningful when no boundary clip is active, so give the
    network a large ``clip_norm`` before calling this.

    Returns
    -------
    errors : dict[str, float] — keyed ``"<layer index>.<param name>"``.
    """
    x = np.atleast_2d(np.asarray(x, dtype=np.float64))

    def objective() -> float:
        probs = network.forward(x)
        network.clear_cache()
        return float(-np.log(probs[0, label]))

    probs = network.forward(x)
    network.backward(probs, label)
    analytic = [
        {name: grad.copy() for name, grad in layer.grads.items()}
        for layer in network.layers
    ]

    errors: dict[str, float] = {}
    for i, layer in enumerate(network.layers):
        for name, param in layer.params.items():
            numeric = _numeric_grad(param, objective, epsilon)
            key = f"{i}.{name}"
            errors[key] = _relative_error(analytic[i][name], numeric)
            logger.debug(f"{key:>5s}  rel_error = {errors[key]:.2e}  {_status(errors[key])}")
    return errors
