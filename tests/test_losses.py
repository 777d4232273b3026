"""
Tests for Loss, Optimizer and Gradient Clipping
===============================================
"""

from __future__ import annotations

import math
import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from tls_fingerprint.core.layer import DenseLayer
from tls_fingerprint.core.losses import LOSS_CAP, PROB_FLOOR, CrossEntropyLoss, one_hot
from tls_fingerprint.core.optimizers import SGD, clip_by_norm


# ────────────────────────────────────────────────────────────────────
# One-hot
# ────────────────────────────────────────────────────────────────────
class TestOneHot:
    def test_scalar_label(self):
        np.testing.assert_array_equal(one_hot(2, 4), [0.0, 0.0, 1.0, 0.0])

    def test_label_array(self):
        encoded = one_hot(np.array([0, 2]), 3)
        np.testing.assert_array_equal(encoded, [[1, 0, 0], [0, 0, 1]])


# ────────────────────────────────────────────────────────────────────
# Cross-entropy
# ────────────────────────────────────────────────────────────────────
class TestCrossEntropy:
    def test_known_value(self):
        loss = CrossEntropyLoss().forward(np.array([0.25, 0.75]), 1)
        assert loss == pytest.approx(-math.log(0.75))

    def test_perfect_prediction_is_zero(self):
        loss = CrossEntropyLoss().forward(np.array([0.0, 1.0, 0.0]), 1)
        assert loss == pytest.approx(0.0, abs=1e-12)

    def test_zero_probability_is_clamped(self):
        loss = CrossEntropyLoss().forward(np.array([1.0, 0.0]), 1)
        assert math.isfinite(loss)
        assert loss == pytest.approx(LOSS_CAP)
        assert LOSS_CAP == pytest.approx(-math.log(PROB_FLOOR))

    def test_batch_mean(self):
        probs = np.array([[0.5, 0.5], [0.9, 0.1]])
        loss = CrossEntropyLoss().forward(probs, np.array([0, 0]))
        assert loss == pytest.approx((-math.log(0.5) - math.log(0.9)) / 2)

    def test_nan_propagates(self):
        loss = CrossEntropyLoss().forward(np.array([np.nan, np.nan]), 0)
        assert math.isnan(loss)

    def test_backward_is_probs_minus_onehot(self):
        probs = np.array([0.2, 0.5, 0.3])
        grad = CrossEntropyLoss().backward(probs, 1)
        np.testing.assert_allclose(grad, [0.2, -0.5, 0.3])


# ────────────────────────────────────────────────────────────────────
# Gradient clipping
# ────────────────────────────────────────────────────────────────────
class TestClipByNorm:
    def test_large_gradient_rescaled_to_cap(self):
        g = np.array([[3.0, 4.0]])  # norm 5
        clipped = clip_by_norm(g, 1.0)
        assert np.linalg.norm(clipped) == pytest.approx(1.0)

    def test_direction_preserved(self):
        rng = np.random.default_rng(0)
        g = rng.normal(scale=50.0, size=(3, 4))
        clipped = clip_by_norm(g, 2.0)
        cos = np.sum(g * clipped) / (np.linalg.norm(g) * np.linalg.norm(clipped))
        assert cos == pytest.approx(1.0)

    def test_small_gradient_unchanged(self):
        g = np.array([0.1, -0.2])
        np.testing.assert_array_equal(clip_by_norm(g, 1.0), g)

    def test_non_finite_left_alone(self):
        g = np.array([np.inf, 1.0])
        out = clip_by_norm(g, 1.0)
        assert np.isinf(out[0])


# ────────────────────────────────────────────────────────────────────
# SGD
# ────────────────────────────────────────────────────────────────────
class TestSGD:
    def test_step_updates_in_place(self):
        layer = DenseLayer(3, 2, rng=np.random.default_rng(0))
        W_before = layer.W.copy()
        W_ref = layer.W
        layer.forward(np.ones((1, 3)))
        layer.backward(np.array([[1.0, -1.0]]))
        SGD(lr=0.5).step([layer])

        assert layer.W is W_ref
        np.testing.assert_allclose(layer.W, W_before - 0.5 * layer.dW)
        np.testing.assert_allclose(layer.b, [-0.5, 0.5])

    def test_repr(self):
        assert repr(SGD(lr=0.1)) == "SGD(lr=0.1)"
