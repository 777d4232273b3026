"""
Tests for Network — Construction / Forward / Backward
=====================================================
"""

from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from tls_fingerprint.core.conv import Conv1DLayer
from tls_fingerprint.core.layer import DenseLayer
from tls_fingerprint.network.network import Network
from tls_fingerprint.utils.config import ModelConfig
from tls_fingerprint.validation.gradient_check import gradient_check_network


# ────────────────────────────────────────────────────────────────────
# Construction
# ────────────────────────────────────────────────────────────────────
class TestBuild:
    def test_conv_topology(self):
        cfg = ModelConfig(topology="conv", conv_channels=4, kernel_size=5, stride=2, hidden_size=8)
        net = Network.build(30, 3, cfg, rng=np.random.default_rng(0))
        assert len(net) == 3
        conv, hidden, out = net.layers
        assert isinstance(conv, Conv1DLayer)
        assert conv.output_width == (30 - 5) // 2 + 1
        assert hidden.input_size == 4 * conv.output_width
        assert out.output_size == 3
        assert net.input_dim == 30 and net.num_labels == 3

    def test_dense_topology(self):
        cfg = ModelConfig(topology="dense", hidden_size=8)
        net = Network.build(12, 2, cfg, rng=np.random.default_rng(0))
        assert [type(layer) for layer in net] == [DenseLayer, DenseLayer]
        assert net.count_params() == 12 * 8 + 8 + 8 * 2 + 2

    def test_unknown_topology(self):
        with pytest.raises(ValueError, match="Unknown topology"):
            Network.build(12, 2, ModelConfig(topology="lstm"))

    def test_mismatched_layers_rejected(self):
        with pytest.raises(ValueError, match="size mismatch"):
            Network([DenseLayer(4, 3), DenseLayer(5, 2)])

    def test_empty_rejected(self):
        with pytest.raises(ValueError):
            Network([])

    def test_summary_lists_layers(self):
        net = Network.build(12, 2, ModelConfig(topology="dense", hidden_size=8))
        text = net.summary()
        assert "DenseLayer(12, 8)" in text
        assert "Total trainable params" in text


# ────────────────────────────────────────────────────────────────────
# Forward
# ────────────────────────────────────────────────────────────────────
class TestForward:
    @pytest.mark.parametrize("topology", ["conv", "dense"])
    def test_single_vector_probabilities(self, topology):
        net = Network.build(20, 4, ModelConfig(topology=topology), rng=np.random.default_rng(1))
        probs = net.forward(np.random.default_rng(2).random(20))
        assert probs.shape == (4,)
        assert probs.sum() == pytest.approx(1.0, abs=1e-5)
        assert np.all(probs >= 0)

    def test_batch_matches_rows(self):
        net = Network.build(20, 3, ModelConfig(topology="conv"), rng=np.random.default_rng(3))
        X = np.random.default_rng(4).random((5, 20))
        batch = net.forward(X)
        for i in range(5):
            np.testing.assert_allclose(net.forward(X[i]), batch[i], atol=1e-12)

    def test_wrong_width(self):
        net = Network.build(20, 3, ModelConfig(topology="dense"))
        with pytest.raises(ValueError, match="Expected 20 features"):
            net.forward(np.zeros(19))

    def test_predict_and_accuracy(self):
        net = Network.build(10, 3, ModelConfig(topology="dense"), rng=np.random.default_rng(5))
        X = np.random.default_rng(6).random((6, 10))
        preds = net.predict(X)
        assert preds.shape == (6,)
        assert net.accuracy(X, preds) == 1.0
        assert net.accuracy(np.zeros((0, 10)), np.zeros(0, dtype=int)) == 0.0


# ────────────────────────────────────────────────────────────────────
# Backward
# ────────────────────────────────────────────────────────────────────
class TestBackward:
    def test_requires_forward(self):
        net = Network.build(10, 2, ModelConfig(topology="dense"))
        with pytest.raises(RuntimeError):
            net.backward(np.array([0.5, 0.5]), 0)

    def test_cache_cleared_after_backward(self):
        net = Network.build(10, 2, ModelConfig(topology="dense"), rng=np.random.default_rng(7))
        out = net.forward(np.random.default_rng(8).random(10))
        net.backward(out, 1)
        with pytest.raises(RuntimeError):
            net.backward(out, 1)

    @pytest.mark.parametrize("topology", ["conv", "dense"])
    def test_gradients_match_finite_differences(self, topology):
        cfg = ModelConfig(topology=topology, conv_channels=3, kernel_size=3,
                          stride=2, hidden_size=6, clip_norm=1e9)
        net = Network.build(16, 3, cfg, rng=np.random.default_rng(9))
        x = np.random.default_rng(10).random(16)
        errors = gradient_check_network(net, x, label=2)
        for key, err in errors.items():
            assert err < 1e-5, f"{key}: {err}"

    def test_boundary_clip_bounds_parameter_gradients(self):
        """A clipped upstream gradient bounds the last layer's bias step."""
        cfg = ModelConfig(topology="dense", hidden_size=6, clip_norm=0.01)
        net = Network.build(8, 3, cfg, rng=np.random.default_rng(11))
        out = net.forward(np.random.default_rng(12).random(8))
        net.backward(out, 0)
        assert np.linalg.norm(net.layers[-1].db) <= 0.01 + 1e-12

    def test_descent_reduces_loss(self):
        net = Network.build(8, 2, ModelConfig(topology="dense"), rng=np.random.default_rng(13))
        x = np.random.default_rng(14).random(8)
        before = net.loss(net.forward(x), 1)
        for _ in range(20):
            out = net.forward(x)
            net.backward(out, 1)
            for layer in net:
                for key in layer.params:
                    layer.params[key] -= 0.1 * layer.grads[key]
        net.clear_cache()
        after = net.loss(net.forward(x), 1)
        assert after < before
