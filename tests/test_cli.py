"""
Tests for the Command-Line Entry Points
=======================================

End-to-end: write a small feature CSV, train through ``tls-train``'s
``main`` and classify a session with ``tls-predict``'s ``main``.
"""

from __future__ import annotations

import struct
import sys
from pathlib import Path

import numpy as np
import pytest
import yaml
from loguru import logger

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from tls_fingerprint import predict, train
from tls_fingerprint.data.records import write_feature_csv, write_label_map
from tls_fingerprint.training import persistence


@pytest.fixture(autouse=True)
def restore_log_sinks():
    """The CLIs install their own sinks; put back a plain one afterwards."""
    yield
    logger.remove()
    logger.add(sys.__stderr__, level="WARNING")


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    rng = np.random.default_rng(0)
    rows = []
    for _ in range(20):
        small = ";".join(f"{int(s)}_0" for s in rng.integers(1, 6, size=3))
        large = ";".join(f"{int(s)}_1" for s in rng.integers(1000, 1500, size=3))
        rows += [(0, small), (1, large)]
    write_feature_csv(tmp_path / "features.csv", rows)
    write_label_map(tmp_path / "labels.csv", {"baidu": 0, "github": 1})

    cfg = {
        "data": {
            "features_csv": str(tmp_path / "features.csv"),
            "label_map": str(tmp_path / "labels.csv"),
        },
        "model": {"topology": "dense", "hidden_size": 16},
        "training": {
            "epochs": 20, "eval_every": 1, "learning_rate": 0.05, "batch_size": 8,
            "target_train_accuracy": 1.0, "target_test_accuracy": 1.0,
        },
        "paths": {
            "checkpoint": str(tmp_path / "model.bin"),
            "reports": str(tmp_path / "reports"),
        },
        "seed": 3,
    }
    (tmp_path / "config.yaml").write_text(yaml.safe_dump(cfg), encoding="utf-8")
    return tmp_path


def run_main(entry, argv: list[str]) -> int:
    with pytest.raises(SystemExit) as exc:
        entry.main(argv)
    return exc.value.code


# ────────────────────────────────────────────────────────────────────
# Trainer CLI
# ────────────────────────────────────────────────────────────────────
class TestTrainCli:
    def test_train_writes_checkpoint_and_reports(self, workspace):
        code = run_main(train, ["--config", str(workspace / "config.yaml")])
        assert code == 0
        assert (workspace / "model.bin").exists()
        assert persistence.read_header(workspace / "model.bin") == (3 * 2 + 6, 2)
        assert (workspace / "reports" / "training_curves.png").exists()
        assert (workspace / "reports" / "confusion_matrix.png").exists()

    def test_continue_resumes_from_checkpoint(self, workspace):
        cfg = str(workspace / "config.yaml")
        assert run_main(train, ["--config", cfg]) == 0
        assert run_main(train, ["--config", cfg, "--continue", "--epochs", "2"]) == 0
        assert (workspace / "model.bin").exists()

    def test_continue_without_checkpoint_starts_fresh(self, workspace):
        code = run_main(train, ["--config", str(workspace / "config.yaml"), "--continue"])
        assert code == 0

    def test_missing_feature_file(self, workspace):
        code = run_main(train, [
            "--config", str(workspace / "config.yaml"),
            "--data", str(workspace / "missing.csv"),
        ])
        assert code == 1

    def test_missing_config(self, workspace):
        assert run_main(train, ["--config", str(workspace / "nope.yaml")]) == 1

    def test_overrides(self, workspace):
        args = train.parse_args(["--epochs", "3", "--lr", "0.2", "--topology", "conv", "--seed", "9"])
        cfg = train.apply_overrides(train.load_config(workspace / "config.yaml"), args)
        assert cfg.training.epochs == 3
        assert cfg.training.learning_rate == 0.2
        assert cfg.model.topology == "conv"
        assert cfg.seed == 9
        assert args.resume is False


# ────────────────────────────────────────────────────────────────────
# Predictor CLI
# ────────────────────────────────────────────────────────────────────
class TestPredictCli:
    def test_predicts_trained_site(self, workspace, capsys):
        assert run_main(train, ["--config", str(workspace / "config.yaml")]) == 0
        capsys.readouterr()

        session = workspace / "session.txt"
        session.write_text("1200_1;1400_1;1100_1\n", encoding="utf-8")
        code = run_main(predict, [str(session), "--config", str(workspace / "config.yaml")])
        assert code == 0

        out = capsys.readouterr().out
        assert "Predicted: github (label 1" in out
        assert "baidu" in out

    def test_accepts_feature_csv_row(self, workspace, capsys):
        assert run_main(train, ["--config", str(workspace / "config.yaml")]) == 0
        capsys.readouterr()

        session = workspace / "session.csv"
        session.write_text("site_label,packet_features\n0,2_0;3_0;4_0\n", encoding="utf-8")
        code = run_main(predict, [str(session), "--config", str(workspace / "config.yaml")])
        assert code == 0
        assert "Predicted: baidu (label 0" in capsys.readouterr().out

    def test_read_session_bare_string(self, tmp_path):
        path = tmp_path / "s.txt"
        path.write_text("\n10_0;20_1\n", encoding="utf-8")
        assert predict.read_session(path) == "10_0;20_1"

    def test_missing_model(self, workspace):
        session = workspace / "session.txt"
        session.write_text("100_0\n", encoding="utf-8")
        code = run_main(predict, [
            str(session), "--config", str(workspace / "config.yaml"),
            "--model", str(workspace / "absent.bin"),
        ])
        assert code == 1

    @pytest.mark.parametrize("dims", [(0, 2), (12, 0), (7, 2)])
    def test_impossible_model_dimensions(self, workspace, dims):
        model = workspace / "broken.bin"
        model.write_bytes(struct.pack("<ii", *dims))
        session = workspace / "session.txt"
        session.write_text("100_0\n", encoding="utf-8")
        code = run_main(predict, [
            str(session), "--config", str(workspace / "config.yaml"), "--model", str(model),
        ])
        assert code == 1

    def test_unreadable_session(self, workspace):
        assert run_main(train, ["--config", str(workspace / "config.yaml")]) == 0
        session = workspace / "session.txt"
        session.write_text("garbage\n", encoding="utf-8")
        code = run_main(predict, [str(session), "--config", str(workspace / "config.yaml")])
        assert code == 1
