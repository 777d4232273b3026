"""
Tests for the Protocol-Record Boundary
======================================

Direction inference from handshake types and learned addresses, plus
the feature / label-map CSV artifacts.
"""

from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from tls_fingerprint.data.pipeline import FeaturePipeline
from tls_fingerprint.data.records import (
    ProtocolRecord,
    assign_site_labels,
    build_feature_rows,
    format_feature_string,
    infer_directions,
    parse_dissector_line,
    read_label_map,
    site_name_from_domain,
    write_feature_csv,
    write_label_map,
)
from tls_fingerprint.utils.config import DataConfig

CLIENT = "10.0.0.2"
SERVER = "93.184.216.34"


def rec(src, dst, length, hs=None):
    return ProtocolRecord(0.0, src, dst, length, hs)


# ────────────────────────────────────────────────────────────────────
# Dissector output
# ────────────────────────────────────────────────────────────────────
class TestDissectorLine:
    def test_full_line(self):
        r = parse_dissector_line(f"1700000000.5,{CLIENT},{SERVER},517,1")
        assert r == ProtocolRecord(1700000000.5, CLIENT, SERVER, 517, 1)

    def test_missing_handshake(self):
        r = parse_dissector_line(f"1.0,{SERVER},{CLIENT},1400,")
        assert r.handshake_type is None
        assert r.frame_length == 1400

    def test_bad_length(self):
        assert parse_dissector_line(f"1.0,{CLIENT},{SERVER},abc,1") is None

    def test_too_few_fields(self):
        assert parse_dissector_line("1.0,a") is None


# ────────────────────────────────────────────────────────────────────
# Direction inference
# ────────────────────────────────────────────────────────────────────
class TestInferDirections:
    def test_handshake_types(self):
        records = [rec(CLIENT, SERVER, 517, 1), rec(SERVER, CLIENT, 1400, 2)]
        assert infer_directions(records) == [(517, 0), (1400, 1)]

    def test_learned_addresses_apply_later(self):
        records = [
            rec(CLIENT, SERVER, 517, 1),
            rec(SERVER, CLIENT, 1400),
            rec(CLIENT, SERVER, 90),
        ]
        assert infer_directions(records) == [(517, 0), (1400, 1), (90, 0)]

    def test_unknown_before_handshake_excluded(self):
        records = [rec(CLIENT, SERVER, 60), rec(CLIENT, SERVER, 517, 1)]
        assert infer_directions(records) == [(517, 0)]

    def test_disagreeing_heuristics_excluded(self):
        """A third party is neither client nor server: the checks disagree."""
        records = [rec(CLIENT, SERVER, 517, 1), rec("192.0.2.9", CLIENT, 300)]
        assert infer_directions(records) == [(517, 0)]

    def test_non_positive_length_excluded(self):
        records = [rec(CLIENT, SERVER, 517, 1), rec(SERVER, CLIENT, 0)]
        assert infer_directions(records) == [(517, 0)]

    def test_feature_string(self):
        assert format_feature_string([(387, 0), (1492, 1)]) == "387_0;1492_1"
        assert format_feature_string([]) == ""


# ────────────────────────────────────────────────────────────────────
# Sites and labels
# ────────────────────────────────────────────────────────────────────
class TestSiteLabels:
    @pytest.mark.parametrize("domain,site", [
        ("www.baidu.com", "baidu"),
        ("github.com", "github"),
        ("news.bbc.co.uk", "co"),
        ("localhost", "localhost"),
    ])
    def test_site_name(self, domain, site):
        assert site_name_from_domain(domain) == site

    def test_labels_sorted_and_dense(self):
        labels = assign_site_labels(["www.zhihu.com", "www.baidu.com", "baidu.com", "github.com"])
        assert labels == {"baidu": 0, "github": 1, "zhihu": 2}

    def test_label_map_round_trip(self, tmp_path):
        path = tmp_path / "labels.csv"
        write_label_map(path, {"zhihu": 2, "baidu": 0, "github": 1})
        lines = path.read_text(encoding="utf-8").splitlines()
        assert lines == ["label,site_name", "0,baidu", "1,github", "2,zhihu"]
        assert read_label_map(path) == {0: "baidu", 1: "github", 2: "zhihu"}


# ────────────────────────────────────────────────────────────────────
# Feature CSV
# ────────────────────────────────────────────────────────────────────
class TestFeatureCsv:
    def test_empty_sessions_skipped(self, tmp_path):
        path = tmp_path / "features.csv"
        written = write_feature_csv(path, [(0, "100_0;200_1"), (1, ""), (1, "50_1")])
        assert written == 2
        assert path.read_text(encoding="utf-8").splitlines() == [
            "site_label,packet_features", "0,100_0;200_1", "1,50_1",
        ]

    def test_sessions_to_dataset(self, tmp_path):
        sessions = {
            "baidu": [[rec(CLIENT, SERVER, 517, 1), rec(SERVER, CLIENT, 1400)]],
            "github": [[rec(CLIENT, SERVER, 300, 1), rec(SERVER, CLIENT, 900, 2)]],
            "unknown": [[rec(CLIENT, SERVER, 10, 1)]],
        }
        rows = build_feature_rows(sessions, {"baidu": 0, "github": 1})
        assert rows == [(0, "517_0;1400_1"), (1, "300_0;900_1")]

        path = tmp_path / "features.csv"
        write_feature_csv(path, rows)
        ds = FeaturePipeline(DataConfig(test_ratio=0.0), rng=np.random.default_rng(0)).load(path)
        assert ds.num_labels == 2
        assert ds.max_sequence_length == 2
