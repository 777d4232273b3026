"""
Feature Pipeline
================

Turns the feature CSV (one session per row) into a ``Dataset`` of
fixed-width vectors.

Input row format::

    <label>,<size>_<direction>;<size>_<direction>;...

Feature vector layout (``max_sequence_length = L``)::

    [s_0, d_0, s_1, d_1, ..., s_{L-1}, d_{L-1},        ← 2·L sequence slots
     avg, max, min, std, outgoing_ratio, log_count]    ← 6 statistics

Sizes are log-compressed into ``[0, 1]``; sessions shorter than ``L``
are zero-padded at the tail; the statistics block is computed from the
unpadded records and always occupies the final six slots.

Pipeline order: parse → find L → pad + statistics → (balance) →
shuffle → split.
"""

from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import numpy as np
from loguru import logger
from numpy.typing import NDArray

from ..utils.config import DataConfig
from .dataset import STATS_SIZE, Dataset, Sample

MAX_RECORD_SIZE: int = 1500
MAX_RECORD_COUNT: int = 100
_LOG_SIZE_BOUND: float = math.log(MAX_RECORD_SIZE + 1)
_LOG_COUNT_BOUND: float = math.log(MAX_RECORD_COUNT + 1)


class FeatureFileError(OSError):
    """The feature CSV cannot be opened or has no header row."""


class ParseStatus(Enum):
    OK = "ok"
    EMPTY = "empty"
    BAD_LABEL = "bad_label"
    NO_VALID_RECORDS = "no_valid_records"


@dataclass(frozen=True)
class ParsedRow:
    """Outcome of parsing one CSV row.

    Only rows with ``status is ParseStatus.OK`` carry records; the other
    statuses mark a row that is dropped from the dataset.  ``bad_tokens``
    counts records skipped inside the row.
    """

    status: ParseStatus
    label: int = -1
    sizes: tuple[int, ...] = ()
    directions: tuple[int, ...] = ()
    bad_tokens: int = 0

    @property
    def ok(self) -> bool:
        return self.status is ParseStatus.OK


# ────────────────────────────────────────────────────────────────────
# Per-record / per-row parsing
# ────────────────────────────────────────────────────────────────────
def normalize_size(size: float) -> float:
    """``clamp(log(size + 1) / log(1501), 0, 1)``."""
    value = math.log(size + 1) / _LOG_SIZE_BOUND
    return min(max(value, 0.0), 1.0)


def parse_token(token: str) -> tuple[int, int] | None:
    """Parse ``"<size>_<direction>"``; ``None`` when the record is invalid."""
    size_str, sep, dir_str = token.strip().partition("_")
    if not sep:
        return None
    try:
        size = int(size_str)
        direction = int(dir_str)
    except ValueError:
        return None
    if size < 0 or direction not in (0, 1):
        return None
    return size, direction


def parse_records(feature_str: str) -> tuple[list[int], list[int], int]:
    """Split a ``;``-joined feature string into sizes, directions and a bad count."""
    sizes: list[int] = []
    directions: list[int] = []
    bad = 0
    for token in feature_str.split(";"):
        if not token.strip():
            continue
        parsed = parse_token(token)
        if parsed is None:
            bad += 1
            logger.debug(f"Skipping malformed record {token!r}")
            continue
        sizes.append(parsed[0])
        directions.append(parsed[1])
    return sizes, directions, bad


def parse_row(line: str) -> ParsedRow:
    """Parse one ``label,packet_features`` row without raising."""
    line = line.strip()
    if not line:
        return ParsedRow(ParseStatus.EMPTY)

    label_str, sep, feature_str = line.partition(",")
    try:
        label = int(label_str)
    except ValueError:
        return ParsedRow(ParseStatus.BAD_LABEL)
    if label < 0:
        return ParsedRow(ParseStatus.BAD_LABEL)
    if not sep or not feature_str.strip():
        return ParsedRow(ParseStatus.EMPTY, label=label)

    sizes, directions, bad = parse_records(feature_str)
    if not sizes:
        return ParsedRow(ParseStatus.NO_VALID_RECORDS, label=label, bad_tokens=bad)
    return ParsedRow(
        ParseStatus.OK,
        label=label,
        sizes=tuple(sizes),
        directions=tuple(directions),
        bad_tokens=bad,
    )


# ────────────────────────────────────────────────────────────────────
# Encoding
# ────────────────────────────────────────────────────────────────────
def compute_statistics(norm_sizes: NDArray, directions: NDArray) -> NDArray:
    """Six-value block: avg, max, min, std of sizes, outgoing ratio, log count.

    ``std`` is the population standard deviation; outgoing records are
    those with direction 0 (client → server).
    """
    count = len(norm_sizes)
    if count == 0:
        return np.zeros(STATS_SIZE, dtype=np.float64)
    outgoing = float(np.sum(directions == 0)) / count
    log_count = min(math.log(count + 1) / _LOG_COUNT_BOUND, 1.0)
    return np.array(
        [
            float(np.mean(norm_sizes)),
            float(np.max(norm_sizes)),
            float(np.min(norm_sizes)),
            float(np.std(norm_sizes)),
            outgoing,
            log_count,
        ],
        dtype=np.float64,
    )


def encode_session(
    sizes: list[int] | tuple[int, ...],
    directions: list[int] | tuple[int, ...],
    max_sequence_length: int,
) -> NDArray:
    """Normalize, pad (or truncate) and append the statistics block."""
    norm = np.array([normalize_size(s) for s in sizes], dtype=np.float64)
    dirs = np.asarray(directions, dtype=np.float64)

    seq = np.zeros(2 * max_sequence_length, dtype=np.float64)
    n = min(len(norm), max_sequence_length)
    seq[0:2 * n:2] = norm[:n]
    seq[1:2 * n:2] = dirs[:n]
    return np.concatenate([seq, compute_statistics(norm, dirs)])


def refresh_statistics(features: NDArray, record_count: int) -> None:
    """Recompute the trailing statistics block in place from the sequence part."""
    idx = 2 * np.arange(record_count)
    features[-STATS_SIZE:] = compute_statistics(features[idx], features[idx + 1])


# ────────────────────────────────────────────────────────────────────
# Pipeline
# ────────────────────────────────────────────────────────────────────
@dataclass
class _ReadStats:
    skipped_records: int = 0
    dropped_rows: dict[ParseStatus, int] = field(default_factory=lambda: defaultdict(int))

    @property
    def total_dropped(self) -> int:
        return sum(self.dropped_rows.values())


class FeaturePipeline:
    """CSV → ``Dataset``.

    Parameters
    ----------
    config : DataConfig
        Input path, split ratio and balancing policy.
    rng : Generator | None
        Random source for balancing noise and the shuffle.  A fresh
        entropy-seeded generator is used when omitted.
    """

    def __init__(
        self,
        config: DataConfig | None = None,
        rng: np.random.Generator | None = None,
    ) -> None:
        self.config = config or DataConfig()
        if not 0.0 <= self.config.test_ratio < 1.0:
            raise ValueError(f"test_ratio must be in [0, 1), got {self.config.test_ratio}")
        self._rng = rng if rng is not None else np.random.default_rng()

    # ── reading ──────────────────────────────────────────────────
    def read_rows(self, path: str | Path) -> tuple[list[ParsedRow], _ReadStats]:
        """Parse every data row; the first line is the header."""
        path = Path(path)
        try:
            # undecodable bytes become U+FFFD and fail to parse as a bad record
            fh = open(path, "r", encoding="utf-8", errors="replace")
        except OSError as exc:
            raise FeatureFileError(f"Cannot open feature file {path}: {exc}") from exc

        stats = _ReadStats()
        rows: list[ParsedRow] = []
        with fh:
            header = fh.readline()
            if not header:
                raise FeatureFileError(f"Feature file {path} is empty")
            for line_no, line in enumerate(fh, start=2):
                if "\ufffd" in line:
                    logger.debug(f"{path.name}:{line_no}: line is not valid UTF-8")
                row = parse_row(line)
                stats.skipped_records += row.bad_tokens
                if row.ok:
                    rows.append(row)
                elif row.status is not ParseStatus.EMPTY or row.label >= 0:
                    stats.dropped_rows[row.status] += 1
                    logger.debug(f"{path.name}:{line_no}: dropping row ({row.status.value})")
        return rows, stats

    # ── building ─────────────────────────────────────────────────
    @staticmethod
    def build_samples(rows: list[ParsedRow]) -> tuple[list[Sample], int]:
        """Encode parsed rows against the corpus-wide maximum length."""
        max_len = max((len(r.sizes) for r in rows), default=0)
        samples = [
            Sample(
                label=r.label,
                features=encode_session(r.sizes, r.directions, max_len),
                record_count=len(r.sizes),
            )
            for r in rows
        ]
        return samples, max_len

    def balance(self, samples: list[Sample]) -> list[Sample]:
        """Oversample minority labels up to the largest class size.

        Each synthetic sample duplicates a random sample of its label and
        adds N(0, noise_std) noise to the size slots of its real records
        (direction bits and padding untouched), clamped to [0, 1].
        """
        groups: dict[int, list[Sample]] = defaultdict(list)
        for s in samples:
            groups[s.label].append(s)
        if not groups:
            return list(samples)

        target = max(len(g) for g in groups.values())
        balanced = list(samples)
        for label in sorted(groups):
            group = groups[label]
            need = target - len(group)
            if need <= 0:
                continue
            picks = self._rng.integers(0, len(group), size=need)
            for pick in picks:
                src = group[int(pick)]
                features = src.features.copy()
                idx = 2 * np.arange(src.record_count)
                noise = self._rng.normal(0.0, self.config.noise_std, size=src.record_count)
                features[idx] = np.clip(features[idx] + noise, 0.0, 1.0)
                refresh_statistics(features, src.record_count)
                balanced.append(Sample(label, features, src.record_count))
            logger.debug(f"Label {label}: synthesized {need} samples")
        return balanced

    def split(self, samples: list[Sample]) -> tuple[list[Sample], list[Sample]]:
        """Shuffle once, then first (1 - test_ratio) → train, rest → test."""
        order = self._rng.permutation(len(samples))
        shuffled = [samples[i] for i in order]
        n_test = int(len(shuffled) * self.config.test_ratio)
        n_train = len(shuffled) - n_test
        return shuffled[:n_train], shuffled[n_train:]

    def load(self, path: str | Path | None = None) -> Dataset:
        """Run the full pipeline on ``path`` (default: ``config.features_csv``)."""
        path = Path(path or self.config.features_csv)
        rows, stats = self.read_rows(path)
        samples, max_len = self.build_samples(rows)
        num_labels = 1 + max((s.label for s in samples), default=-1)

        logger.info(
            f"Loaded {len(samples)} samples with {num_labels} labels from {path} "
            f"(max sequence length {max_len})"
        )
        if stats.skipped_records:
            logger.info(f"Skipped {stats.skipped_records} malformed records")
        if stats.total_dropped:
            detail = ", ".join(f"{k.value}={v}" for k, v in stats.dropped_rows.items())
            logger.info(f"Dropped {stats.total_dropped} rows ({detail})")

        if self.config.balance:
            samples = self.balance(samples)

        class_counts: dict[int, int] = defaultdict(int)
        for s in samples:
            class_counts[s.label] += 1

        train, test = self.split(samples)
        logger.info(f"Split into {len(train)} training and {len(test)} test samples")

        return Dataset(
            train=train,
            test=test,
            num_labels=num_labels,
            max_sequence_length=max_len,
            skipped_records=stats.skipped_records,
            dropped_rows=stats.total_dropped,
            class_counts=dict(class_counts),
        )

    # ── single-session encoding (prediction) ─────────────────────
    @staticmethod
    def encode(feature_str: str, max_sequence_length: int) -> NDArray:
        """Encode one ``;``-joined session for a model trained with ``max_sequence_length``.

        Raises ``ValueError`` when the string holds no valid record.
        """
        sizes, directions, bad = parse_records(feature_str)
        if not sizes:
            raise ValueError("Session contains no valid records")
        if bad:
            logger.info(f"Skipped {bad} malformed records")
        if len(sizes) > max_sequence_length:
            logger.warning(
                f"Session has {len(sizes)} records; truncating to {max_sequence_length}"
            )
        return encode_session(sizes, directions, max_sequence_length)
