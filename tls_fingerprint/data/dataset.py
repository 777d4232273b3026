"""
Dataset Containers
==================

``Sample`` is one encoded session; ``Dataset`` holds the disjoint
train/test partitions produced by the feature pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Sequence

import numpy as np
from numpy.typing import NDArray

STATS_SIZE: int = 6
"""Length of the trailing statistics block of every feature vector."""


@dataclass
class Sample:
    """One session: a dense label and its fixed-width feature vector.

    ``record_count`` is the number of real (unpadded) records at the
    head of the sequence part of ``features``.
    """

    label: int
    features: NDArray
    record_count: int = 0


@dataclass
class Dataset:
    train: list[Sample]
    test: list[Sample]
    num_labels: int
    max_sequence_length: int
    skipped_records: int = 0
    dropped_rows: int = 0
    class_counts: dict[int, int] = field(default_factory=dict)

    @property
    def feature_dim(self) -> int:
        return self.max_sequence_length * 2 + STATS_SIZE

    def __len__(self) -> int:
        return len(self.train) + len(self.test)


def to_arrays(samples: Sequence[Sample], feature_dim: int | None = None) -> tuple[NDArray, NDArray]:
    """Stack samples into ``(X, y)``; an empty list gives a ``(0, dim)`` matrix."""
    if not samples:
        return np.zeros((0, feature_dim or 0)), np.zeros(0, dtype=int)
    X = np.stack([s.features for s in samples]).astype(np.float64)
    y = np.array([s.label for s in samples], dtype=int)
    return X, y


# ────────────────────────────────────────────────────────────────────
# Batch generator
# ────────────────────────────────────────────────────────────────────
class BatchGenerator:
    """Iterate over samples in fixed-size mini-batches.

    Parameters
    ----------
    samples    : sequence of Sample
    batch_size : int — number of samples per batch (last may be short).
    shuffle    : bool — shuffle the order before iterating.
    rng        : Generator, optional.

    Yields
    ------
    list[Sample]
    """

    def __init__(
        self,
        samples: Sequence[Sample],
        batch_size: int = 32,
        shuffle: bool = False,
        rng: np.random.Generator | None = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.samples = samples
        self.batch_size = batch_size
        self.shuffle = shuffle
        self._rng = rng or np.random.default_rng()

    def __iter__(self) -> Iterator[list[Sample]]:
        n = len(self.samples)
        indices = np.arange(n)

        if self.shuffle:
            self._rng.shuffle(indices)

        for start in range(0, n, self.batch_size):
            idx = indices[start:start + self.batch_size]
            yield [self.samples[i] for i in idx]

    def __len__(self) -> int:
        return int(np.ceil(len(self.samples) / self.batch_size))
