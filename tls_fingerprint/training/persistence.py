"""
Checkpoint Persistence
======================

Binary layout (little-endian, no version field)::

    int32 input_dim
    int32 num_labels
    repeated per layer, in forward order:
        int32   output_size
        int32   input_size
        float64 weights[output_size * input_size]   (row-major)
        float64 biases[output_size]

A convolution layer is written with ``output_size = out_channels`` and
``input_size = in_channels * kernel_size``; its kernel bank is stored
in ``(out_channels, in_channels, kernel_size)`` row-major order.

The reader must be told the expected dimensions and topology; the
header is only used to validate them.  ``save`` writes to a sibling
temporary file and atomically replaces the target, so a reader never
sees a half-written checkpoint.
"""

from __future__ import annotations

import os
import struct
from pathlib import Path
from typing import BinaryIO

import numpy as np
from loguru import logger

from ..data.dataset import STATS_SIZE
from ..network.network import Network
from ..utils.config import ModelConfig

_INT_PAIR = struct.Struct("<ii")
PARAM_DTYPE = np.dtype("<f8")


class CheckpointError(ValueError):
    """The checkpoint is missing, truncated or does not match the expected model."""


def save(path: str | Path, network: Network) -> Path:
    """Write ``network`` to ``path`` atomically and return the path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")

    try:
        with open(tmp, "wb") as fh:
            fh.write(_INT_PAIR.pack(network.input_dim, network.num_labels))
            for layer in network.layers:
                W = layer.params["W"]
                b = layer.params["b"]
                out_size = W.shape[0]
                fh.write(_INT_PAIR.pack(out_size, W.size // out_size))
                fh.write(np.ascontiguousarray(W, dtype=PARAM_DTYPE).tobytes())
                fh.write(np.ascontiguousarray(b, dtype=PARAM_DTYPE).tobytes())
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise

    logger.info(f"Model saved to {path}")
    return path


def _read_exact(fh: BinaryIO, n: int) -> bytes:
    data = fh.read(n)
    if len(data) != n:
        raise CheckpointError(f"Truncated checkpoint: expected {n} bytes, got {len(data)}")
    return data


def _check_dims(input_dim: int, num_labels: int) -> None:
    """A feature vector is 2·L sequence slots plus the statistics block, L >= 1."""
    if (
        input_dim < STATS_SIZE + 2
        or (input_dim - STATS_SIZE) % 2 != 0
        or num_labels <= 0
    ):
        raise CheckpointError(
            f"Impossible model dimensions (input_dim={input_dim}, num_labels={num_labels})"
        )


def read_header(path: str | Path) -> tuple[int, int]:
    """Return ``(input_dim, num_labels)`` stored in a checkpoint."""
    try:
        with open(path, "rb") as fh:
            dims = _INT_PAIR.unpack(_read_exact(fh, _INT_PAIR.size))
    except OSError as exc:
        raise CheckpointError(f"Cannot read checkpoint {path}: {exc}") from exc
    _check_dims(*dims)
    return dims


def read_checkpoint(
    path: str | Path,
    input_dim: int,
    num_labels: int,
    config: ModelConfig | None = None,
) -> Network:
    """Strictly load a checkpoint; raise ``CheckpointError`` on any problem."""
    _check_dims(input_dim, num_labels)
    try:
        network = Network.build(input_dim, num_labels, config)
    except (ValueError, MemoryError) as exc:
        raise CheckpointError(f"Cannot build a model for {path}: {exc}") from exc
    try:
        fh = open(path, "rb")
    except OSError as exc:
        raise CheckpointError(f"Cannot open checkpoint {path}: {exc}") from exc

    with fh:
        stored = _INT_PAIR.unpack(_read_exact(fh, _INT_PAIR.size))
        if stored != (input_dim, num_labels):
            raise CheckpointError(
                f"Checkpoint dimensions {stored} do not match expected "
                f"{(input_dim, num_labels)}"
            )

        for i, layer in enumerate(network.layers):
            W = layer.params["W"]
            b = layer.params["b"]
            expected = (W.shape[0], W.size // W.shape[0])
            sizes = _INT_PAIR.unpack(_read_exact(fh, _INT_PAIR.size))
            if sizes != expected:
                raise CheckpointError(f"Layer {i}: stored shape {sizes}, expected {expected}")

            w_bytes = _read_exact(fh, W.size * PARAM_DTYPE.itemsize)
            b_bytes = _read_exact(fh, b.size * PARAM_DTYPE.itemsize)
            W[...] = np.frombuffer(w_bytes, dtype=PARAM_DTYPE).reshape(W.shape)
            b[...] = np.frombuffer(b_bytes, dtype=PARAM_DTYPE)

        if fh.read(1):
            raise CheckpointError("Checkpoint has trailing data; topology differs")

    logger.info(f"Model loaded from {path}")
    return network


def load(
    path: str | Path,
    input_dim: int,
    num_labels: int,
    config: ModelConfig | None = None,
    rng: np.random.Generator | None = None,
) -> Network:
    """Load a checkpoint, falling back to a fresh network on any failure.

    A missing, truncated or mismatched checkpoint is logged as a warning
    and a newly initialized network of the expected shape is returned,
    so training can restart from scratch.
    """
    try:
        return read_checkpoint(path, input_dim, num_labels, config)
    except CheckpointError as exc:
        logger.warning(f"{exc}; starting from a freshly initialized model")
        return Network.build(input_dim, num_labels, config, rng=rng)
