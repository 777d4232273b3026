"""
logging.py – Structured logging with loguru.

Library modules import ``logger`` from loguru directly; entry points call
``setup_logging`` once to install the console (and optional file) sinks.
"""
from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> – "
    "<level>{message}</level>"
)


def setup_logging(level: str = "INFO", log_dir: str | Path | None = None) -> None:
    """Replace loguru's default handler with project sinks."""
    logger.remove()

    # Console – colourful
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level, colorize=True)

    # File – DEBUG+, rotated
    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_dir / "tls_fingerprint.log",
            rotation="10 MB",
            retention="30 days",
            level="DEBUG",
        )
