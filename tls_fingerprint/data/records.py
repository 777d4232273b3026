"""
Protocol Records → Feature CSV
==============================

Boundary with the external capture / dissection tools.  A dissector
emits one comma-separated line per encrypted record::

    <epoch timestamp>,<src addr>,<dst addr>,<frame length>,<handshake type>

A session (one capture file) becomes one feature-CSV row once every
record has a direction:

  * handshake type 1 (ClientHello)  → direction 0, learns client = src
  * handshake type 2 (ServerHello)  → direction 1, learns server = src
  * anything else                   → matched against the learned
    addresses; the record is excluded when the two address checks
    disagree or nothing has been learned yet.
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Iterable, NamedTuple

from loguru import logger

CLIENT_TO_SERVER: int = 0
SERVER_TO_CLIENT: int = 1

HANDSHAKE_CLIENT_HELLO: int = 1
HANDSHAKE_SERVER_HELLO: int = 2


class ProtocolRecord(NamedTuple):
    timestamp: float
    src: str
    dst: str
    frame_length: int
    handshake_type: int | None = None


def parse_dissector_line(line: str) -> ProtocolRecord | None:
    """Parse one dissector output line; ``None`` when the record is unusable."""
    tokens = [t.strip().strip('"') for t in line.strip().split(",")]
    if len(tokens) < 4:
        return None
    try:
        timestamp = float(tokens[0]) if tokens[0] else 0.0
        frame_length = int(tokens[3])
        handshake = int(tokens[4]) if len(tokens) > 4 and tokens[4] else None
    except ValueError:
        logger.debug(f"Failed to parse numeric fields in line: {line.strip()!r}")
        return None
    return ProtocolRecord(timestamp, tokens[1], tokens[2], frame_length, handshake)


def infer_directions(records: Iterable[ProtocolRecord]) -> list[tuple[int, int]]:
    """Return ``(frame_length, direction)`` for every record whose direction resolves.

    Records are walked in capture order, so addresses learned from a
    handshake apply to everything after it.
    """
    client: str | None = None
    server: str | None = None
    resolved: list[tuple[int, int]] = []

    for rec in records:
        if rec.handshake_type == HANDSHAKE_CLIENT_HELLO:
            direction = CLIENT_TO_SERVER
            client, server = rec.src, rec.dst
        elif rec.handshake_type == HANDSHAKE_SERVER_HELLO:
            direction = SERVER_TO_CLIENT
            client, server = rec.dst, rec.src
        elif client is not None or server is not None:
            by_client = CLIENT_TO_SERVER if rec.src == client else SERVER_TO_CLIENT
            by_server = SERVER_TO_CLIENT if rec.src == server else CLIENT_TO_SERVER
            if by_client != by_server:
                logger.debug(f"Undetermined direction for {rec.src}->{rec.dst}")
                continue
            direction = by_client
        else:
            logger.debug(f"Undetermined direction for {rec.src}->{rec.dst}")
            continue

        if rec.frame_length <= 0:
            continue
        resolved.append((rec.frame_length, direction))
    return resolved


def format_feature_string(pairs: Iterable[tuple[int, int]]) -> str:
    """``[(387, 0), (1492, 1)]`` → ``"387_0;1492_1"``."""
    return ";".join(f"{size}_{direction}" for size, direction in pairs)


def site_name_from_domain(domain: str) -> str:
    """``www.baidu.com`` → ``baidu``; a dotless name is returned unchanged."""
    parts = domain.strip().split(".")
    if len(parts) >= 2:
        return parts[-2]
    logger.warning(f"Invalid domain format: {domain!r}")
    return domain.strip()


def assign_site_labels(domains: Iterable[str]) -> dict[str, int]:
    """Dense labels in sorted site-name order."""
    sites = sorted({site_name_from_domain(d) for d in domains if d.strip()})
    return {site: label for label, site in enumerate(sites)}


# ────────────────────────────────────────────────────────────────────
# CSV artifacts
# ────────────────────────────────────────────────────────────────────
def write_feature_csv(path: str | Path, rows: Iterable[tuple[int, str]]) -> int:
    """Write ``site_label,packet_features`` rows; empty sessions are skipped.

    Returns the number of rows written.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    written = 0
    with open(path, "w", encoding="utf-8", newline="") as fh:
        fh.write("site_label,packet_features\n")
        for label, feature_str in rows:
            if not feature_str:
                continue
            fh.write(f"{label},{feature_str}\n")
            written += 1
    logger.info(f"Wrote {written} samples to {path}")
    return written


def write_label_map(path: str | Path, labels: dict[str, int]) -> None:
    """Write ``label,site_name`` sorted ascending by label."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="") as fh:
        writer = csv.writer(fh, lineterminator="\n")
        writer.writerow(["label", "site_name"])
        for site, label in sorted(labels.items(), key=lambda kv: kv[1]):
            writer.writerow([label, site])


def read_label_map(path: str | Path) -> dict[int, str]:
    """Read a ``label,site_name`` file into ``{label: site_name}``."""
    with open(path, "r", encoding="utf-8", newline="") as fh:
        reader = csv.DictReader(fh)
        return {int(row["label"]): row["site_name"] for row in reader}


def build_feature_rows(
    sessions: dict[str, list[list[ProtocolRecord]]],
    labels: dict[str, int],
) -> list[tuple[int, str]]:
    """Turn ``{site: [session records, ...]}`` into feature-CSV rows.

    Sites without a label are skipped with a warning.
    """
    rows: list[tuple[int, str]] = []
    for site, site_sessions in sessions.items():
        if site not in labels:
            logger.warning(f"No label for site {site!r}; skipping {len(site_sessions)} sessions")
            continue
        for records in site_sessions:
            rows.append((labels[site], format_feature_string(infer_directions(records))))
    return rows
