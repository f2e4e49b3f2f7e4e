"""Rendering and writing the sender report."""

from __future__ import annotations

import csv
import os
import tempfile
from collections.abc import Iterable, Mapping
from pathlib import Path

import structlog

from gmail_sender_report.models import ReportRow

logger = structlog.get_logger()

REPORT_HEADER: tuple[str, str] = ("Sender", "MessageCount")


def render(table: Mapping[str, int]) -> list[ReportRow]:
    """Order the counting table for output.

    Rows are sorted by count descending, then by identity ascending, so the
    same input always yields the same report.
    """
    ordered = sorted(table.items(), key=lambda kv: (-kv[1], kv[0]))
    return [ReportRow(identity=identity, count=count) for identity, count in ordered]


def write_report(rows: Iterable[ReportRow], path: Path) -> Path:
    """Write the report as UTF-8 CSV with a ``Sender,MessageCount`` header.

    The file is written to a temporary sibling and moved into place, so an
    interrupted write never leaves a partial report behind.

    Args:
        rows: Rendered report rows.
        path: Destination CSV path.

    Returns:
        The path written.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    written = 0
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
            writer = csv.writer(fh, lineterminator="\n")
            writer.writerow(REPORT_HEADER)
            for row in rows:
                writer.writerow([row.identity, row.count])
                written += 1
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.info("report_written", path=str(path), rows=written)
    return path
