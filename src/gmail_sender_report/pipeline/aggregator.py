"""Thread-safe sender counting table."""

from __future__ import annotations

import threading
from collections.abc import Mapping
from types import MappingProxyType

from gmail_sender_report.models import ProgressSnapshot, SkipRecord


class SenderAggregator:
    """Counts messages per sender identity.

    Every mutation happens under one lock, so ``record`` may be called from
    any number of tasks or threads without losing increments. Taking a
    snapshot freezes the aggregator.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: dict[str, int] = {}
        self._skipped: list[SkipRecord] = []
        self._processed = 0
        self._total = 0
        self._frozen = False

    def record(self, identity: str) -> None:
        """Count one message from ``identity``."""
        with self._lock:
            self._ensure_open()
            self._counts[identity] = self._counts.get(identity, 0) + 1
            self._processed += 1

    def record_skip(self, item_id: str, reason: str) -> None:
        """Note a message that was excluded from the counts."""
        with self._lock:
            self._ensure_open()
            self._skipped.append(SkipRecord(item_id=item_id, reason=reason))
            self._processed += 1

    def add_listed(self, count: int = 1) -> None:
        with self._lock:
            self._total += count

    def progress(self) -> ProgressSnapshot:
        with self._lock:
            return ProgressSnapshot(processed=self._processed, total=self._total)

    @property
    def skipped(self) -> list[SkipRecord]:
        with self._lock:
            return list(self._skipped)

    def snapshot(self) -> Mapping[str, int]:
        """Freeze the aggregator and return a read-only copy of the counts."""
        with self._lock:
            self._frozen = True
            return MappingProxyType(dict(self._counts))

    def _ensure_open(self) -> None:
        if self._frozen:
            raise RuntimeError("SenderAggregator is frozen; no further updates are accepted")
