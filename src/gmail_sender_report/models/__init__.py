"""Data models for Gmail Sender Report.

This module contains Pydantic models for the values passed between the
pipeline stages, plus the fetch outcome variants.
"""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from gmail_sender_report.models.fetch_outcome import (
    Fatal,
    FetchOutcome,
    RawHeaders,
    Skipped,
    Success,
    Transient,
)


class ItemRef(BaseModel):
    """Opaque handle to a remote message."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="Gmail message ID")


class SkipRecord(BaseModel):
    """A message excluded from aggregation, with the reason why."""

    model_config = ConfigDict(frozen=True)

    item_id: str = Field(description="Gmail message ID")
    reason: str = Field(description="Why the message was skipped")


class ProgressSnapshot(BaseModel):
    """Processed / total counters for display."""

    model_config = ConfigDict(frozen=True)

    processed: int = Field(ge=0, description="Messages with a terminal disposition")
    total: int = Field(ge=0, description="Messages listed so far")


class ReportRow(BaseModel):
    """One line of the sender report."""

    model_config = ConfigDict(frozen=True)

    identity: str = Field(description="Normalized sender email address")
    count: int = Field(ge=1, description="Number of messages from this sender")


class RunSummary(BaseModel):
    """Result of a completed sender report run."""

    rows: list[ReportRow] = Field(default_factory=list, description="Rendered report rows")
    total_listed: int = Field(ge=0, description="Messages returned by the listing")
    skipped: list[SkipRecord] = Field(default_factory=list, description="Skipped messages")
    output_path: Optional[Path] = Field(default=None, description="Where the report was written")

    @property
    def unique_senders(self) -> int:
        return len(self.rows)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    @property
    def aggregated_count(self) -> int:
        return sum(row.count for row in self.rows)


__all__ = [
    "Fatal",
    "FetchOutcome",
    "ItemRef",
    "ProgressSnapshot",
    "RawHeaders",
    "ReportRow",
    "RunSummary",
    "SkipRecord",
    "Skipped",
    "Success",
    "Transient",
]
