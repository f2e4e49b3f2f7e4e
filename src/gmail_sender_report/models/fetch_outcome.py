"""Per-message fetch outcomes.

A metadata fetch ends in exactly one of these variants. ``Transient`` is only
ever seen inside the fetcher's retry loop; callers of ``MetadataFetcher.fetch``
receive ``Success``, ``Skipped`` or ``Fatal``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Union

RawHeaders = Mapping[str, str]


@dataclass(frozen=True)
class Success:
    headers: RawHeaders


@dataclass(frozen=True)
class Transient:
    reason: str


@dataclass(frozen=True)
class Skipped:
    reason: str


@dataclass(frozen=True)
class Fatal:
    reason: str


FetchOutcome = Union[Success, Transient, Skipped, Fatal]
