"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
import structlog

from gmail_sender_report.config import DispatchConfig
from gmail_sender_report.models import ItemRef


def make_message(message_id: str, sender: str | None = None, **extra_headers: str) -> dict[str, Any]:
    """Build a Gmail API message as returned by users.messages.get(format=metadata)."""
    headers = []
    if sender is not None:
        headers.append({"name": "From", "value": sender})
    for name, value in extra_headers.items():
        headers.append({"name": name.replace("_", "-").title(), "value": value})
    return {"id": message_id, "threadId": f"t-{message_id}", "payload": {"headers": headers}}


class FakeMessageSource:
    """In-memory MessageSource.

    ``messages`` maps a message id to the value ``get_message`` produces: a
    message dict, an exception to raise, or a list of those consumed one per
    attempt (the last entry repeats).
    """

    def __init__(
        self,
        messages: dict[str, Any],
        *,
        page_size: int = 3,
        list_failures: list[BaseException] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.messages = dict(messages)
        self.page_size = page_size
        self.list_failures = list(list_failures or [])
        self.delay = delay
        self.list_calls = 0
        self.get_calls: dict[str, int] = {}
        self.in_flight = 0
        self.peak_in_flight = 0

    async def list_page(self, page_token: str | None = None) -> tuple[list[ItemRef], str | None]:
        self.list_calls += 1
        if self.list_failures:
            raise self.list_failures.pop(0)

        ids = list(self.messages)
        start = int(page_token or 0)
        end = start + self.page_size
        next_token = str(end) if end < len(ids) else None
        return [ItemRef(id=i) for i in ids[start:end]], next_token

    async def get_message(self, item: ItemRef) -> dict[str, Any]:
        attempt = self.get_calls.get(item.id, 0) + 1
        self.get_calls[item.id] = attempt
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            result = self.messages[item.id]
            if isinstance(result, list):
                result = result[min(attempt, len(result)) - 1]
            if isinstance(result, BaseException):
                raise result
            return result
        finally:
            self.in_flight -= 1


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays without waiting on them."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo logging configuration done by cli.main between tests."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def message_factory():
    """Provide the Gmail message builder."""
    return make_message


@pytest.fixture
def fake_source_factory():
    """Provide the in-memory MessageSource class."""
    return FakeMessageSource


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def dispatch_config() -> DispatchConfig:
    """Small, fast pipeline limits for tests."""
    return DispatchConfig(
        max_concurrent_requests=3,
        inter_batch_delay_ms=0,
        max_retry_attempts=3,
        per_call_timeout_ms=1_000,
        retry_base_delay_ms=500,
        retry_max_delay_ms=30_000,
    )


@pytest.fixture
def sample_email_data() -> dict:
    """Provide sample email data structure."""
    return {
        "id": "msg123456",
        "threadId": "thread789",
        "labelIds": ["INBOX", "UNREAD"],
        "payload": {
            "headers": [
                {"name": "Subject", "value": "Weekly Newsletter - Python Tips"},
                {"name": "From", "value": "Python Newsletter <Newsletter@Python.org>"},
                {"name": "To", "value": "user@example.com"},
            ],
        },
    }
