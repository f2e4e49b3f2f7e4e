"""Metadata fetching with failure classification and bounded retries."""

from __future__ import annotations

import asyncio

import structlog

from gmail_sender_report.config import DispatchConfig
from gmail_sender_report.exceptions import AuthenticationError, GmailAPIError, SenderReportError
from gmail_sender_report.gmail.client import MessageSource
from gmail_sender_report.gmail.parsing import header_map
from gmail_sender_report.models import (
    Fatal,
    FetchOutcome,
    ItemRef,
    Skipped,
    Success,
    Transient,
)
from gmail_sender_report.utils import BackoffPolicy, Sleep

logger = structlog.get_logger()

RATE_LIMIT_REASONS = frozenset({"ratelimitexceeded", "userratelimitexceeded"})

# Errors a remote call may raise that classify_failure understands.
REMOTE_ERRORS: tuple[type[BaseException], ...] = (SenderReportError, asyncio.TimeoutError, TimeoutError)


def _is_rate_limit(reason: str | None) -> bool:
    if not reason:
        return False
    return reason.replace("_", "").lower() in RATE_LIMIT_REASONS


def classify_failure(exc: BaseException) -> FetchOutcome:
    """Map a failed remote call onto Transient, Skipped or Fatal.

    Args:
        exc: Exception raised by a MessageSource call or its timeout.

    Returns:
        The outcome that decides between retrying, skipping and aborting.
    """
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return Transient("request timed out")
    if isinstance(exc, AuthenticationError):
        return Fatal(str(exc))
    if isinstance(exc, GmailAPIError):
        status = exc.status_code
        if status is None:
            return Transient(str(exc))
        if status == 429 or status >= 500:
            return Transient(f"HTTP {status}")
        if status == 403 and _is_rate_limit(exc.reason):
            return Transient(f"HTTP 403 {exc.reason}")
        if status in (401, 403):
            return Fatal(f"HTTP {status}: {exc}")
        return Skipped(f"HTTP {status}")
    return Fatal(str(exc))


class MetadataFetcher:
    """Fetches the sender headers of one message at a time.

    Transient failures are retried with exponential backoff; once the retry
    budget is spent the message is reported as Skipped, so callers only ever
    see Success, Skipped or Fatal.
    """

    def __init__(
        self,
        source: MessageSource,
        config: DispatchConfig,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._source = source
        self._timeout = config.per_call_timeout
        self._policy = BackoffPolicy.from_config(config)
        self._sleep = sleep

    async def fetch(self, item: ItemRef) -> FetchOutcome:
        delays = self._policy.delays()
        attempt = 0
        while True:
            attempt += 1
            outcome = await self._attempt(item)
            if not isinstance(outcome, Transient):
                return outcome

            delay = next(delays, None)
            if delay is None:
                logger.warning(
                    "fetch_retry_exhausted",
                    message_id=item.id,
                    attempts=attempt,
                    reason=outcome.reason,
                )
                return Skipped(f"retries exhausted: {outcome.reason}")

            logger.warning(
                "fetch_retry",
                message_id=item.id,
                attempt=attempt,
                max_retries=self._policy.max_retries,
                delay=delay,
                reason=outcome.reason,
            )
            await self._sleep(delay)

    async def _attempt(self, item: ItemRef) -> FetchOutcome:
        try:
            message = await asyncio.wait_for(self._source.get_message(item), timeout=self._timeout)
        except REMOTE_ERRORS as exc:
            return classify_failure(exc)

        headers = header_map(message) if isinstance(message, dict) else None
        if headers is None:
            return Skipped("malformed response")
        if "from" not in headers:
            return Skipped("missing From header")
        return Success(headers)
