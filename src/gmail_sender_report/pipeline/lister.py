"""Paginated listing of every message id in the mailbox."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator

import structlog

from gmail_sender_report.config import DispatchConfig
from gmail_sender_report.exceptions import ListError
from gmail_sender_report.gmail.client import MessageSource
from gmail_sender_report.models import ItemRef, Transient
from gmail_sender_report.pipeline.fetcher import REMOTE_ERRORS, classify_failure
from gmail_sender_report.utils import BackoffPolicy, Sleep

logger = structlog.get_logger()


class MessageLister:
    """Lazily pages through users.messages.list.

    Each call to ``list_messages`` starts again from the first page; there is
    no persisted continuation state.
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
        self.listed_count = 0

    async def list_messages(self) -> AsyncGenerator[ItemRef, None]:
        """Yield every message reference in the order Gmail returns them.

        Raises:
            ListError: If a page cannot be fetched within the retry budget,
                or fails in a way that cannot be retried.
        """
        self.listed_count = 0
        page_token: str | None = None
        pages = 0

        while True:
            items, page_token = await self._fetch_page(page_token)
            pages += 1
            logger.info(
                "message_page_listed",
                page=pages,
                page_items=len(items),
                listed=self.listed_count + len(items),
            )

            for item in items:
                self.listed_count += 1
                yield item

            if not page_token:
                logger.info("message_listing_complete", pages=pages, listed=self.listed_count)
                return

    async def _fetch_page(self, page_token: str | None) -> tuple[list[ItemRef], str | None]:
        delays = self._policy.delays()
        attempt = 0
        while True:
            attempt += 1
            try:
                return await asyncio.wait_for(self._source.list_page(page_token), timeout=self._timeout)
            except REMOTE_ERRORS as exc:
                outcome = classify_failure(exc)
                if not isinstance(outcome, Transient):
                    raise ListError(f"Listing messages failed: {outcome.reason}") from exc

                delay = next(delays, None)
                if delay is None:
                    raise ListError(
                        f"Listing messages failed after {attempt} attempts: {outcome.reason}"
                    ) from exc

                logger.warning(
                    "list_retry",
                    page_token=page_token,
                    attempt=attempt,
                    max_retries=self._policy.max_retries,
                    delay=delay,
                    reason=outcome.reason,
                )
                await self._sleep(delay)
