"""Bounded-concurrency dispatch of metadata fetches.

The dispatcher keeps a sliding window of at most ``max_concurrent_requests``
fetches in flight. Launches are grouped into batches of that size and each
new batch waits ``inter_batch_delay_ms`` before starting; fetches already in
flight keep running during the pause.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, Callable
from contextlib import aclosing

import structlog

from gmail_sender_report.config import DispatchConfig
from gmail_sender_report.exceptions import FatalFetchError
from gmail_sender_report.gmail.parsing import extract_identity
from gmail_sender_report.models import Fatal, FetchOutcome, ItemRef, ProgressSnapshot, Success
from gmail_sender_report.pipeline.aggregator import SenderAggregator
from gmail_sender_report.pipeline.fetcher import MetadataFetcher
from gmail_sender_report.utils import Sleep

logger = structlog.get_logger()

ProgressCallback = Callable[[ProgressSnapshot], None]

_FetchTask = asyncio.Task[tuple[ItemRef, FetchOutcome]]


class BatchDispatcher:
    """Fans message references out to the fetcher and feeds the aggregator."""

    def __init__(
        self,
        fetcher: MetadataFetcher,
        aggregator: SenderAggregator,
        config: DispatchConfig,
        *,
        sleep: Sleep = asyncio.sleep,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            fetcher: Fetcher used for every message.
            aggregator: Shared counting table receiving the results.
            config: Concurrency and pacing limits.
            sleep: Awaitable used for the pacing delay.
            on_progress: Called with the current counters after every listed
                message and every completed fetch.
        """
        self._fetcher = fetcher
        self._aggregator = aggregator
        self._config = config
        self._sleep = sleep
        self._on_progress = on_progress
        self.dispatched = 0
        self.peak_in_flight = 0

    async def run(self, items: AsyncGenerator[ItemRef, None]) -> None:
        """Fetch and aggregate every message produced by ``items``.

        Raises:
            FatalFetchError: If any fetch ends in a Fatal outcome. Outstanding
                work is cancelled and the item stream is closed first.
            ListError: Propagated from ``items``, after cancelling in-flight work.
        """
        limit = self._config.max_concurrent_requests
        pending: set[_FetchTask] = set()
        launched_in_batch = 0

        try:
            async with aclosing(items):
                async for item in items:
                    self._aggregator.add_listed()
                    self._report_progress()
                    pending = self._settle_finished(pending)

                    while len(pending) >= limit:
                        done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                        self._settle(done)

                    if launched_in_batch >= limit:
                        if self._config.inter_batch_delay > 0:
                            await self._sleep(self._config.inter_batch_delay)
                        launched_in_batch = 0
                        pending = self._settle_finished(pending)

                    pending.add(asyncio.create_task(self._fetch(item)))
                    launched_in_batch += 1
                    self.dispatched += 1
                    self.peak_in_flight = max(self.peak_in_flight, len(pending))

            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                self._settle(done)
        except BaseException:
            await self._cancel(pending)
            raise

        logger.info("dispatch_complete", dispatched=self.dispatched, peak_in_flight=self.peak_in_flight)

    async def _fetch(self, item: ItemRef) -> tuple[ItemRef, FetchOutcome]:
        return item, await self._fetcher.fetch(item)

    def _settle_finished(self, pending: set[_FetchTask]) -> set[_FetchTask]:
        """Settle every task that already finished; return the ones still running."""
        done = {task for task in pending if task.done()}
        self._settle(done)
        return pending - done

    def _settle(self, done: set[_FetchTask]) -> None:
        for task in done:
            item, outcome = task.result()
            if isinstance(outcome, Success):
                identity = extract_identity(outcome.headers)
                if identity is None:
                    self._aggregator.record_skip(item.id, "unrecognized sender")
                else:
                    self._aggregator.record(identity)
            elif isinstance(outcome, Fatal):
                logger.error("dispatch_aborted", message_id=item.id, reason=outcome.reason)
                raise FatalFetchError(item.id, outcome.reason)
            else:
                self._aggregator.record_skip(item.id, outcome.reason)
                logger.info("message_skipped", message_id=item.id, reason=outcome.reason)
            self._report_progress()

    async def _cancel(self, pending: set[_FetchTask]) -> None:
        if not pending:
            return
        logger.info("dispatch_cancelling", in_flight=len(pending))
        for task in pending:
            task.cancel()
        # Results of work that finished anyway are discarded.
        await asyncio.gather(*pending, return_exceptions=True)

    def _report_progress(self) -> None:
        if self._on_progress is not None:
            self._on_progress(self._aggregator.progress())
