"""End-to-end sender report run."""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from gmail_sender_report.config import DispatchConfig
from gmail_sender_report.gmail.client import MessageSource
from gmail_sender_report.models import RunSummary
from gmail_sender_report.pipeline.aggregator import SenderAggregator
from gmail_sender_report.pipeline.dispatcher import BatchDispatcher, ProgressCallback
from gmail_sender_report.pipeline.fetcher import MetadataFetcher
from gmail_sender_report.pipeline.lister import MessageLister
from gmail_sender_report.pipeline.reporter import render, write_report
from gmail_sender_report.utils import Sleep

logger = structlog.get_logger()


async def run_sender_report(
    source: MessageSource,
    config: DispatchConfig,
    *,
    output_path: Path | None = None,
    on_progress: ProgressCallback | None = None,
    sleep: Sleep = asyncio.sleep,
) -> RunSummary:
    """List, fetch, aggregate and render the sender report.

    The run is all-or-nothing: if listing or any fetch fails fatally, the
    exception propagates and no report is written.

    Args:
        source: Authenticated message source.
        config: Concurrency, pacing, retry and timeout limits.
        output_path: Where to write the CSV. Nothing is written when None.
        on_progress: Optional progress callback.
        sleep: Awaitable used for pacing and backoff delays.

    Returns:
        RunSummary: Rendered rows plus listing and skip totals.

    Raises:
        ListError: If the message listing fails.
        FatalFetchError: If a fetch fails with an unrecoverable error.
    """
    aggregator = SenderAggregator()
    lister = MessageLister(source, config, sleep=sleep)
    fetcher = MetadataFetcher(source, config, sleep=sleep)
    dispatcher = BatchDispatcher(fetcher, aggregator, config, sleep=sleep, on_progress=on_progress)

    logger.info(
        "sender_report_started",
        max_concurrent_requests=config.max_concurrent_requests,
        inter_batch_delay_ms=config.inter_batch_delay_ms,
        max_retry_attempts=config.max_retry_attempts,
        per_call_timeout_ms=config.per_call_timeout_ms,
    )

    await dispatcher.run(lister.list_messages())

    rows = render(aggregator.snapshot())
    if output_path is not None:
        write_report(rows, output_path)

    summary = RunSummary(
        rows=rows,
        total_listed=lister.listed_count,
        skipped=aggregator.skipped,
        output_path=output_path,
    )
    logger.info(
        "sender_report_completed",
        total_listed=summary.total_listed,
        unique_senders=summary.unique_senders,
        skipped=summary.skipped_count,
    )
    return summary
