"""Command-line interface for Gmail Sender Report.

This module provides the main entry point for the CLI application.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import structlog
from pydantic import ValidationError
from tqdm import tqdm

from gmail_sender_report import __version__
from gmail_sender_report.config import Settings, get_settings
from gmail_sender_report.exceptions import (
    AuthenticationError,
    ConfigurationError,
    SenderReportError,
)
from gmail_sender_report.gmail.client import GmailClient
from gmail_sender_report.models import ProgressSnapshot
from gmail_sender_report.pipeline import run_sender_report

logger = structlog.get_logger()

# Command-line option -> Settings field.
_OVERRIDES = {
    "output": "output_path",
    "max_concurrent": "max_concurrent_requests",
    "delay_ms": "inter_batch_delay_ms",
    "max_retries": "max_retry_attempts",
    "timeout_ms": "per_call_timeout_ms",
    "page_size": "list_page_size",
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gmail-sender-report",
        description="Count Gmail messages per sender (all folders) and write a CSV report",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Report CSV path (default: settings output_path)",
    )
    parser.add_argument(
        "--max-concurrent",
        type=int,
        default=None,
        help="Maximum metadata requests in flight (default: settings max_concurrent_requests)",
    )
    parser.add_argument(
        "--delay-ms",
        type=int,
        default=None,
        help="Pause between dispatch batches in ms (default: settings inter_batch_delay_ms)",
    )
    parser.add_argument(
        "--max-retries",
        type=int,
        default=None,
        help="Retries for transient failures (default: settings max_retry_attempts)",
    )
    parser.add_argument(
        "--timeout-ms",
        type=int,
        default=None,
        help="Per-request timeout in ms (default: settings per_call_timeout_ms)",
    )
    parser.add_argument(
        "--page-size",
        type=int,
        default=None,
        help="Message ids per list page, 1-500 (default: settings list_page_size)",
    )
    parser.add_argument(
        "--show-skipped",
        action="store_true",
        help="Print every skipped message id with its reason",
    )
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable the progress bar",
    )
    return parser


def _resolve_settings(parsed: argparse.Namespace) -> Settings:
    overrides = {
        field: getattr(parsed, option)
        for option, field in _OVERRIDES.items()
        if getattr(parsed, option) is not None
    }
    if not overrides:
        return get_settings()
    return Settings(**overrides)


class _ProgressBar:
    """Feeds pipeline progress snapshots into a tqdm bar."""

    def __init__(self, bar: tqdm) -> None:
        self._bar = bar

    def __call__(self, snapshot: ProgressSnapshot) -> None:
        if snapshot.total != self._bar.total:
            self._bar.total = snapshot.total
        if snapshot.processed > self._bar.n:
            self._bar.update(snapshot.processed - self._bar.n)


async def _cmd_run(settings: Settings, parsed: argparse.Namespace) -> int:
    gmail = GmailClient(settings)
    try:
        await gmail.authenticate()
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    except AuthenticationError as exc:
        print(f"Authentication failed: {exc}", file=sys.stderr)
        return 1

    with tqdm(total=0, unit="msg", desc="Messages", disable=parsed.no_progress) as bar:
        try:
            summary = await run_sender_report(
                gmail,
                settings.dispatch_config(),
                output_path=settings.output_path,
                on_progress=_ProgressBar(bar),
            )
        except SenderReportError as exc:
            logger.error("sender_report_failed", error=str(exc))
            print(f"Run failed: {exc}. No report was written.", file=sys.stderr)
            return 1

    print(
        f"Found {summary.unique_senders} unique senders in {summary.total_listed} messages "
        f"({summary.skipped_count} skipped)."
    )
    if parsed.show_skipped:
        for skip in summary.skipped:
            print(f"- {skip.item_id}: {skip.reason}")
    print(f"Saved {summary.output_path}")
    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point for the Gmail Sender Report CLI.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Exit code (0 for success, 1 for a failed run, 2 for configuration errors).
    """
    if args is None:
        args = sys.argv[1:]

    parser = _build_parser()
    parsed = parser.parse_args(args)

    try:
        settings = _resolve_settings(parsed)
    except ValidationError as exc:
        print(f"Invalid configuration:\n{exc}", file=sys.stderr)
        return 2

    # Configure logging; stderr keeps stdout free for the progress bar and summary.
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level.upper(), logging.INFO)
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )

    logger.info("gmail_sender_report_started", version=__version__, debug=settings.debug)

    return asyncio.run(_cmd_run(settings, parsed))


if __name__ == "__main__":
    sys.exit(main())
