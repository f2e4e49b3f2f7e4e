"""Concurrent fetch-and-aggregate pipeline."""

from gmail_sender_report.pipeline.aggregator import SenderAggregator
from gmail_sender_report.pipeline.dispatcher import BatchDispatcher
from gmail_sender_report.pipeline.fetcher import MetadataFetcher, classify_failure
from gmail_sender_report.pipeline.lister import MessageLister
from gmail_sender_report.pipeline.reporter import render, write_report
from gmail_sender_report.pipeline.runner import run_sender_report

__all__ = [
    "BatchDispatcher",
    "MessageLister",
    "MetadataFetcher",
    "SenderAggregator",
    "classify_failure",
    "render",
    "run_sender_report",
    "write_report",
]
