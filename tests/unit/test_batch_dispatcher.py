"""Unit tests for the bounded-concurrency batch dispatcher."""

import asyncio

import pytest

from gmail_sender_report.config import DispatchConfig
from gmail_sender_report.exceptions import FatalFetchError, GmailAPIError, ListError
from gmail_sender_report.models import ItemRef, ProgressSnapshot
from gmail_sender_report.pipeline.aggregator import SenderAggregator
from gmail_sender_report.pipeline.dispatcher import BatchDispatcher
from gmail_sender_report.pipeline.fetcher import MetadataFetcher
from gmail_sender_report.pipeline.lister import MessageLister


def _build(source, config, sleep, on_progress=None):
    aggregator = SenderAggregator()
    fetcher = MetadataFetcher(source, config, sleep=sleep)
    dispatcher = BatchDispatcher(fetcher, aggregator, config, sleep=sleep, on_progress=on_progress)
    lister = MessageLister(source, config, sleep=sleep)
    return aggregator, dispatcher, lister


class TestBatchDispatcher:
    """Test suite for BatchDispatcher."""

    @pytest.mark.asyncio
    async def test_aggregates_every_message(
        self, fake_source_factory, message_factory, dispatch_config, recording_sleep
    ) -> None:
        source = fake_source_factory(
            {
                "m1": message_factory("m1", "Alice <alice@Example.com>"),
                "m2": message_factory("m2", "alice@example.com"),
                "m3": message_factory("m3", "bob@company.org"),
                "m4": message_factory("m4", "Mailer Daemon"),
                "m5": message_factory("m5", subject="no from"),
            }
        )
        aggregator, dispatcher, lister = _build(source, dispatch_config, recording_sleep)

        await dispatcher.run(lister.list_messages())

        assert dict(aggregator.snapshot()) == {"alice@example.com": 2, "bob@company.org": 1}
        assert sorted((s.item_id, s.reason) for s in aggregator.skipped) == [
            ("m4", "unrecognized sender"),
            ("m5", "missing From header"),
        ]
        assert aggregator.progress() == ProgressSnapshot(processed=5, total=5)

    @pytest.mark.parametrize("limit", [1, 4, 10])
    @pytest.mark.asyncio
    async def test_never_exceeds_concurrency_limit(
        self, fake_source_factory, message_factory, recording_sleep, limit: int
    ) -> None:
        config = DispatchConfig(max_concurrent_requests=limit, inter_batch_delay_ms=0)
        messages = {f"m{i}": message_factory(f"m{i}", f"user{i % 7}@example.com") for i in range(40)}
        source = fake_source_factory(messages, page_size=9, delay=0.005)
        aggregator, dispatcher, lister = _build(source, config, recording_sleep)

        await dispatcher.run(lister.list_messages())

        assert source.peak_in_flight <= limit
        assert dispatcher.peak_in_flight == limit
        assert sum(aggregator.snapshot().values()) == 40

    @pytest.mark.asyncio
    async def test_paces_between_batches(
        self, fake_source_factory, message_factory, recording_sleep
    ) -> None:
        config = DispatchConfig(max_concurrent_requests=3, inter_batch_delay_ms=80)
        messages = {f"m{i}": message_factory(f"m{i}", "a@b.com") for i in range(10)}
        source = fake_source_factory(messages)
        aggregator, dispatcher, lister = _build(source, config, recording_sleep)

        await dispatcher.run(lister.list_messages())

        # Batches of 3, 3, 3, 1: a pause before each batch after the first.
        assert recording_sleep.calls == [0.08, 0.08, 0.08]
        assert aggregator.snapshot()["a@b.com"] == 10

    @pytest.mark.asyncio
    async def test_fatal_cancels_remaining_work(
        self, fake_source_factory, message_factory, recording_sleep
    ) -> None:
        config = DispatchConfig(max_concurrent_requests=10, inter_batch_delay_ms=0)
        messages = {f"m{i}": message_factory(f"m{i}", f"user{i}@example.com") for i in range(1, 1001)}
        messages["m50"] = GmailAPIError("unauthorized", status_code=401)
        source = fake_source_factory(messages, page_size=100, delay=0.001)
        aggregator, dispatcher, lister = _build(source, config, recording_sleep)

        with pytest.raises(FatalFetchError) as excinfo:
            await dispatcher.run(lister.list_messages())

        assert excinfo.value.item_id == "m50"
        assert dispatcher.dispatched < 1000
        assert len(source.get_calls) < 1000
        assert source.in_flight == 0

    @pytest.mark.asyncio
    async def test_list_error_mid_stream_propagates(
        self, message_factory, dispatch_config, recording_sleep
    ) -> None:
        aggregator = SenderAggregator()

        class _Source:
            async def get_message(self, item: ItemRef) -> dict:
                return message_factory(item.id, "a@b.com")

        async def items():
            yield ItemRef(id="m1")
            yield ItemRef(id="m2")
            raise ListError("page 2 failed")

        fetcher = MetadataFetcher(_Source(), dispatch_config, sleep=recording_sleep)
        dispatcher = BatchDispatcher(fetcher, aggregator, dispatch_config, sleep=recording_sleep)

        with pytest.raises(ListError):
            await dispatcher.run(items())

    @pytest.mark.asyncio
    async def test_transient_failures_do_not_abort(
        self, fake_source_factory, message_factory, dispatch_config, recording_sleep
    ) -> None:
        source = fake_source_factory(
            {
                "m1": message_factory("m1", "a@b.com"),
                "m2": GmailAPIError("busy", status_code=503),
                "m3": message_factory("m3", "a@b.com"),
            }
        )
        aggregator, dispatcher, lister = _build(source, dispatch_config, recording_sleep)

        await dispatcher.run(lister.list_messages())

        assert dict(aggregator.snapshot()) == {"a@b.com": 2}
        assert [s.item_id for s in aggregator.skipped] == ["m2"]
        assert source.get_calls["m2"] == 4

    @pytest.mark.asyncio
    async def test_progress_callback_is_monotonic(
        self, fake_source_factory, message_factory, dispatch_config, recording_sleep
    ) -> None:
        snapshots: list[ProgressSnapshot] = []
        messages = {f"m{i}": message_factory(f"m{i}", "a@b.com") for i in range(8)}
        source = fake_source_factory(messages)
        _, dispatcher, lister = _build(source, dispatch_config, recording_sleep, snapshots.append)

        await dispatcher.run(lister.list_messages())

        processed = [s.processed for s in snapshots]
        totals = [s.total for s in snapshots]
        assert processed == sorted(processed)
        assert totals == sorted(totals)
        assert snapshots[-1] == ProgressSnapshot(processed=8, total=8)

    @pytest.mark.asyncio
    async def test_no_new_fetch_after_fatal_result(
        self, message_factory, dispatch_config, recording_sleep
    ) -> None:
        fetched: list[str] = []

        class _Source:
            async def get_message(self, item: ItemRef) -> dict:
                fetched.append(item.id)
                if item.id == "a":
                    raise GmailAPIError("unauthorized", status_code=401)
                await asyncio.sleep(1.0)
                return message_factory(item.id, "a@b.com")

        async def items():
            yield ItemRef(id="a")
            yield ItemRef(id="b")
            # The window still has free slots when "a" comes back Fatal.
            await asyncio.sleep(0.01)
            yield ItemRef(id="c")
            yield ItemRef(id="d")

        aggregator = SenderAggregator()
        fetcher = MetadataFetcher(_Source(), dispatch_config, sleep=recording_sleep)
        dispatcher = BatchDispatcher(fetcher, aggregator, dispatch_config, sleep=recording_sleep)

        with pytest.raises(FatalFetchError) as excinfo:
            await dispatcher.run(items())

        assert excinfo.value.item_id == "a"
        assert fetched == ["a", "b"]
        assert dispatcher.dispatched == 2
