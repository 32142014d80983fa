"""
Tests for the sink stage and the traffic flow.
"""

import time
from unittest.mock import MagicMock

import pytest

from analytics.conditions import TrafficConditionService
from ingest.parser import ParseErrorKind, TrafficEventParser
from models.condition import Condition
from models.counter_entry import CounterEntry
from models.traffic_event import EventType, TrafficEvent
from pipeline.flow import FlowConfig, TrafficFlow, create_flow_from_config
from pipeline.sink import TrafficEventSink
from storage.errors import StoreUnavailableError

from conftest import INTERVAL_MS

NOW = 1_700_000_000_000


class TestSink:
    def test_positive_count_increments(self):
        table = MagicMock()
        sink = TrafficEventSink(table)

        assert sink.process(TrafficEvent("s", NOW, EventType.VEHICLE, 4)) is True
        table.increment.assert_called_once_with("s", 4, NOW, "VEHICLE")
        assert sink.stats.stored == 1

    @pytest.mark.parametrize("count", [0, -3])
    def test_non_positive_count_is_skipped(self, count):
        table = MagicMock()
        sink = TrafficEventSink(table)

        assert sink.process(TrafficEvent("s", NOW, EventType.ACCIDENT, count)) is False
        table.increment.assert_not_called()
        assert sink.stats.skipped == 1

    def test_retries_then_succeeds(self):
        table = MagicMock()
        table.increment.side_effect = [StoreUnavailableError("locked"), None]
        sink = TrafficEventSink(table, max_retries=2, retry_delay=0)

        assert sink.process(TrafficEvent("s", NOW, EventType.VEHICLE, 1)) is True
        assert table.increment.call_count == 2
        assert sink.stats.store_failures == 0

    def test_drops_after_retries(self):
        table = MagicMock()
        table.increment.side_effect = StoreUnavailableError("gone")
        sink = TrafficEventSink(table, max_retries=1, retry_delay=0)

        assert sink.process(TrafficEvent("s", NOW, EventType.VEHICLE, 1)) is False
        assert table.increment.call_count == 2
        assert sink.stats.store_failures == 1
        assert sink.stats.stored == 0


class TestFlow:
    def _flow(self, table, **kwargs):
        parser = TrafficEventParser(clock=lambda: NOW)
        sink = TrafficEventSink(table, retry_delay=0)
        return TrafficFlow(parser, sink, FlowConfig(**kwargs))

    def test_records_reach_the_table(self, table):
        flow = self._flow(table)
        stats = flow.process_lines([
            "66N_1, now, VEHICLE, 51\n",
            "66N_1, now, VEHICLE, 51\n",
            "\n",
            "66N_1, now, ACCIDENT, 1\n",
        ])

        assert stats.received == 3
        assert stats.processed == 3
        assert stats.stored == 3
        assert list(table.read("66N_1", NOW, NOW + 1, EventType.VEHICLE)) == [CounterEntry(NOW, 102)]
        assert list(table.read("66N_1", NOW, NOW + 1, EventType.ACCIDENT)) == [CounterEntry(NOW, 1)]

    def test_bad_records_are_counted_and_skipped(self, table):
        flow = self._flow(table)
        stats = flow.process_lines([
            "66N_1, now, VEHICLE",
            "66N_1, soon, VEHICLE, 1",
            "66N_1, now, BUS, 1",
            "66N_1, now, VEHICLE, many",
            "66N_1, now, VEHICLE, 0",
            "66N_1, now, VEHICLE, 7",
        ])

        assert stats.rejected == {
            ParseErrorKind.MALFORMED.value: 1,
            ParseErrorKind.BAD_TIMESTAMP.value: 1,
            ParseErrorKind.BAD_TYPE.value: 1,
            ParseErrorKind.BAD_COUNT.value: 1,
        }
        assert stats.rejected_total == 4
        assert stats.parsed == 2
        assert stats.skipped == 1
        assert stats.stored == 1
        assert stats.processed == 6

    def test_many_workers_sum_concurrently(self, table):
        flow = self._flow(table, parser_workers=4, sink_workers=4, queue_size=10)
        stats = flow.process_lines(["hot, now, VEHICLE, 1"] * 200)

        assert stats.stored == 200
        assert list(table.read("hot", NOW, NOW + 1, EventType.VEHICLE)) == [CounterEntry(NOW, 200)]

    def test_wait_until_processed(self, table):
        flow = self._flow(table)
        flow.start()
        try:
            for _ in range(5):
                flow.submit("s, now, VEHICLE, 1")
            assert flow.wait_until_processed(5, timeout=5.0)
        finally:
            flow.stop()
        assert not flow.is_running

    def test_wait_until_processed_times_out(self, table):
        flow = self._flow(table)
        with flow:
            assert flow.wait_until_processed(1, timeout=0.05) is False

    def test_submit_requires_running_flow(self, table):
        flow = self._flow(table)
        with pytest.raises(RuntimeError):
            flow.submit("s, now, VEHICLE, 1")

    def test_store_failures_are_counted(self):
        table = MagicMock()
        table.increment.side_effect = StoreUnavailableError("gone")
        parser = TrafficEventParser(clock=lambda: NOW)
        flow = TrafficFlow(parser, TrafficEventSink(table, max_retries=0, retry_delay=0))

        stats = flow.process_lines(["s, now, VEHICLE, 1", "s, now, VEHICLE, 2"])
        assert stats.store_failures == 2
        assert stats.processed == 2

    def test_stop_without_drain_discards_pending(self):
        table = MagicMock()
        table.increment.side_effect = lambda *args: time.sleep(0.05)
        parser = TrafficEventParser(clock=lambda: NOW)
        flow = TrafficFlow(parser, TrafficEventSink(table), FlowConfig(parser_workers=1, sink_workers=1))

        flow.start()
        for _ in range(20):
            flow.submit("s, now, VEHICLE, 1")
        flow.stop(drain=False)

        assert not flow.is_running
        assert table.increment.call_count < 20
        assert flow.stats.processed == 20

    def test_flow_feeds_classification(self, table):
        flow = self._flow(table)
        flow.process_lines([
            "66N_3, now, VEHICLE, 51",
            "66N_3, now, VEHICLE, 51",
            "66N_4, now, ACCIDENT, 1",
        ])
        service = TrafficConditionService(table, interval_ms=INTERVAL_MS, clock=lambda: NOW + 1)

        assert service.classify("66N_3") is Condition.YELLOW
        assert service.classify("66N_4") is Condition.RED
        assert service.vehicle_total("66N_3") == 102


def test_create_flow_from_config(valid_config, table):
    flow = create_flow_from_config(valid_config, table)

    assert flow.config.parser_workers == 2
    assert flow.config.sink_workers == 2
    assert flow.config.queue_size == 100
    assert flow.sink.max_retries == 1
