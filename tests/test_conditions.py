"""
Tests for traffic condition classification.
"""

from unittest.mock import MagicMock

import pytest

from analytics.conditions import TrafficConditionService
from models.condition import Condition
from models.counter_entry import CounterEntry
from models.traffic_event import EventType
from storage.errors import StoreUnavailableError

from conftest import INTERVAL_MS

NOW = 1_700_000_000_000
# Queries run a moment after the last report was recorded
QUERY_TIME = NOW + 1000


@pytest.fixture
def service(table):
    return TrafficConditionService(table, interval_ms=INTERVAL_MS, clock=lambda: QUERY_TIME)


def _record(table, segment, timestamp, event_type, count):
    table.increment(segment, count, timestamp, event_type)


class TestClassify:
    """Scenarios with a 3 x 15 minute lookback and a threshold of 100."""

    def test_below_threshold_is_green(self, table, service):
        _record(table, "66N_1", NOW - INTERVAL_MS, EventType.VEHICLE, 10)
        _record(table, "66N_1", NOW, EventType.VEHICLE, 10)
        assert service.classify("66N_1") is Condition.GREEN

    def test_one_interval_over_threshold_is_yellow(self, table, service):
        _record(table, "66N_2", NOW - 2 * INTERVAL_MS, EventType.VEHICLE, 101)
        _record(table, "66N_2", NOW - INTERVAL_MS, EventType.VEHICLE, 10)
        assert service.classify("66N_2") is Condition.YELLOW

    def test_two_intervals_over_threshold_is_red(self, table, service):
        _record(table, "66N_3", NOW - 2 * INTERVAL_MS, EventType.VEHICLE, 101)
        _record(table, "66N_3", NOW - INTERVAL_MS, EventType.VEHICLE, 10)
        # summed records for the same timestamp combine over the threshold
        _record(table, "66N_3", NOW, EventType.VEHICLE, 51)
        _record(table, "66N_3", NOW, EventType.VEHICLE, 51)
        assert service.classify("66N_3") is Condition.RED

    def test_accident_is_red(self, table, service):
        _record(table, "66N_4", NOW - INTERVAL_MS, EventType.VEHICLE, 10)
        _record(table, "66N_4", NOW - INTERVAL_MS, EventType.ACCIDENT, 1)
        _record(table, "66N_4", NOW, EventType.VEHICLE, 10)
        assert service.classify("66N_4") is Condition.RED

    def test_unknown_segment_is_green(self, service):
        assert service.classify("nowhere") is Condition.GREEN

    def test_threshold_is_strict(self, table, service):
        _record(table, "s", NOW, EventType.VEHICLE, 100)
        assert service.classify("s") is Condition.GREEN

    def test_reports_outside_window_are_ignored(self, table, service):
        start = QUERY_TIME - 3 * INTERVAL_MS
        _record(table, "s", start - 1, EventType.ACCIDENT, 5)
        _record(table, "s", start - 1, EventType.VEHICLE, 500)
        _record(table, "s", QUERY_TIME, EventType.VEHICLE, 500)
        _record(table, "s", start, EventType.VEHICLE, 500)
        assert service.classify("s") is Condition.YELLOW

    def test_accident_sum_cancelled_out_is_not_red(self, table, service):
        _record(table, "s", NOW - 10, EventType.ACCIDENT, 1)
        _record(table, "s", NOW - 10, EventType.ACCIDENT, -1)
        assert service.classify("s") is Condition.GREEN

    def test_custom_lookback_and_threshold(self, table, service):
        _record(table, "s", NOW - 2 * INTERVAL_MS, EventType.VEHICLE, 60)
        _record(table, "s", NOW, EventType.VEHICLE, 60)
        assert service.classify("s", threshold=50) is Condition.RED
        assert service.classify("s", lookback_period=INTERVAL_MS, threshold=50) is Condition.YELLOW

    def test_lookback_period_default(self, service):
        assert service.lookback_period == 3 * INTERVAL_MS


class TestTotals:
    def test_vehicle_and_accident_totals(self, table, service):
        _record(table, "s", NOW - INTERVAL_MS, EventType.VEHICLE, 10)
        _record(table, "s", NOW, EventType.VEHICLE, 15)
        _record(table, "s", NOW, EventType.ACCIDENT, 2)
        _record(table, "s", NOW - 4 * INTERVAL_MS, EventType.VEHICLE, 1000)

        assert service.vehicle_total("s") == 25
        assert service.accident_total("s") == 2

    def test_totals_for_unknown_segment(self, service):
        assert service.vehicle_total("nowhere") == 0
        assert service.accident_total("nowhere") == 0

    def test_count_exceeding(self, table, service):
        for i, value in enumerate((99, 100, 101, 150)):
            _record(table, "s", NOW + i, EventType.VEHICLE, value)
        assert service.count_exceeding("s", NOW, NOW + 10, EventType.VEHICLE, 100) == 2


class TestStoreFailures:
    def test_read_failure_propagates(self):
        table = MagicMock()
        table.read.side_effect = StoreUnavailableError("disk gone")
        service = TrafficConditionService(table, interval_ms=INTERVAL_MS, clock=lambda: QUERY_TIME)

        with pytest.raises(StoreUnavailableError):
            service.classify("s")

    def test_queries_use_window_bounds(self):
        table = MagicMock()
        table.read.return_value = iter([CounterEntry(QUERY_TIME - 1, 3)])
        service = TrafficConditionService(table, interval_ms=INTERVAL_MS, clock=lambda: QUERY_TIME)

        assert service.vehicle_total("s") == 3
        table.read.assert_called_once_with(
            "s", QUERY_TIME - 3 * INTERVAL_MS, QUERY_TIME, EventType.VEHICLE
        )
