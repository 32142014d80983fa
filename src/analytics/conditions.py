"""
Traffic condition classification over recent counter activity.

A road segment is classified for the most recent lookback window
(``interval * lookback_multiplier``, 45 minutes by default):

- if any traffic accidents were reported (summed accident count > 0), RED;
- if 2+ vehicle count entries are greater than the threshold, RED;
- if 1 vehicle count entry is greater than the threshold, YELLOW;
- otherwise, GREEN.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from ingest.parser import current_time_millis
from models.condition import Condition
from models.config import DEFAULT_TIMESERIES_INTERVAL_MS
from models.traffic_event import EventType
from storage.timeseries import CounterTimeseriesTable

# Threshold for vehicles in a single report, above which the road is considered congested
CONGESTED_THRESHOLD = 100

# How many timeseries intervals to look back for traffic patterns
LOOKBACK_MULTIPLIER = 3


class TrafficConditionService:
    """Read-only queries over the counter table for a road segment."""

    def __init__(
        self,
        table: CounterTimeseriesTable,
        interval_ms: int = DEFAULT_TIMESERIES_INTERVAL_MS,
        congested_threshold: int = CONGESTED_THRESHOLD,
        lookback_multiplier: int = LOOKBACK_MULTIPLIER,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.table = table
        self.interval_ms = interval_ms
        self.congested_threshold = congested_threshold
        self.lookback_multiplier = lookback_multiplier
        self._clock = clock or current_time_millis

    @property
    def lookback_period(self) -> int:
        """Default lookback window in milliseconds."""
        return self.interval_ms * self.lookback_multiplier

    def _window(self, lookback_period: Optional[int]) -> tuple[int, int]:
        end_time = self._clock()
        lookback = self.lookback_period if lookback_period is None else lookback_period
        return end_time - lookback, end_time

    def classify(
        self,
        segment_id: str,
        lookback_period: Optional[int] = None,
        threshold: Optional[int] = None,
    ) -> Condition:
        """
        Determine the Condition of ``segment_id`` over the lookback window.

        Args:
            segment_id: Road segment to classify.
            lookback_period: Window length in ms (default: interval * multiplier).
            threshold: Vehicle count above which an entry is congested.

        Raises:
            StoreError: If the counter table cannot be read.
        """
        start_time, end_time = self._window(lookback_period)
        if threshold is None:
            threshold = self.congested_threshold

        condition = Condition.GREEN
        accidents = self.total(segment_id, start_time, end_time, EventType.ACCIDENT)
        if accidents > 0:
            condition = Condition.RED
        else:
            congested_entries = self.count_exceeding(
                segment_id, start_time, end_time, EventType.VEHICLE, threshold
            )
            if congested_entries > 1:
                condition = Condition.RED
            elif congested_entries > 0:
                condition = Condition.YELLOW

        logging.debug(f"Segment {segment_id} [{start_time}, {end_time}): {condition.value}")
        return condition

    def count_exceeding(
        self,
        segment_id: str,
        start_time: int,
        end_time: int,
        event_type: EventType,
        threshold: int,
    ) -> int:
        """Return the number of counter entries with a value exceeding ``threshold``."""
        return sum(
            1
            for entry in self.table.read(segment_id, start_time, end_time, event_type)
            if entry.value > threshold
        )

    def total(self, segment_id: str, start_time: int, end_time: int, event_type: EventType) -> int:
        """Sum of all counter values of ``event_type`` in [start_time, end_time)."""
        return sum(
            entry.value
            for entry in self.table.read(segment_id, start_time, end_time, event_type)
        )

    def vehicle_total(self, segment_id: str, lookback_period: Optional[int] = None) -> int:
        start_time, end_time = self._window(lookback_period)
        return self.total(segment_id, start_time, end_time, EventType.VEHICLE)

    def accident_total(self, segment_id: str, lookback_period: Optional[int] = None) -> int:
        start_time, end_time = self._window(lookback_period)
        return self.total(segment_id, start_time, end_time, EventType.ACCIDENT)
