"""
Sink stage that persists traffic events into the counter table.

Each event increments the timeseries counter for its road segment and
type. Events with zero or negative counts are skipped. Store failures are
retried a bounded number of times, then dropped and counted.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict

from models.traffic_event import TrafficEvent
from storage.errors import StoreUnavailableError


@dataclass
class SinkStats:
    """Running totals for the sink."""
    stored: int = 0
    skipped: int = 0
    store_failures: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "stored": self.stored,
            "skipped": self.skipped,
            "store_failures": self.store_failures,
        }


class TrafficEventSink:
    """
    Increments timeseries counts for received TrafficEvents per segment and type.

    Example:
        sink = TrafficEventSink(table, max_retries=2)
        sink.process(event)
    """

    def __init__(self, table: Any, max_retries: int = 2, retry_delay: float = 0.1):
        """
        Args:
            table: CounterTimeseriesTable (or anything with the same increment signature).
            max_retries: Extra attempts after a failed increment before dropping the event.
            retry_delay: Seconds to wait between attempts.
        """
        self._table = table
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._stats = SinkStats()
        self._lock = threading.Lock()

    @property
    def stats(self) -> SinkStats:
        with self._lock:
            return SinkStats(**self._stats.to_dict())

    def process(self, event: TrafficEvent) -> bool:
        """
        Store one event.

        Returns:
            True if the counter was incremented, False if the event was skipped or dropped.
        """
        if event.count <= 0:
            logging.info("Skipping event with zero or negative count")
            self._bump("skipped")
            return False

        attempt = 0
        while True:
            try:
                self._table.increment(
                    event.segment_id, event.count, event.timestamp, event.type.value
                )
                self._bump("stored")
                return True
            except StoreUnavailableError as e:
                attempt += 1
                if attempt > self.max_retries:
                    logging.error(
                        f"Dropping event for {event.segment_id} after {attempt} attempts: {e}"
                    )
                    self._bump("store_failures")
                    return False
                logging.warning(
                    f"Increment failed ({attempt}/{self.max_retries}), retrying: {e}"
                )
                time.sleep(self.retry_delay)

    def _bump(self, name: str) -> None:
        with self._lock:
            setattr(self._stats, name, getattr(self._stats, name) + 1)
