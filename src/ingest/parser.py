"""
Parser for traffic sensor records.

Records are comma-separated values in the format
``<segmentID>, <timestamp>, <type>, <count>`` where:

- ``segmentID`` - a unique string identifier for the road segment the event applies to
- ``timestamp`` - ``now`` (any case) or a date-time in ``yyyy-MM-dd HH:mm:ss`` format (local time)
- ``type`` - the type of event (VEHICLE|ACCIDENT)
- ``count`` - the count of incidents to report for the event (signed 32-bit integer)

Malformed records are rejected with a categorized error instead of raising,
so the caller can count the rejection and keep processing.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Optional

from models.traffic_event import DATE_FORMAT, EventType, TrafficEvent

# Special timestamp string used to indicate that the current time should be used
TIMESTAMP_NOW = "now"

INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1

_INTEGER_RE = re.compile(r"^[+-]?[0-9]+$")


class ParseErrorKind(str, Enum):
    """Categories of rejected records."""
    MALFORMED = "malformed"
    BAD_TIMESTAMP = "bad_timestamp"
    BAD_TYPE = "bad_type"
    BAD_COUNT = "bad_count"


@dataclass(frozen=True)
class ParseResult:
    """Outcome of parsing one record: either an event or an error kind."""
    event: Optional[TrafficEvent] = None
    error: Optional[ParseErrorKind] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.event is not None


def current_time_millis() -> int:
    return int(time.time() * 1000)


class TimestampRangeError(ValueError):
    """A well-formed date-time the platform cannot convert from local time."""


def parse_timestamp(value: str) -> int:
    """
    Parse a ``yyyy-MM-dd HH:mm:ss`` local date-time into epoch milliseconds.

    Raises:
        TimestampRangeError: If the value matches the format but lies outside
            the platform's local time conversion range (e.g. year 1).
        ValueError: If the value does not match the format.
    """
    # strptime builds a fresh datetime per call, safe across worker threads
    parsed = datetime.strptime(value, DATE_FORMAT)
    try:
        return int(parsed.timestamp() * 1000)
    except (OverflowError, OSError, ValueError) as e:
        raise TimestampRangeError(f"out of local time range: {value!r}") from e


def parse_int32(value: str) -> int:
    """
    Parse a signed 32-bit decimal integer.

    Raises:
        ValueError: If the value is not an integer or is out of range.
    """
    if not _INTEGER_RE.match(value):
        raise ValueError(f"not an integer: {value!r}")
    number = int(value)
    if number < INT32_MIN or number > INT32_MAX:
        raise ValueError(f"out of 32-bit range: {value!r}")
    return number


class TrafficEventParser:
    """
    Converts raw records into TrafficEvents.

    Keeps diagnostic counters of rejected records per ParseErrorKind. A
    single parser may be shared by several worker threads.
    """

    def __init__(self, clock: Optional[Callable[[], int]] = None):
        """
        Args:
            clock: Returns the current time in epoch milliseconds; used for ``now``.
        """
        self._clock = clock or current_time_millis
        self._lock = threading.Lock()
        self._bad_events: Dict[ParseErrorKind, int] = {kind: 0 for kind in ParseErrorKind}

    @property
    def bad_events(self) -> Dict[ParseErrorKind, int]:
        """Copy of the rejection counters keyed by error kind."""
        with self._lock:
            return dict(self._bad_events)

    @property
    def bad_event_total(self) -> int:
        with self._lock:
            return sum(self._bad_events.values())

    def parse(self, raw: str) -> ParseResult:
        """Parse one record. Never raises for malformed input."""
        parts = [part.strip() for part in raw.strip().split(",")]
        if len(parts) != 4 or not parts[0]:
            return self._reject(
                ParseErrorKind.MALFORMED,
                f"Received a malformed event message: {raw}",
            )
        segment_id, ts_field, type_field, count_field = parts

        if ts_field.lower() == TIMESTAMP_NOW:
            timestamp = self._clock()
        else:
            try:
                timestamp = parse_timestamp(ts_field)
            except TimestampRangeError:
                return self._reject(
                    ParseErrorKind.BAD_TIMESTAMP,
                    f"Timestamp is outside the supported local time range, got: {ts_field}",
                )
            except ValueError:
                return self._reject(
                    ParseErrorKind.BAD_TIMESTAMP,
                    f"Timestamp should be in 'yyyy-MM-dd HH:mm:ss' format, got: {ts_field}",
                )

        try:
            event_type = EventType(type_field)
        except ValueError:
            return self._reject(
                ParseErrorKind.BAD_TYPE,
                f"Type should be 'VEHICLE' or 'ACCIDENT', got: {type_field}",
            )

        try:
            count = parse_int32(count_field)
        except ValueError:
            return self._reject(
                ParseErrorKind.BAD_COUNT,
                f"Invalid integer for count, got: {count_field}",
            )

        return ParseResult(event=TrafficEvent(segment_id, timestamp, event_type, count))

    def _reject(self, kind: ParseErrorKind, detail: str) -> ParseResult:
        logging.info(detail)
        with self._lock:
            self._bad_events[kind] += 1
        return ParseResult(error=kind, detail=detail)
