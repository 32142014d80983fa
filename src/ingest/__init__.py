"""
Ingestion module for raw traffic sensor records.
"""

from .parser import (
    TrafficEventParser,
    ParseResult,
    ParseErrorKind,
    TimestampRangeError,
    TIMESTAMP_NOW,
    current_time_millis,
)

__all__ = [
    "TrafficEventParser",
    "ParseResult",
    "ParseErrorKind",
    "TimestampRangeError",
    "TIMESTAMP_NOW",
    "current_time_millis",
]
