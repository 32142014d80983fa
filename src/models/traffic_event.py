"""
TrafficEvent model for sensor reports.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

# Expected date format for record timestamps (yyyy-MM-dd HH:mm:ss)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class EventType(str, Enum):
    """Kind of traffic report."""
    VEHICLE = "VEHICLE"
    ACCIDENT = "ACCIDENT"


@dataclass(frozen=True)
class TrafficEvent:
    """
    A report of current conditions from a given traffic sensor.

    Attributes:
        segment_id: Unique identifier of the road segment the report applies to.
        timestamp: Epoch milliseconds of the report.
        type: VEHICLE or ACCIDENT.
        count: Number of incidents reported (signed 32-bit).
    """
    segment_id: str
    timestamp: int
    type: EventType
    count: int

    def to_record(self) -> str:
        """
        Render the event in the ingestion record format:
        ``<segment>, <yyyy-MM-dd HH:mm:ss>, <TYPE>, <count>``.

        Timestamps are rendered in local time with second precision.
        """
        ts = datetime.fromtimestamp(self.timestamp / 1000.0).strftime(DATE_FORMAT)
        return f"{self.segment_id}, {ts}, {self.type.value}, {self.count}"

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "segment_id": self.segment_id,
            "timestamp": self.timestamp,
            "type": self.type.value,
            "count": self.count,
        }
