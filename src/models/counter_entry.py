from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CounterEntry:
    """A single accumulated counter value read back from the timeseries table."""

    timestamp: int  # epoch ms
    value: int
