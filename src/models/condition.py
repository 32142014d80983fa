from __future__ import annotations

from enum import Enum


class Condition(str, Enum):
    """Traffic condition reported for a road segment."""
    GREEN = "GREEN"
    YELLOW = "YELLOW"
    RED = "RED"
