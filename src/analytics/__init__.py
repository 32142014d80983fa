"""
Analytics module: congestion classification over the counter table.
"""

from .conditions import TrafficConditionService, CONGESTED_THRESHOLD, LOOKBACK_MULTIPLIER

__all__ = ["TrafficConditionService", "CONGESTED_THRESHOLD", "LOOKBACK_MULTIPLIER"]
