"""
Pipeline module for the traffic conditions system.

The pipeline moves raw sensor records into the counter table:
- Parsing on parser worker threads
- Persisting on sink worker threads (via TrafficEventSink)
"""

from .flow import TrafficFlow, FlowConfig, FlowStats, create_flow_from_config
from .sink import TrafficEventSink, SinkStats

__all__ = [
    "TrafficFlow",
    "FlowConfig",
    "FlowStats",
    "create_flow_from_config",
    "TrafficEventSink",
    "SinkStats",
]
