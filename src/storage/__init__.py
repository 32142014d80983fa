"""
Traffic Conditions - Storage Module

This module holds the bucketed counter store and its error types.
"""

from .errors import StoreError, StoreUnavailableError, StoreConfigurationError
from .timeseries import CounterTimeseriesTable, EXPECTED_SCHEMA_VERSION

__all__ = [
    'CounterTimeseriesTable',
    'EXPECTED_SCHEMA_VERSION',
    'StoreError',
    'StoreUnavailableError',
    'StoreConfigurationError',
]
