"""
Pytest configuration and shared fixtures.
"""

import os
import sys

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from storage.timeseries import CounterTimeseriesTable  # noqa: E402

# 15 minutes, as in the default config
INTERVAL_MS = 15 * 60 * 1000


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create a temporary config directory with default.yaml."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    default_yaml = config_dir / "default.yaml"
    default_yaml.write_text("""
storage:
  local_database_path: "data/test.sqlite"
  timeseries_interval_ms: 900000

conditions:
  congested_threshold: 100
  lookback_multiplier: 3

log_path: "logs/test.log"
log_level: "INFO"
""")

    return config_dir


@pytest.fixture
def valid_config():
    """Return a valid configuration dictionary."""
    return {
        "storage": {
            "local_database_path": "data/test.sqlite",
            "timeseries_interval_ms": INTERVAL_MS,
        },
        "conditions": {
            "congested_threshold": 100,
            "lookback_multiplier": 3,
            "query_timeout_seconds": 5.0,
        },
        "ingest": {
            "parser_workers": 2,
            "sink_workers": 2,
            "queue_size": 100,
            "max_retries": 1,
        },
        "web": {"host": "127.0.0.1", "port": 5000},
        "log_path": "logs/test.log",
        "log_level": "INFO",
    }


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "traffic.sqlite")


@pytest.fixture
def table(db_path):
    """An initialized counter table with a 15 minute interval."""
    t = CounterTimeseriesTable(db_path, interval_ms=INTERVAL_MS)
    t.initialize()
    yield t
    t.close()
