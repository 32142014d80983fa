from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict

from analytics.conditions import TrafficConditionService
from ingest.parser import TrafficEventParser
from models.config import Config
from pipeline.flow import TrafficFlow, create_flow_from_config
from storage.timeseries import CounterTimeseriesTable


@dataclass
class RuntimeContext:
    """Holds the constructed services; each one receives the table explicitly."""

    config: Config
    table: CounterTimeseriesTable
    parser: TrafficEventParser
    flow: TrafficFlow
    conditions: TrafficConditionService

    def close(self) -> None:
        if self.flow.is_running:
            self.flow.stop(drain=True)
        self.table.close()


def build_runtime(raw_config: Dict[str, Any]) -> RuntimeContext:
    """
    Construct and wire the table, parser, flow and condition service.

    Raises:
        StoreError: If the counter table cannot be opened.
    """
    config = Config.from_dict(raw_config)
    table = CounterTimeseriesTable(
        config.storage.local_database_path,
        interval_ms=config.storage.timeseries_interval_ms,
        timeout=config.storage.busy_timeout_seconds,
    )
    table.initialize()

    parser = TrafficEventParser()
    flow = create_flow_from_config(raw_config, table, parser=parser)
    conditions = TrafficConditionService(
        table,
        interval_ms=config.storage.timeseries_interval_ms,
        congested_threshold=config.conditions.congested_threshold,
        lookback_multiplier=config.conditions.lookback_multiplier,
    )
    logging.info(f"Runtime built: {config.to_dict()}")
    return RuntimeContext(
        config=config,
        table=table,
        parser=parser,
        flow=flow,
        conditions=conditions,
    )
