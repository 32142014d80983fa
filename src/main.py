"""
Main application for the traffic conditions service.

Ingests traffic sensor records into the counter table and serves recent
road conditions over HTTP.

Usage:
    python src/main.py --config config/config.yaml serve
    python src/main.py --config config/config.yaml ingest events.csv
    python src/main.py --config config/config.yaml query 66N_1

Arguments:
    --config: Path to configuration file
    serve: Start the ingestion flow and the HTTP API
    ingest: Feed records from a file (or '-' for stdin) through the flow
    query: Print the condition and totals for a road segment
"""

import argparse
import logging
import os
import sys
from typing import Any, Dict, Optional, Tuple

import uvicorn
import yaml

from ops.logging import setup_logging
from runtime.context import build_runtime
from storage.errors import StoreError
from web.app import create_app


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into base and return base."""
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            _deep_merge(base[k], v)
        else:
            base[k] = v
    return base


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load configuration with layering:
    - `config/default.yaml` (checked in)
    - `config/config.yaml` (local overrides)
    - plus any explicitly provided `--config` path (treated as overrides)
    """
    try:
        base_path = os.path.join(os.path.dirname(config_path), "default.yaml")
        base_cfg: Dict[str, Any] = {}
        if os.path.exists(base_path):
            with open(base_path, "r") as f:
                base_cfg = yaml.safe_load(f) or {}

        local_overrides_path = os.path.join(os.path.dirname(config_path), "config.yaml")
        local_cfg: Dict[str, Any] = {}
        if os.path.exists(local_overrides_path):
            with open(local_overrides_path, "r") as f:
                local_cfg = yaml.safe_load(f) or {}

        merged = _deep_merge(base_cfg, local_cfg)

        # Finally apply explicit config_path if it's not the local override file itself
        if os.path.exists(config_path) and os.path.abspath(config_path) != os.path.abspath(local_overrides_path):
            with open(config_path, "r") as f:
                explicit_cfg = yaml.safe_load(f) or {}
            merged = _deep_merge(merged, explicit_cfg)

        return merged
    except (OSError, yaml.YAMLError) as e:
        logging.error(f"Failed to load configuration: {e}")
        sys.exit(1)


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def validate_config(config: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate configuration file structure and values.

    Args:
        config: Configuration dictionary

    Returns:
        Tuple of (is_valid, error_message)
    """
    # Required top-level sections
    required_sections = ['storage', 'log_path', 'log_level']
    for section in required_sections:
        if section not in config:
            return False, f"Missing required configuration section: {section}"

    # Validate storage settings
    storage = config.get('storage', {}) or {}
    if 'local_database_path' not in storage:
        return False, "Missing storage.local_database_path"
    if not isinstance(storage['local_database_path'], str):
        return False, "storage.local_database_path must be a string"
    if 'timeseries_interval_ms' in storage and not _is_positive_int(storage['timeseries_interval_ms']):
        return False, "storage.timeseries_interval_ms must be a positive integer"
    if 'busy_timeout_seconds' in storage:
        bt = storage['busy_timeout_seconds']
        if not isinstance(bt, (int, float)) or bt <= 0:
            return False, "storage.busy_timeout_seconds must be a positive number"

    # Optional condition settings
    conditions = config.get('conditions', {}) or {}
    for key in ('congested_threshold', 'lookback_multiplier'):
        if key in conditions and not _is_positive_int(conditions[key]):
            return False, f"conditions.{key} must be a positive integer"
    if 'query_timeout_seconds' in conditions:
        qt = conditions['query_timeout_seconds']
        if not isinstance(qt, (int, float)) or qt <= 0:
            return False, "conditions.query_timeout_seconds must be a positive number"

    # Optional ingest settings
    ingest = config.get('ingest', {}) or {}
    for key in ('parser_workers', 'sink_workers', 'queue_size'):
        if key in ingest and not _is_positive_int(ingest[key]):
            return False, f"ingest.{key} must be a positive integer"
    if 'max_retries' in ingest:
        mr = ingest['max_retries']
        if not isinstance(mr, int) or isinstance(mr, bool) or mr < 0:
            return False, "ingest.max_retries must be a non-negative integer"

    # Optional web settings
    web = config.get('web', {}) or {}
    if 'port' in web:
        port = web['port']
        if not _is_positive_int(port) or port > 65535:
            return False, "web.port must be an integer between 1 and 65535"

    # Validate log settings
    valid_log_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
    if config['log_level'] not in valid_log_levels:
        return False, f"log_level must be one of: {', '.join(valid_log_levels)}"

    return True, None


def run_serve(ctx) -> None:
    app = create_app(
        ctx.conditions,
        flow=ctx.flow,
        query_timeout=ctx.config.conditions.query_timeout_seconds,
    )
    ctx.flow.start()
    logging.info(f"Web interface starting on {ctx.config.web.host}:{ctx.config.web.port}")
    uvicorn.run(app, host=ctx.config.web.host, port=ctx.config.web.port, log_level="info")


def run_ingest(ctx, source: str) -> int:
    if source == "-":
        stats = ctx.flow.process_lines(sys.stdin)
    else:
        with open(source, "r", encoding="utf-8") as f:
            stats = ctx.flow.process_lines(f)
    logging.info(f"Ingestion finished: {stats.to_dict()}")
    print(
        f"received={stats.received} stored={stats.stored} skipped={stats.skipped} "
        f"rejected={stats.rejected_total} store_failures={stats.store_failures}"
    )
    return 0 if stats.store_failures == 0 and stats.errors == 0 else 2


def run_query(ctx, segment: str) -> int:
    condition = ctx.conditions.classify(segment)
    vehicles = ctx.conditions.vehicle_total(segment)
    accidents = ctx.conditions.accident_total(segment)
    print(f"{segment}: {condition.value} (vehicles={vehicles}, accidents={accidents})")
    return 0


def main(argv=None) -> int:
    """Main application function."""
    parser = argparse.ArgumentParser(description='Traffic Conditions Service')
    parser.add_argument('--config', type=str, default='config/config.yaml',
                        help='Path to configuration file')
    subparsers = parser.add_subparsers(dest='command', required=True)
    subparsers.add_parser('serve', help='Run ingestion and the HTTP API')
    ingest_parser = subparsers.add_parser('ingest', help='Ingest records from a file')
    ingest_parser.add_argument('source', nargs='?', default='-',
                               help="Records file, or '-' for stdin")
    query_parser = subparsers.add_parser('query', help='Show conditions for a road segment')
    query_parser.add_argument('segment', help='Road segment identifier')
    args = parser.parse_args(argv)

    # Load configuration
    config = load_config(args.config)

    # Validate configuration
    is_valid, error_msg = validate_config(config)
    if not is_valid:
        logging.error(f"Configuration validation failed: {error_msg}")
        return 1

    # Setup logging
    setup_logging(config['log_path'], config['log_level'])
    logging.info(f"Starting Traffic Conditions ({args.command})")

    try:
        ctx = build_runtime(config)
    except StoreError as e:
        logging.error(f"Cannot open counter store: {e}")
        return 1

    try:
        if args.command == 'serve':
            run_serve(ctx)
            return 0
        if args.command == 'ingest':
            return run_ingest(ctx, args.source)
        return run_query(ctx, args.segment)
    except StoreError as e:
        logging.error(f"Counter store failure: {e}")
        return 1
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        return 0
    finally:
        ctx.close()
        logging.info("Traffic Conditions stopped")


if __name__ == "__main__":
    sys.exit(main())
