"""
Traffic flow: raw records -> parser workers -> sink workers -> counter table.

Stages are connected by explicit bounded queues. Any number of parser and
sink workers may run side by side; the only coordination they need is the
per-key atomic increment provided by the counter table.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ingest.parser import TrafficEventParser
from pipeline.sink import TrafficEventSink

_STOP = object()


@dataclass
class FlowConfig:
    """
    Configuration for the traffic flow.

    Attributes:
        parser_workers: Threads parsing raw records.
        sink_workers: Threads writing events to the counter table.
        queue_size: Capacity of each stage queue; submit() blocks when full.
        poll_interval: Seconds a worker waits on an empty queue before rechecking shutdown.
    """
    parser_workers: int = 2
    sink_workers: int = 2
    queue_size: int = 1000
    poll_interval: float = 0.1


@dataclass
class FlowStats:
    """Snapshot of flow activity."""
    received: int = 0
    processed: int = 0
    parsed: int = 0
    rejected: Dict[str, int] = field(default_factory=dict)
    stored: int = 0
    skipped: int = 0
    store_failures: int = 0
    errors: int = 0

    @property
    def rejected_total(self) -> int:
        return sum(self.rejected.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "received": self.received,
            "processed": self.processed,
            "parsed": self.parsed,
            "rejected": dict(self.rejected),
            "stored": self.stored,
            "skipped": self.skipped,
            "store_failures": self.store_failures,
            "errors": self.errors,
        }


class TrafficFlow:
    """
    Runs the parser and sink stages on worker threads.

    Example:
        flow = TrafficFlow(TrafficEventParser(), TrafficEventSink(table), FlowConfig())
        with flow:
            flow.submit("66N_1, now, VEHICLE, 10")
        print(flow.stats)
    """

    def __init__(self, parser: TrafficEventParser, sink: TrafficEventSink, config: Optional[FlowConfig] = None):
        self.parser = parser
        self.sink = sink
        self.config = config or FlowConfig()
        self._records: queue.Queue = queue.Queue(maxsize=self.config.queue_size)
        self._events: queue.Queue = queue.Queue(maxsize=self.config.queue_size)
        self._parser_threads: List[threading.Thread] = []
        self._sink_threads: List[threading.Thread] = []
        self._running = False
        self._abort = False
        self._progress = threading.Condition()
        self._received = 0
        self._processed = 0
        self._parsed = 0
        self._errors = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def stats(self) -> FlowStats:
        sink_stats = self.sink.stats
        with self._progress:
            return FlowStats(
                received=self._received,
                processed=self._processed,
                parsed=self._parsed,
                rejected={kind.value: n for kind, n in self.parser.bad_events.items()},
                stored=sink_stats.stored,
                skipped=sink_stats.skipped,
                store_failures=sink_stats.store_failures,
                errors=self._errors,
            )

    def start(self) -> None:
        """Start the worker threads."""
        if self._running:
            return
        self._running = True
        self._abort = False
        self._parser_threads = [
            threading.Thread(target=self._parse_loop, name=f"parser-{i}", daemon=True)
            for i in range(self.config.parser_workers)
        ]
        self._sink_threads = [
            threading.Thread(target=self._sink_loop, name=f"sink-{i}", daemon=True)
            for i in range(self.config.sink_workers)
        ]
        for thread in self._parser_threads + self._sink_threads:
            thread.start()
        logging.info(
            f"Traffic flow started: parsers={self.config.parser_workers}, "
            f"sinks={self.config.sink_workers}"
        )

    def submit(self, record: str, timeout: Optional[float] = None) -> None:
        """
        Queue one raw record for processing.

        Raises:
            RuntimeError: If the flow is not running.
            queue.Full: If ``timeout`` elapses while the input queue is full.
        """
        if not self._running:
            raise RuntimeError("Traffic flow is not running")
        self._records.put(record, timeout=timeout)
        with self._progress:
            self._received += 1

    def stop(self, drain: bool = True) -> None:
        """
        Stop the workers.

        Args:
            drain: Finish every queued record first. Otherwise pending records are discarded.
        """
        if not self._running:
            return
        self._running = False
        if not drain:
            self._abort = True

        for _ in self._parser_threads:
            self._records.put(_STOP)
        for thread in self._parser_threads:
            thread.join()
        for _ in self._sink_threads:
            self._events.put(_STOP)
        for thread in self._sink_threads:
            thread.join()

        logging.info(f"Traffic flow stopped: {self.stats.to_dict()}")

    def wait_until_processed(self, count: int, timeout: float) -> bool:
        """Block until ``count`` records have been fully handled or ``timeout`` elapses."""
        deadline = time.monotonic() + timeout
        with self._progress:
            while self._processed < count:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._progress.wait(remaining)
            return True

    def process_lines(self, lines: Iterable[str]) -> FlowStats:
        """Run every non-blank line through the flow and wait for completion."""
        with self:
            for line in lines:
                if line.strip():
                    self.submit(line)
        return self.stats

    def __enter__(self) -> "TrafficFlow":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop(drain=exc_type is None)

    # -------------------------------------------------------------------------
    # Workers
    # -------------------------------------------------------------------------

    def _parse_loop(self) -> None:
        while True:
            record = self._records.get()
            if record is _STOP:
                return
            if self._abort:
                self._mark_processed()
                continue
            try:
                result = self.parser.parse(record)
            except Exception as e:
                logging.error(f"Parser error on record {record!r}: {e}")
                self._mark_processed(error=True)
                continue
            if result.ok:
                with self._progress:
                    self._parsed += 1
                self._events.put(result.event)
            else:
                self._mark_processed()

    def _sink_loop(self) -> None:
        while True:
            event = self._events.get()
            if event is _STOP:
                return
            if self._abort:
                self._mark_processed()
                continue
            try:
                self.sink.process(event)
            except Exception as e:
                logging.error(f"Sink error on event {event}: {e}")
                self._mark_processed(error=True)
                continue
            self._mark_processed()

    def _mark_processed(self, error: bool = False) -> None:
        with self._progress:
            self._processed += 1
            if error:
                self._errors += 1
            self._progress.notify_all()


def create_flow_from_config(config: Dict[str, Any], table: Any, parser: Optional[TrafficEventParser] = None) -> TrafficFlow:
    """
    Factory function to create a TrafficFlow from the raw config dict.

    Args:
        config: Full application config dict.
        table: CounterTimeseriesTable the sink writes to.
        parser: Parser to use (default: a new TrafficEventParser).
    """
    ingest_cfg = config.get("ingest", {}) or {}
    flow_config = FlowConfig(
        parser_workers=ingest_cfg.get("parser_workers", 2),
        sink_workers=ingest_cfg.get("sink_workers", 2),
        queue_size=ingest_cfg.get("queue_size", 1000),
    )
    sink = TrafficEventSink(table, max_retries=ingest_cfg.get("max_retries", 2))
    return TrafficFlow(parser or TrafficEventParser(), sink, flow_config)
