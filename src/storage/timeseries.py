"""
Counter timeseries table for accumulating traffic event counts.

Counters are keyed by (segment_id, timestamp, tag) and summed on every
increment. Rows are grouped into buckets of ``interval_ms`` width so that a
time-range read only scans the buckets that cover the requested range.
Schema versioning rejects stores created with an incompatible layout or a
different bucket interval.
"""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
from typing import Iterator, List, Optional, Union

from models.config import DEFAULT_TIMESERIES_INTERVAL_MS
from models.counter_entry import CounterEntry
from models.traffic_event import EventType
from storage.errors import StoreConfigurationError, StoreUnavailableError

# Schema version - increment when schema changes
EXPECTED_SCHEMA_VERSION = 1

Tag = Union[EventType, str]


def _tag_name(tag: Tag) -> str:
    return tag.value if isinstance(tag, EventType) else str(tag)


class CounterTimeseriesTable:
    """
    Bucketed counter store backed by SQLite.

    Schema:
    - schema_meta: schema version and the bucket interval the store was created with
    - counters: one row per (segment_id, tag, bucket, ts) holding the summed value

    Each thread uses its own connection. Increments are a single upsert
    statement, so concurrent increments to the same key never lose updates.
    """

    def __init__(
        self,
        local_database_path: str,
        interval_ms: int = DEFAULT_TIMESERIES_INTERVAL_MS,
        timeout: float = 5.0,
    ):
        """
        Initialize the table handle.

        Args:
            local_database_path: Path to the SQLite database file.
            interval_ms: Bucket width in milliseconds. Fixed for the lifetime of the store.
            timeout: Seconds to wait on a locked database before failing.
        """
        if not isinstance(interval_ms, int) or isinstance(interval_ms, bool) or interval_ms <= 0:
            raise StoreConfigurationError(
                f"Timeseries interval must be a positive integer, got: {interval_ms!r}"
            )
        self.local_database_path = local_database_path
        self.interval_ms = interval_ms
        self.timeout = timeout
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()

        db_dir = os.path.dirname(local_database_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        logging.info(
            f"Timeseries table at {local_database_path} (interval={interval_ms}ms)"
        )

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create this thread's database connection."""
        conn: Optional[sqlite3.Connection] = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(
                self.local_database_path,
                timeout=self.timeout,
                check_same_thread=False,
            )
            conn.execute("PRAGMA journal_mode=WAL")
            self._local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    def _get_schema_meta(self) -> Optional[tuple]:
        cursor = self._get_connection().cursor()
        cursor.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_meta'"
        )
        if cursor.fetchone() is None:
            return None
        cursor.execute("SELECT schema_version, interval_ms FROM schema_meta LIMIT 1")
        return cursor.fetchone()

    def _create_schema(self) -> None:
        conn = self._get_connection()
        with conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_meta (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    schema_version INTEGER NOT NULL,
                    interval_ms INTEGER NOT NULL,
                    created_at TEXT NOT NULL DEFAULT (datetime('now'))
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS counters (
                    segment_id TEXT NOT NULL,
                    tag TEXT NOT NULL,
                    bucket INTEGER NOT NULL,
                    ts INTEGER NOT NULL,
                    value INTEGER NOT NULL DEFAULT 0,
                    PRIMARY KEY (segment_id, tag, bucket, ts)
                ) WITHOUT ROWID
            """)
            conn.execute(
                "INSERT OR IGNORE INTO schema_meta (id, schema_version, interval_ms) VALUES (1, ?, ?)",
                (EXPECTED_SCHEMA_VERSION, self.interval_ms),
            )
        logging.info(f"Created schema version {EXPECTED_SCHEMA_VERSION}")

    def initialize(self) -> None:
        """
        Initialize the database schema.

        Creates a fresh schema if none exists. An existing store must match
        EXPECTED_SCHEMA_VERSION and the configured interval; counters are
        never dropped to resolve a mismatch.

        Raises:
            StoreConfigurationError: If the existing store is incompatible.
            StoreUnavailableError: If the database cannot be accessed.
        """
        try:
            meta = self._get_schema_meta()
            if meta is None:
                logging.info("No schema found, creating fresh timeseries table.")
                self._create_schema()
                meta = self._get_schema_meta()
        except sqlite3.Error as e:
            logging.error(f"Timeseries table initialization error: {e}")
            raise StoreUnavailableError(f"Cannot initialize timeseries table: {e}") from e

        version, interval_ms = meta
        if version != EXPECTED_SCHEMA_VERSION:
            raise StoreConfigurationError(
                f"Schema version mismatch: found {version}, expected {EXPECTED_SCHEMA_VERSION}"
            )
        if interval_ms != self.interval_ms:
            raise StoreConfigurationError(
                f"Store was created with interval {interval_ms}ms, "
                f"cannot open it with interval {self.interval_ms}ms"
            )
        logging.info(f"Schema version {version} is current")

    def bucket_of(self, timestamp: int) -> int:
        """Return the start of the bucket that holds ``timestamp``."""
        return timestamp - (timestamp % self.interval_ms)

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def increment(self, key: str, amount: int, timestamp: int, tag: Tag) -> None:
        """
        Add ``amount`` to the counter for (key, timestamp, tag), creating it if absent.

        Args:
            key: Road segment identifier.
            amount: Value to add. Non-positive amounts are applied as given.
            timestamp: Epoch milliseconds of the counter.
            tag: Event type the counter belongs to.

        Raises:
            StoreUnavailableError: If the write fails. Nothing is applied in that case.
        """
        try:
            conn = self._get_connection()
            with conn:
                conn.execute(
                    """
                    INSERT INTO counters (segment_id, tag, bucket, ts, value)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT (segment_id, tag, bucket, ts)
                    DO UPDATE SET value = value + excluded.value
                    """,
                    (key, _tag_name(tag), self.bucket_of(timestamp), timestamp, amount),
                )
        except sqlite3.Error as e:
            logging.error(f"Error incrementing counter {key}/{_tag_name(tag)}@{timestamp}: {e}")
            raise StoreUnavailableError(f"Increment failed: {e}") from e

        logging.debug(f"Counter incremented: {key}/{_tag_name(tag)}@{timestamp} += {amount}")

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def read(self, key: str, start_time: int, end_time: int, tag: Tag) -> Iterator[CounterEntry]:
        """
        Read counters for ``key``/``tag`` with ``start_time <= ts < end_time``.

        Entries are yielded lazily in ascending timestamp order, one per
        distinct timestamp. Calling read again rebuilds the sequence from the
        current store state.

        Raises:
            StoreUnavailableError: While iterating, if the read fails.
        """
        if start_time >= end_time:
            return iter(())
        return self._scan(key, start_time, end_time, _tag_name(tag))

    def _scan(self, key: str, start_time: int, end_time: int, tag: str) -> Iterator[CounterEntry]:
        try:
            cursor = self._get_connection().execute(
                """
                SELECT ts, value FROM counters
                WHERE segment_id = ? AND tag = ?
                  AND bucket BETWEEN ? AND ?
                  AND ts >= ? AND ts < ?
                ORDER BY bucket, ts
                """,
                (
                    key,
                    tag,
                    self.bucket_of(start_time),
                    self.bucket_of(end_time - 1),
                    start_time,
                    end_time,
                ),
            )
            try:
                for ts, value in cursor:
                    yield CounterEntry(timestamp=ts, value=value)
            finally:
                cursor.close()
        except sqlite3.Error as e:
            logging.error(f"Error reading counters {key}/{tag} [{start_time}, {end_time}): {e}")
            raise StoreUnavailableError(f"Read failed: {e}") from e

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close every connection opened by this table, from any thread."""
        with self._connections_lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            conn.close()
        self._local = threading.local()
        if connections:
            logging.info("Timeseries table connections closed")
