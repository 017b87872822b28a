"""SQLite state store implementation."""

import json
import sqlite3
import threading
import time
import uuid
from collections.abc import Callable, Generator, Iterable
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import structlog

from outage_radar.store.errors import ConnectionError as StoreConnectionError
from outage_radar.store.errors import ReadError, WriteError
from outage_radar.store.metrics import StoreMetrics, TransactionContext
from outage_radar.store.migrations import CURRENT_VERSION, MigrationManager
from outage_radar.store.models import (
    RETAINED_SEVERITIES,
    AlertRecord,
    HistoryEvent,
    PruneResult,
    Severity,
    StoredIncidentEvent,
)


logger = structlog.get_logger()

_RETAINED_SQL = "important = 1 AND severity IN ({})".format(
    ", ".join(f"'{s.value}'" for s in sorted(RETAINED_SEVERITIES, key=lambda s: s.value))
)


class StateStore:
    """Durable SQLite store for throttle state, incident events and history.

    Also implements the KeyValueStore protocol for the last-good snapshot
    and other small records. One connection is shared across threads and
    guarded by a re-entrant lock; every write runs in a transaction.
    """

    def __init__(
        self,
        db_path: Path | str,
        poll_id: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the state store.

        Args:
            db_path: Path to SQLite database file (``:memory:`` allowed).
            poll_id: Optional id for logging context.
            clock: Returns the current epoch seconds for key expiry.
        """
        self._db_path = Path(db_path) if isinstance(db_path, str) else db_path
        self._clock = clock
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._metrics = StoreMetrics.get_instance()
        self._log = logger.bind(
            component="store",
            poll_id=poll_id,
            db_path=str(self._db_path),
        )

    @property
    def db_path(self) -> Path:
        """Get the database path."""
        return self._db_path

    @property
    def is_connected(self) -> bool:
        """Check if connected to database."""
        return self._conn is not None

    def connect(self) -> None:
        """Open the database, enable WAL mode and apply migrations."""
        if self._conn is not None:
            return

        in_memory = str(self._db_path) == ":memory:"
        if not in_memory:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._log.info("connecting_to_database")

        try:
            conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        except sqlite3.Error as e:
            raise StoreConnectionError(f"Cannot open database: {e}") from e
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA busy_timeout=5000")

        migration_mgr = MigrationManager(conn)
        try:
            old_version = migration_mgr.get_current_version()
            applied = migration_mgr.apply_migrations()
        except Exception:
            conn.close()
            raise
        self._conn = conn

        self._log.info(
            "database_connected",
            old_version=old_version,
            new_version=CURRENT_VERSION,
            migrations_applied=applied,
        )

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                self._log.info("database_closed")

    def __enter__(self) -> "StateStore":
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Context manager exit."""
        self.close()

    def _ensure_connected(self) -> sqlite3.Connection:
        """Return the live connection.

        Raises:
            StoreConnectionError: If not connected.
        """
        if self._conn is None:
            raise StoreConnectionError("Database not connected. Call connect() first.")
        return self._conn

    def get_schema_version(self) -> int:
        """Get the applied schema version."""
        with self._lock:
            return MigrationManager(self._ensure_connected()).get_current_version()

    @contextmanager
    def _reading(self) -> Generator[sqlite3.Connection]:
        """Serialize a read on the shared connection.

        Raises:
            StoreConnectionError: If not connected.
            ReadError: If the query fails.
        """
        with self._lock:
            conn = self._ensure_connected()
            try:
                yield conn
            except sqlite3.Error as e:
                self._log.error("read_failed", error=str(e))
                raise ReadError(str(e)) from e

    @contextmanager
    def _transaction(
        self, operation: str
    ) -> Generator[tuple[sqlite3.Connection, TransactionContext]]:
        """Serialize a write transaction with timing and logging.

        Raises:
            StoreConnectionError: If not connected.
            WriteError: If the transaction fails; it is rolled back.
        """
        with self._lock:
            conn = self._ensure_connected()
            tx_id = str(uuid.uuid4())[:8]
            start_ns = time.perf_counter_ns()
            ctx = TransactionContext(
                tx_id=tx_id, start_time_ns=start_ns, operation=operation
            )
            try:
                yield conn, ctx
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                self._metrics.record_tx_failure()
                self._log.error(
                    "transaction_failed",
                    tx_id=tx_id,
                    op=operation,
                    error=str(e),
                )
                raise WriteError(operation, str(e)) from e
            except Exception:
                conn.rollback()
                self._metrics.record_tx_failure()
                raise

            duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
            self._metrics.record_tx_duration(duration_ms)
            self._log.debug(
                "transaction_complete",
                tx_id=tx_id,
                op=operation,
                affected_rows=ctx.affected_rows,
                duration_ms=round(duration_ms, 2),
            )

    # ===== Key/Value =====

    def get(self, key: str, default: Any = None) -> Any:
        """Return a stored value, or ``default`` when absent or expired."""
        with self._reading() as conn:
            row = (
                conn.execute(
                    "SELECT value_json, expires_at FROM kv_entries WHERE key = ?",
                    (key,),
                )
                .fetchone()
            )
        if row is None:
            return default
        if row["expires_at"] is not None and row["expires_at"] <= self._clock():
            return default
        return json.loads(row["value_json"])

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """Store a JSON-serializable value with an optional TTL."""
        now = int(self._clock())
        expires_at = now + ttl_seconds if ttl_seconds is not None else None
        with self._transaction("kv_set") as (conn, ctx):
            cursor = conn.execute(
                """
                INSERT INTO kv_entries (key, value_json, expires_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value_json = excluded.value_json,
                    expires_at = excluded.expires_at,
                    updated_at = excluded.updated_at
                """,
                (key, json.dumps(value, sort_keys=True), expires_at, now),
            )
            ctx.add_affected_rows(cursor.rowcount)

    def delete(self, key: str) -> None:
        """Remove a key if present."""
        with self._transaction("kv_delete") as (conn, ctx):
            cursor = conn.execute("DELETE FROM kv_entries WHERE key = ?", (key,))
            ctx.add_affected_rows(cursor.rowcount)

    # ===== Alert Records =====

    def get_alert_record(self, provider: str) -> AlertRecord | None:
        """Get the throttle record for a provider."""
        with self._reading() as conn:
            row = (
                conn.execute("SELECT * FROM alert_records WHERE provider = ?", (provider,))
                .fetchone()
            )
        if row is None:
            return None
        return AlertRecord(
            provider=row["provider"],
            last_guid=row["last_guid"],
            last_status=row["last_status"],
            last_alert_status=row["last_alert_status"],
            last_alert_at=row["last_alert_at"],
        )

    def save_alert_record(self, record: AlertRecord) -> None:
        """Insert or replace a provider's throttle record."""
        with self._transaction("save_alert_record") as (conn, ctx):
            self._write_alert_record(conn, ctx, record)

    def commit_alert(self, record: AlertRecord, day: str) -> int:
        """Persist a sent alert and bump the provider's daily count atomically.

        Args:
            record: The updated throttle record.
            day: UTC day key (YYYYMMDD).

        Returns:
            The provider's alert count for the day after the increment.
        """
        with self._transaction("commit_alert") as (conn, ctx):
            self._write_alert_record(conn, ctx, record)
            conn.execute(
                """
                INSERT INTO alert_counts (provider, day, count) VALUES (?, ?, 1)
                ON CONFLICT(provider, day) DO UPDATE SET count = count + 1
                """,
                (record.provider, day),
            )
            row = conn.execute(
                "SELECT count FROM alert_counts WHERE provider = ? AND day = ?",
                (record.provider, day),
            ).fetchone()
            ctx.add_affected_rows(2)
        return int(row["count"])

    def get_alert_count(self, provider: str, day: str) -> int:
        """Get the number of alerts sent to a provider on a UTC day."""
        with self._reading() as conn:
            row = (
                conn.execute(
                    "SELECT count FROM alert_counts WHERE provider = ? AND day = ?",
                    (provider, day),
                )
                .fetchone()
            )
        return int(row["count"]) if row else 0

    def prune_alert_counts(self, keep_from_day: str) -> int:
        """Drop daily counters older than ``keep_from_day``."""
        with self._transaction("prune_alert_counts") as (conn, ctx):
            cursor = conn.execute("DELETE FROM alert_counts WHERE day < ?", (keep_from_day,))
            ctx.add_affected_rows(cursor.rowcount)
        return cursor.rowcount

    def _write_alert_record(
        self, conn: sqlite3.Connection, ctx: TransactionContext, record: AlertRecord
    ) -> None:
        cursor = conn.execute(
            """
            INSERT INTO alert_records
                (provider, last_guid, last_status, last_alert_status, last_alert_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(provider) DO UPDATE SET
                last_guid = excluded.last_guid,
                last_status = excluded.last_status,
                last_alert_status = excluded.last_alert_status,
                last_alert_at = excluded.last_alert_at
            """,
            (
                record.provider,
                record.last_guid,
                record.last_status,
                record.last_alert_status,
                record.last_alert_at,
            ),
        )
        ctx.add_affected_rows(cursor.rowcount)

    # ===== Incident Events =====

    def upsert_incident_events(self, events: Iterable[StoredIncidentEvent]) -> int:
        """Upsert incident events in one transaction.

        Repeat sightings refresh the mutable fields and extend ``last_seen``;
        ``first_seen`` is never reset.

        Returns:
            Number of newly inserted events.
        """
        inserted = 0
        with self._transaction("upsert_incident_events") as (conn, ctx):
            for event in events:
                exists = conn.execute(
                    "SELECT 1 FROM incident_events WHERE key = ?", (event.key,)
                ).fetchone()
                conn.execute(
                    """
                    INSERT INTO incident_events (
                        key, provider, guid, title, status, url, component,
                        severity, important, impact_summary,
                        first_seen, last_seen, resolved_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        title = excluded.title,
                        status = excluded.status,
                        url = excluded.url,
                        component = excluded.component,
                        severity = excluded.severity,
                        important = excluded.important,
                        impact_summary = excluded.impact_summary,
                        last_seen = MAX(incident_events.last_seen, excluded.last_seen),
                        resolved_at = COALESCE(excluded.resolved_at, incident_events.resolved_at)
                    """,
                    (
                        event.key,
                        event.provider,
                        event.guid,
                        event.title,
                        event.status,
                        event.url,
                        event.component,
                        event.severity.value,
                        1 if event.important else 0,
                        event.impact_summary,
                        event.first_seen,
                        event.last_seen,
                        event.resolved_at,
                    ),
                )
                self._metrics.record_event_upsert(inserted=exists is None)
                if exists is None:
                    inserted += 1
                ctx.add_affected_rows(1)
        return inserted

    def get_incident_event(self, key: str) -> StoredIncidentEvent | None:
        """Get a stored event by ``provider|guid`` key."""
        with self._reading() as conn:
            row = (
                conn.execute("SELECT * FROM incident_events WHERE key = ?", (key,))
                .fetchone()
            )
        return self._row_to_event(row) if row else None

    def list_incident_events(
        self,
        provider: str | None = None,
        since: int | None = None,
        limit: int | None = None,
    ) -> list[StoredIncidentEvent]:
        """List stored events, most recently seen first."""
        clauses: list[str] = []
        params: list[Any] = []
        if provider is not None:
            clauses.append("provider = ?")
            params.append(provider)
        if since is not None:
            clauses.append("last_seen >= ?")
            params.append(since)
        sql = "SELECT * FROM incident_events"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY last_seen DESC, key ASC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        with self._reading() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_event(row) for row in rows]

    def prune_incident_events(
        self,
        standard_cutoff: int,
        important_cutoff: int,
        important_cap: int,
    ) -> PruneResult:
        """Apply retention to the incident event table.

        Standard events last seen before ``standard_cutoff`` are dropped.
        Important outage/degraded events get ``important_cutoff`` instead
        and are capped at ``important_cap`` rows, evicting the
        oldest-by-last-seen first. Running it twice removes nothing more.
        """
        with self._transaction("prune_incident_events") as (conn, ctx):
            standard = conn.execute(
                f"DELETE FROM incident_events WHERE NOT ({_RETAINED_SQL}) AND last_seen < ?",  # noqa: S608
                (standard_cutoff,),
            ).rowcount
            important = conn.execute(
                f"DELETE FROM incident_events WHERE {_RETAINED_SQL} AND last_seen < ?",  # noqa: S608
                (important_cutoff,),
            ).rowcount
            evicted = conn.execute(
                f"""
                DELETE FROM incident_events WHERE key IN (
                    SELECT key FROM incident_events WHERE {_RETAINED_SQL}
                    ORDER BY last_seen DESC, key DESC
                    LIMIT -1 OFFSET ?
                )
                """,  # noqa: S608
                (important_cap,),
            ).rowcount
            ctx.add_affected_rows(standard + important + evicted)

        result = PruneResult(
            standard_expired=standard,
            important_expired=important,
            important_evicted=evicted,
        )
        self._metrics.record_events_pruned(result.total)
        return result

    def _row_to_event(self, row: sqlite3.Row) -> StoredIncidentEvent:
        return StoredIncidentEvent(
            key=row["key"],
            provider=row["provider"],
            guid=row["guid"],
            title=row["title"],
            status=row["status"],
            url=row["url"],
            component=row["component"],
            severity=Severity(row["severity"]),
            important=bool(row["important"]),
            impact_summary=row["impact_summary"],
            first_seen=row["first_seen"],
            last_seen=row["last_seen"],
            resolved_at=row["resolved_at"],
        )

    # ===== History =====

    def append_history(self, events: Iterable[HistoryEvent]) -> int:
        """Append status history rows."""
        rows = [(e.provider, e.status, e.timestamp) for e in events]
        if not rows:
            return 0
        with self._transaction("append_history") as (conn, ctx):
            conn.executemany(
                "INSERT INTO history_events (provider, status, ts) VALUES (?, ?, ?)",
                rows,
            )
            ctx.add_affected_rows(len(rows))
        return len(rows)

    def history_since(
        self, since: int, providers: list[str] | None = None
    ) -> list[HistoryEvent]:
        """List history rows at or after ``since``, oldest first."""
        sql = "SELECT provider, status, ts FROM history_events WHERE ts >= ?"
        params: list[Any] = [since]
        if providers:
            sql += " AND provider IN ({})".format(", ".join("?" for _ in providers))
            params.extend(providers)
        sql += " ORDER BY ts ASC, id ASC"
        with self._reading() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [
            HistoryEvent(provider=row["provider"], status=row["status"], timestamp=row["ts"])
            for row in rows
        ]

    def latest_history(self, provider: str) -> HistoryEvent | None:
        """Most recent history row for a provider."""
        with self._reading() as conn:
            row = (
                conn.execute(
                    """
                    SELECT provider, status, ts FROM history_events
                    WHERE provider = ? ORDER BY ts DESC, id DESC LIMIT 1
                    """,
                    (provider,),
                )
                .fetchone()
            )
        if row is None:
            return None
        return HistoryEvent(provider=row["provider"], status=row["status"], timestamp=row["ts"])

    def prune_history(self, cutoff: int) -> int:
        """Delete history rows older than ``cutoff``."""
        with self._transaction("prune_history") as (conn, ctx):
            deleted = conn.execute("DELETE FROM history_events WHERE ts < ?", (cutoff,)).rowcount
            ctx.add_affected_rows(deleted)
        self._metrics.record_history_pruned(deleted)
        return deleted
