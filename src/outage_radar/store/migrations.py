"""SQLite schema migrations for the state store."""

import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from outage_radar.store.errors import MigrationError


logger = structlog.get_logger()


@dataclass(frozen=True)
class Migration:
    """A database migration.

    Attributes:
        version: Target version after applying this migration.
        description: Human-readable description.
        up_sql: SQL to apply the migration.
    """

    version: int
    description: str
    up_sql: str


MIGRATIONS: list[Migration] = [
    Migration(
        version=1,
        description="Key/value entries, alert throttle records and incident events",
        up_sql="""
-- Key/value entries: last-good snapshot, probe baselines, digest window
CREATE TABLE IF NOT EXISTS kv_entries (
    key TEXT PRIMARY KEY,
    value_json TEXT NOT NULL,
    expires_at INTEGER,
    updated_at INTEGER NOT NULL
);

-- Alert records: one throttle row per provider
CREATE TABLE IF NOT EXISTS alert_records (
    provider TEXT PRIMARY KEY,
    last_guid TEXT NOT NULL DEFAULT '',
    last_status TEXT NOT NULL DEFAULT '',
    last_alert_status TEXT NOT NULL DEFAULT '',
    last_alert_at INTEGER NOT NULL DEFAULT 0
);

-- Alert counts: alerts sent per provider per UTC day
CREATE TABLE IF NOT EXISTS alert_counts (
    provider TEXT NOT NULL,
    day TEXT NOT NULL,
    count INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (provider, day)
);

-- Incident events: keyed by provider|guid, first_seen never reset
CREATE TABLE IF NOT EXISTS incident_events (
    key TEXT PRIMARY KEY,
    provider TEXT NOT NULL,
    guid TEXT NOT NULL,
    title TEXT NOT NULL,
    status TEXT NOT NULL,
    url TEXT NOT NULL DEFAULT '',
    component TEXT,
    severity TEXT NOT NULL,
    important INTEGER NOT NULL,
    impact_summary TEXT NOT NULL DEFAULT '',
    first_seen INTEGER NOT NULL,
    last_seen INTEGER NOT NULL,
    resolved_at INTEGER
);
CREATE INDEX IF NOT EXISTS idx_incident_events_provider ON incident_events(provider);
CREATE INDEX IF NOT EXISTS idx_incident_events_last_seen ON incident_events(last_seen);
CREATE INDEX IF NOT EXISTS idx_incident_events_important
    ON incident_events(important, severity, last_seen);
""",
    ),
    Migration(
        version=2,
        description="Append-only provider status history",
        up_sql="""
CREATE TABLE IF NOT EXISTS history_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    provider TEXT NOT NULL,
    status TEXT NOT NULL,
    ts INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_history_events_provider_ts ON history_events(provider, ts);
CREATE INDEX IF NOT EXISTS idx_history_events_ts ON history_events(ts);
""",
    ),
]

CURRENT_VERSION = MIGRATIONS[-1].version


def get_migrations_to_apply(current_version: int) -> list[Migration]:
    """Get migrations that need to be applied, in order."""
    return [m for m in MIGRATIONS if m.version > current_version]


class MigrationManager:
    """Manages SQLite schema migrations."""

    VERSION_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL,
    description TEXT
);
"""

    def __init__(self, connection: sqlite3.Connection) -> None:
        """Initialize the migration manager.

        Args:
            connection: SQLite connection to manage.
        """
        self._conn = connection
        self._log = logger.bind(component="store", operation="migration")

    def ensure_version_table(self) -> None:
        """Ensure the schema_version table exists."""
        self._conn.execute(self.VERSION_TABLE_SQL)
        self._conn.commit()

    def get_current_version(self) -> int:
        """Get the current schema version, or 0 if no migrations applied."""
        self.ensure_version_table()
        cursor = self._conn.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        return row[0] if row[0] is not None else 0

    def apply_migrations(self) -> list[int]:
        """Apply all pending migrations.

        Returns:
            List of version numbers that were applied.

        Raises:
            MigrationError: If a migration fails; it is rolled back.
        """
        current = self.get_current_version()
        pending = get_migrations_to_apply(current)

        if not pending:
            self._log.debug("no_migrations_pending", current_version=current)
            return []

        applied: list[int] = []
        for migration in pending:
            self._log.info(
                "applying_migration",
                version=migration.version,
                description=migration.description,
            )
            try:
                self._conn.executescript(migration.up_sql)
                self._conn.execute(
                    """
                    INSERT INTO schema_version (version, applied_at, description)
                    VALUES (?, ?, ?)
                    """,
                    (
                        migration.version,
                        datetime.now(UTC).isoformat(),
                        migration.description,
                    ),
                )
                self._conn.commit()
            except sqlite3.Error as e:
                self._log.error(
                    "migration_failed",
                    version=migration.version,
                    error=str(e),
                )
                self._conn.rollback()
                raise MigrationError(migration.version, str(e)) from e

            applied.append(migration.version)
            self._log.info("migration_applied", version=migration.version)

        return applied
