"""SQLite persistence for migrations, the mapping ledger and the task outcome ledger."""

from __future__ import annotations

import datetime as dt
import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from .exceptions import MappingNotFound, MigrationNotFound
from .models import (
    AssigneeMetadata,
    MappingKind,
    MappingRecord,
    MappingState,
    Migration,
    MigrationStatus,
    TaskOutcome,
    TaskOutcomeRecord,
)

if TYPE_CHECKING:
    from collections.abc import Collection, Iterator, Sequence

    from .models import Resolution

logger: logging.Logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS migrations (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    source            TEXT NOT NULL,
    destination       TEXT NOT NULL,
    source_project_id TEXT NOT NULL,
    dest_list_id      TEXT NOT NULL,
    dest_workspace_id TEXT NOT NULL DEFAULT '',
    status            TEXT NOT NULL,
    total_tasks       INTEGER NOT NULL DEFAULT 0,
    completed_tasks   INTEGER NOT NULL DEFAULT 0,
    failed_tasks      INTEGER NOT NULL DEFAULT 0,
    created_at        TEXT NOT NULL,
    completed_at      TEXT
);

CREATE TABLE IF NOT EXISTS migration_mappings (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    migration_id INTEGER NOT NULL,
    type         TEXT NOT NULL,
    source_value TEXT NOT NULL,
    dest_value   TEXT,
    status       TEXT NOT NULL DEFAULT 'pending',
    metadata     TEXT,
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL,
    FOREIGN KEY (migration_id) REFERENCES migrations(id),
    UNIQUE (migration_id, type, source_value)
);

CREATE TABLE IF NOT EXISTS task_mappings (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    migration_id   INTEGER NOT NULL,
    source_task_id TEXT NOT NULL,
    dest_task_id   TEXT,
    status         TEXT NOT NULL,
    error_message  TEXT,
    created_at     TEXT NOT NULL,
    FOREIGN KEY (migration_id) REFERENCES migrations(id)
);

CREATE INDEX IF NOT EXISTS idx_task_mappings_migration ON task_mappings(migration_id);
"""


def _now() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


def _parse_timestamp(value: str | None) -> dt.datetime | None:
    return dt.datetime.fromisoformat(value) if value else None


class MigrationStore:
    """SQLite store shared by the orchestrator and its background executions.

    A single connection is used from several threads, so every statement runs
    under one re-entrant lock.
    """

    def __init__(self, path: str | Path = ":memory:") -> None:
        db_path = str(path)
        self.conn: sqlite3.Connection = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        if db_path != ":memory:":
            self.conn.execute("PRAGMA journal_mode=WAL")
            self.conn.execute("PRAGMA busy_timeout=5000")
        self.conn.execute("PRAGMA foreign_keys=ON")
        self.conn.executescript(SCHEMA_SQL)
        logger.debug(f"Opened migration store: {db_path}")

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    def __enter__(self) -> MigrationStore:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Hold the store lock and commit on success, roll back on exception."""
        with self._lock:
            try:
                yield self.conn
            except Exception:
                self.conn.rollback()
                raise
            else:
                self.conn.commit()

    # -- Migrations --

    def create_migration(
        self,
        *,
        source: str,
        destination: str,
        source_project_id: str,
        dest_list_id: str,
        dest_workspace_id: str,
    ) -> Migration:
        now = _now()
        with self.transaction() as conn:
            cursor = conn.execute(
                """INSERT INTO migrations
                (source, destination, source_project_id, dest_list_id, dest_workspace_id, status, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    source,
                    destination,
                    source_project_id,
                    dest_list_id,
                    dest_workspace_id,
                    MigrationStatus.PENDING_CONFIGURATION.value,
                    now.isoformat(),
                ),
            )
            migration_id = cursor.lastrowid
        assert migration_id is not None  # always set after INSERT
        return self.get_migration(migration_id)

    def get_migration(self, migration_id: int) -> Migration:
        with self._lock:
            row = self.conn.execute("SELECT * FROM migrations WHERE id = ?", (migration_id,)).fetchone()
        if row is None:
            msg = f"Migration {migration_id} not found"
            raise MigrationNotFound(msg)
        return self._row_to_migration(row)

    def list_migrations(self) -> list[Migration]:
        with self._lock:
            rows = self.conn.execute("SELECT * FROM migrations ORDER BY id DESC").fetchall()
        return [self._row_to_migration(r) for r in rows]

    def set_status(self, migration_id: int, status: MigrationStatus) -> None:
        """Set a non-terminal status. Use complete() for terminal ones."""
        with self.transaction() as conn:
            conn.execute("UPDATE migrations SET status = ? WHERE id = ?", (status.value, migration_id))

    def transition_status(
        self,
        migration_id: int,
        from_statuses: Collection[MigrationStatus],
        to_status: MigrationStatus,
    ) -> bool:
        """Atomically move a migration to to_status if it is currently in one of from_statuses.

        Returns:
            True if this call performed the transition, False if the migration was
            in another status.
        """
        placeholders = ", ".join("?" for _ in from_statuses)
        with self.transaction() as conn:
            cursor = conn.execute(
                f"UPDATE migrations SET status = ? WHERE id = ? AND status IN ({placeholders})",  # noqa: S608
                (to_status.value, migration_id, *(s.value for s in from_statuses)),
            )
            return cursor.rowcount == 1

    def start_if_fully_mapped(self, migration_id: int, from_statuses: Collection[MigrationStatus]) -> bool:
        """Move a migration to running only if it is in from_statuses and has no pending mapping record.

        Both conditions are checked by the same UPDATE, so a mapping record inserted
        by another connection cannot slip in between the check and the transition.

        Returns:
            True if this call started the migration, False otherwise.
        """
        placeholders = ", ".join("?" for _ in from_statuses)
        with self.transaction() as conn:
            cursor = conn.execute(
                f"UPDATE migrations SET status = ? WHERE id = ? AND status IN ({placeholders}) "  # noqa: S608
                "AND NOT EXISTS (SELECT 1 FROM migration_mappings WHERE migration_id = ? AND status = ?)",
                (
                    MigrationStatus.RUNNING.value,
                    migration_id,
                    *(s.value for s in from_statuses),
                    migration_id,
                    MappingState.PENDING.value,
                ),
            )
            return cursor.rowcount == 1

    def update_total_tasks(self, migration_id: int, total: int) -> None:
        with self.transaction() as conn:
            conn.execute("UPDATE migrations SET total_tasks = ? WHERE id = ?", (total, migration_id))

    def update_progress(self, migration_id: int, completed: int, failed: int) -> None:
        with self.transaction() as conn:
            conn.execute(
                "UPDATE migrations SET completed_tasks = ?, failed_tasks = ? WHERE id = ?",
                (completed, failed, migration_id),
            )

    def complete(self, migration_id: int, status: MigrationStatus) -> None:
        """Record a terminal status together with its completion timestamp."""
        if not status.is_terminal:
            msg = f"complete() requires a terminal status, got {status}"
            raise ValueError(msg)
        with self.transaction() as conn:
            conn.execute(
                "UPDATE migrations SET status = ?, completed_at = ? WHERE id = ?",
                (status.value, _now().isoformat(), migration_id),
            )

    @staticmethod
    def _row_to_migration(row: sqlite3.Row) -> Migration:
        return Migration(
            id=row["id"],
            source=row["source"],
            destination=row["destination"],
            source_project_id=row["source_project_id"],
            dest_list_id=row["dest_list_id"],
            dest_workspace_id=row["dest_workspace_id"],
            status=MigrationStatus(row["status"]),
            total_tasks=row["total_tasks"],
            completed_tasks=row["completed_tasks"],
            failed_tasks=row["failed_tasks"],
            created_at=_parse_timestamp(row["created_at"]),
            completed_at=_parse_timestamp(row["completed_at"]),
        )

    # -- Mapping ledger --

    def insert_pending_mapping(
        self,
        migration_id: int,
        kind: MappingKind,
        source_value: str,
        metadata: AssigneeMetadata | None = None,
    ) -> bool:
        """Insert a pending record unless (migration, kind, source value) already exists.

        Returns:
            True if a new record was inserted.
        """
        metadata_json = json.dumps({"name": metadata.name, "email": metadata.email}) if metadata else None
        now = _now().isoformat()
        with self.transaction() as conn:
            cursor = conn.execute(
                """INSERT OR IGNORE INTO migration_mappings
                (migration_id, type, source_value, status, metadata, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (migration_id, kind.value, source_value, MappingState.PENDING.value, metadata_json, now, now),
            )
            return cursor.rowcount == 1

    def get_mappings(self, migration_id: int, kind: MappingKind | None = None) -> list[MappingRecord]:
        with self._lock:
            if kind is None:
                rows = self.conn.execute(
                    "SELECT * FROM migration_mappings WHERE migration_id = ? ORDER BY id",
                    (migration_id,),
                ).fetchall()
            else:
                rows = self.conn.execute(
                    "SELECT * FROM migration_mappings WHERE migration_id = ? AND type = ? ORDER BY id",
                    (migration_id, kind.value),
                ).fetchall()
        return [self._row_to_mapping(r) for r in rows]

    def count_pending(self, migration_id: int) -> int:
        with self._lock:
            row = self.conn.execute(
                "SELECT COUNT(*) FROM migration_mappings WHERE migration_id = ? AND status = ?",
                (migration_id, MappingState.PENDING.value),
            ).fetchone()
        return int(row[0])

    def apply_resolutions(self, migration_id: int, resolutions: Sequence[Resolution]) -> None:
        """Mark the targeted records as mapped, all or nothing.

        Raises:
            MappingNotFound: If any resolution targets an unknown record. No
                record is changed in that case.
        """
        now = _now().isoformat()
        with self.transaction() as conn:
            for resolution in resolutions:
                row = conn.execute(
                    "SELECT id FROM migration_mappings WHERE migration_id = ? AND type = ? AND source_value = ?",
                    (migration_id, resolution.kind.value, resolution.source_value),
                ).fetchone()
                if row is None:
                    msg = (
                        f"Mapping not found: migration={migration_id} "
                        f"type={resolution.kind} source={resolution.source_value!r}"
                    )
                    raise MappingNotFound(msg)
                conn.execute(
                    "UPDATE migration_mappings SET dest_value = ?, status = ?, updated_at = ? WHERE id = ?",
                    (resolution.dest_value, MappingState.MAPPED.value, now, row["id"]),
                )

    @staticmethod
    def _row_to_mapping(row: sqlite3.Row) -> MappingRecord:
        metadata: AssigneeMetadata | None = None
        if row["metadata"]:
            raw = json.loads(row["metadata"])
            metadata = AssigneeMetadata(name=raw.get("name", ""), email=raw.get("email", ""))
        return MappingRecord(
            migration_id=row["migration_id"],
            kind=MappingKind(row["type"]),
            source_value=row["source_value"],
            dest_value=row["dest_value"],
            status=MappingState(row["status"]),
            metadata=metadata,
            created_at=_parse_timestamp(row["created_at"]),
            updated_at=_parse_timestamp(row["updated_at"]),
        )

    # -- Task outcome ledger --

    def append_outcome(self, record: TaskOutcomeRecord) -> None:
        created_at = record.created_at or _now()
        with self.transaction() as conn:
            conn.execute(
                """INSERT INTO task_mappings
                (migration_id, source_task_id, dest_task_id, status, error_message, created_at)
                VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    record.migration_id,
                    record.source_task_id,
                    record.dest_task_id,
                    record.outcome.value,
                    record.error,
                    created_at.isoformat(),
                ),
            )

    def get_outcomes(self, migration_id: int) -> list[TaskOutcomeRecord]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT * FROM task_mappings WHERE migration_id = ? ORDER BY id",
                (migration_id,),
            ).fetchall()
        return [
            TaskOutcomeRecord(
                migration_id=r["migration_id"],
                source_task_id=r["source_task_id"],
                outcome=TaskOutcome(r["status"]),
                dest_task_id=r["dest_task_id"],
                error=r["error_message"],
                created_at=_parse_timestamp(r["created_at"]),
            )
            for r in rows
        ]
