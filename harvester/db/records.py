"""Document-oriented record store on top of SQLite.

Records are JSON documents addressed by ``(kind, id)``.  ``created_at`` and
``updated_at`` are assigned by the store, never by callers.  A single lock
serialises access so independent job threads can share one connection.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from time import time
from typing import Any, Optional

from harvester.db.models import Record
from harvester.errors import PersistenceError

# Collections used by the scrape service.
SCRAPE_JOBS = "scrape_jobs"
SCRAPED_DATA = "scraped_data"
SCRAPES = "scrapes"
SCRAPE_ERRORS = "scrape_errors"
AGENT_TASKS = "agent_tasks"
SCRAPING_SOURCES = "scraping_sources"


def _row_to_record(row: sqlite3.Row) -> Record:
    return Record(
        kind=row["kind"],
        id=row["id"],
        fields=json.loads(row["fields"] or "{}"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class RecordStore:
    """CRUD over the ``records`` table.

    Every :class:`sqlite3.Error` is re-raised as
    :class:`~harvester.errors.PersistenceError`.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._lock = threading.Lock()

    def _get(self, kind: str, record_id: str) -> Optional[Record]:
        row = self._conn.execute(
            "SELECT * FROM records WHERE kind = ? AND id = ?", (kind, record_id)
        ).fetchone()
        return _row_to_record(row) if row else None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create_record(self, kind: str, record_id: str, fields: dict[str, Any]) -> Record:
        """Insert a new record and return it.

        Raises:
            PersistenceError: If ``(kind, record_id)`` already exists or the
                write fails.
        """
        now = time()
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    """
                    INSERT INTO records (kind, id, fields, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (kind, record_id, json.dumps(fields, default=str), now, now),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot create {kind}/{record_id}: {exc}") from exc
        return Record(kind=kind, id=record_id, fields=dict(fields), created_at=now, updated_at=now)

    def update_record(self, kind: str, record_id: str, fields: dict[str, Any]) -> Record:
        """Merge *fields* into an existing record (top-level keys overwrite).

        Raises:
            PersistenceError: If the record does not exist or the write fails.
        """
        try:
            with self._lock, self._conn:
                existing = self._get(kind, record_id)
                if existing is None:
                    raise PersistenceError(f"Record not found: {kind}/{record_id}")
                merged = {**existing.fields, **fields}
                now = time()
                self._conn.execute(
                    "UPDATE records SET fields = ?, updated_at = ? WHERE kind = ? AND id = ?",
                    (json.dumps(merged, default=str), now, kind, record_id),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot update {kind}/{record_id}: {exc}") from exc
        return Record(
            kind=kind,
            id=record_id,
            fields=merged,
            created_at=existing.created_at,
            updated_at=now,
        )

    def get_record(self, kind: str, record_id: str) -> Optional[Record]:
        """Fetch a single record.  Returns ``None`` if not found."""
        try:
            with self._lock:
                return self._get(kind, record_id)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot read {kind}/{record_id}: {exc}") from exc

    def list_records(self, kind: str, **filters: Any) -> list[Record]:
        """Return all records of *kind*, oldest first, whose fields equal *filters*."""
        try:
            with self._lock:
                rows = self._conn.execute(
                    "SELECT * FROM records WHERE kind = ? ORDER BY created_at, rowid",
                    (kind,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot list {kind}: {exc}") from exc

        records = [_row_to_record(r) for r in rows]
        return [
            r for r in records
            if all(r.fields.get(key) == value for key, value in filters.items())
        ]
