"""Database initialisation.

``init_db(conn)`` applies the bundled ``schema.sql`` and is safe to call on an
existing database.
"""

from __future__ import annotations

import sqlite3

from harvester.config import settings


def _read_schema() -> str:
    return settings.schema_path.read_text(encoding="utf-8")


def init_db(conn: sqlite3.Connection) -> None:
    """Create the records table and its indexes.

    Every DDL statement uses ``IF NOT EXISTS``, so repeated calls are no-ops.
    """
    conn.executescript(_read_schema())
