"""SQLite connection factory.

Usage::

    from harvester.db.connection import get_connection

    conn = get_connection()
    conn.execute("SELECT 1")
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Optional

from harvester.config import Settings, settings


def get_connection(
    db_path: Optional[Path] = None,
    config: Optional[Settings] = None,
) -> sqlite3.Connection:
    """Open and configure a SQLite connection.

    The connection is created with ``check_same_thread=False`` because job
    threads share it; :class:`~harvester.db.records.RecordStore` serialises
    access with its own lock.  WAL journal mode is enabled for file databases
    so readers do not block the writer.

    Args:
        db_path: Override the DB path.  Defaults to ``config.db_path``.
        config: Settings to resolve the default path from.  Defaults to the
            module-level ``settings``.

    Returns:
        A configured :class:`sqlite3.Connection` with ``row_factory`` set to
        :class:`sqlite3.Row` so columns can be accessed by name.
    """
    config = config or settings
    path = db_path or config.db_path

    # Create parent directory if needed (no-op for `:memory:`)
    if str(path) != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(path), check_same_thread=False)
    conn.row_factory = sqlite3.Row

    if str(path) != ":memory:":
        conn.execute("PRAGMA journal_mode = WAL")

    return conn
