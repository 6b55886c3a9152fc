"""Per-server settings persisted in SQLite.

Every configured DVR server owns a set of rows in ``server_settings`` keyed
by ``(server_id, key)``; values are stored JSON-encoded so ports and flags
come back with their type.  The file lives in ``$DVR_DATA_DIR/dvrclient.db``
unless :func:`set_db_path` points elsewhere (the CLI ``--data-dir`` and the
tests do).

Store failures never propagate: :class:`SettingsStore` logs them and hands
back the default, so a broken settings file degrades to an unconfigured
server rather than a crash.

Usage::

    from dvrclient.db import SettingsStore, init_db
    init_db()
    store = SettingsStore()
    store.write(1, "hostname", "dvr.local")
    store.read(1, "port", 7001)
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DB_FILENAME = "dvrclient.db"

_db_file: Path | None = None
_connections = threading.local()


def _resolve_db_file() -> Path:
    global _db_file
    if _db_file is None:
        data_dir = Path(os.environ.get("DVR_DATA_DIR", "./data"))
        data_dir.mkdir(parents=True, exist_ok=True)
        _db_file = data_dir / DB_FILENAME
    return _db_file


def set_db_path(path: str | Path) -> None:
    """Use *path* as the settings file and drop any open connections."""
    global _db_file, _connections
    _db_file = Path(path)
    _db_file.parent.mkdir(parents=True, exist_ok=True)
    _connections = threading.local()


def get_db() -> sqlite3.Connection:
    """Connection to the settings file, opened once per thread."""
    conn = getattr(_connections, "conn", None)
    if conn is None:
        conn = sqlite3.connect(str(_resolve_db_file()), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        _connections.conn = conn
    return conn


def init_db(path: str | Path | None = None) -> None:
    """Create the settings table if it is missing."""
    if path:
        set_db_path(path)
    conn = get_db()
    conn.executescript(_SCHEMA_SQL)
    conn.commit()


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS server_settings (
    server_id  INTEGER NOT NULL,
    key        TEXT NOT NULL,
    value      TEXT,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (server_id, key)
);
CREATE INDEX IF NOT EXISTS idx_server_settings_id ON server_settings(server_id);
"""


class SettingsStore:
    """Key-value settings per configured server.

    Values are stored JSON-encoded.  Database failures are logged and never
    raised: reads fall back to the supplied default and writes leave the
    caller's in-memory value authoritative.
    """

    def __init__(self, conn: sqlite3.Connection | None = None) -> None:
        self._conn = conn

    def _db(self) -> sqlite3.Connection:
        return self._conn if self._conn is not None else get_db()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def read(self, server_id: int, key: str, default: Any = None) -> Any:
        """Return the stored value for *key*, or *default* when absent."""
        try:
            row = self._db().execute(
                "SELECT value FROM server_settings WHERE server_id = ? AND key = ?",
                (server_id, key),
            ).fetchone()
        except sqlite3.Error as exc:
            logger.warning("Failed to read setting %s for server %d: %s", key, server_id, exc)
            return default
        if row is None or row[0] is None:
            return default
        try:
            return json.loads(row[0])
        except ValueError:
            logger.warning("Corrupt setting %s for server %d, using default", key, server_id)
            return default

    def write(self, server_id: int, key: str, value: Any) -> bool:
        """Persist *value* under *key*.  Returns False if the write failed."""
        try:
            db = self._db()
            db.execute(
                """INSERT OR REPLACE INTO server_settings (server_id, key, value, updated_at)
                   VALUES (?, ?, ?, CURRENT_TIMESTAMP)""",
                (server_id, key, json.dumps(value)),
            )
            db.commit()
        except sqlite3.Error as exc:
            logger.warning("Failed to write setting %s for server %d: %s", key, server_id, exc)
            return False
        return True

    def remove(self, server_id: int) -> None:
        """Erase every setting of *server_id*."""
        try:
            db = self._db()
            db.execute("DELETE FROM server_settings WHERE server_id = ?", (server_id,))
            db.commit()
        except sqlite3.Error as exc:
            logger.warning("Failed to remove settings for server %d: %s", server_id, exc)

    def server_ids(self) -> list[int]:
        """Return the ids of all servers with at least one stored setting."""
        try:
            rows = self._db().execute(
                "SELECT DISTINCT server_id FROM server_settings ORDER BY server_id"
            ).fetchall()
        except sqlite3.Error as exc:
            logger.warning("Failed to list configured servers: %s", exc)
            return []
        return [int(r[0]) for r in rows]
