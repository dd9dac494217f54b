"""
State Store Module

Small SQLite-backed key-value store for best-effort persistence
(loudness cache and similar). Values are JSON documents in the
app_state table.
"""

import json
import os
import sqlite3
import sys
from pathlib import Path
from typing import Any, Optional
import logging

logger = logging.getLogger(__name__)


APP_STATE_SCHEMA = """
CREATE TABLE IF NOT EXISTS app_state (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""


class PersistenceFailure(Exception):
    """A read or write against local persistence failed"""


class StateStore:
    """
    Key-value store on top of SQLite

    Every failure is raised as PersistenceFailure; callers treat persistence
    as an enhancement and log it.

    Example:
        store = StateStore(":memory:")
        store.set("loudness_cache", {"a.mp3": -14.2})
        store.get("loudness_cache", {})
    """

    def __init__(self, db_path: Optional[str] = None):
        self._db_path = db_path or self._get_default_db_path()
        self._conn: Optional[sqlite3.Connection] = None

    @staticmethod
    def _get_default_db_path() -> str:
        """Get the default database path in the user data directory"""
        if sys.platform == "win32":
            base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
        elif sys.platform == "darwin":
            base = Path.home() / "Library" / "Application Support"
        else:
            base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))
        return str(base / "musicqueue" / "state.db")

    @property
    def path(self) -> str:
        return self._db_path

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            if self._db_path != ":memory:":
                Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self._db_path, timeout=30.0)
            conn.row_factory = sqlite3.Row
            if self._db_path != ":memory:":
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA synchronous=NORMAL")
            conn.execute(APP_STATE_SCHEMA)
            conn.commit()
            self._conn = conn
        return self._conn

    def get(self, key: str, default: Any = None) -> Any:
        """Read a JSON value; default when the key is missing"""
        try:
            row = self._connection().execute(
                "SELECT value FROM app_state WHERE key = ?", (key,)
            ).fetchone()
        except (sqlite3.Error, OSError) as e:
            raise PersistenceFailure(f"Failed to read {key}: {e}") from e

        if row is None:
            return default
        try:
            return json.loads(row["value"])
        except ValueError as e:
            raise PersistenceFailure(f"Corrupt value for {key}: {e}") from e

    def set(self, key: str, value: Any) -> None:
        """Write a JSON value"""
        try:
            raw = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise PersistenceFailure(f"Value for {key} is not serializable: {e}") from e

        try:
            conn = self._connection()
            conn.execute(
                "INSERT OR REPLACE INTO app_state(key, value, updated_at) VALUES(?, ?, CURRENT_TIMESTAMP)",
                (key, raw),
            )
            conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise PersistenceFailure(f"Failed to write {key}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            conn = self._connection()
            conn.execute("DELETE FROM app_state WHERE key = ?", (key,))
            conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise PersistenceFailure(f"Failed to delete {key}: {e}") from e

    def close(self) -> None:
        """Close the connection"""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
