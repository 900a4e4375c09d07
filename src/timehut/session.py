# session state logic
import json
import sqlite3
import threading
from pathlib import Path
from typing import Any

SELECTED_CHILD_KEY = "selectedChild"
PHOTO_CACHE_KEY = "timelinePhotos"
SCROLL_RESTORE_KEY = "scrollRestore"

SCHEMA = """
CREATE TABLE IF NOT EXISTS session_state(
  session_id TEXT NOT NULL,
  key TEXT NOT NULL,
  value TEXT NOT NULL,
  updated_ts DATETIME DEFAULT CURRENT_TIMESTAMP,
  PRIMARY KEY (session_id, key)
);
"""


class SessionStore:
    """
    Session-scoped key/value state backed by SQLite.

    Values are stored as JSON. Each SessionStore is bound to one session id,
    so several timelines (one per tab or profile) can share a database file
    without seeing each other's state.

    Uses thread-local connections like a regular file-backed store; an
    in-memory database (":memory:") keeps a single shared connection since
    every new connection would otherwise open an empty database.
    """

    def __init__(self, db_path: str | Path = ":memory:", session_id: str = "default"):
        self.db_path = str(db_path)
        self.session_id = session_id
        self._local = threading.local()
        self._write_lock = threading.Lock()
        self._shared: sqlite3.Connection | None = None
        if self.db_path == ":memory:":
            self._shared = sqlite3.connect(":memory:", check_same_thread=False)

        conn = self._get_conn()
        conn.executescript(SCHEMA)
        conn.commit()

    def _get_conn(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if self._shared is not None:
            return self._shared
        if not hasattr(self._local, "conn") or self._local.conn is None:
            self._local.conn = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                timeout=30.0,
            )
        conn: sqlite3.Connection = self._local.conn
        return conn

    def get(self, key: str, default: Any = None) -> Any:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT value FROM session_state WHERE session_id=? AND key=?",
            (self.session_id, key),
        ).fetchone()
        if row is None:
            return default
        try:
            return json.loads(row[0])
        except ValueError:
            return default

    def set(self, key: str, value: Any) -> None:
        with self._write_lock:
            conn = self._get_conn()
            conn.execute(
                "INSERT INTO session_state(session_id, key, value) VALUES(?,?,?) "
                "ON CONFLICT(session_id, key) DO UPDATE SET value=excluded.value, "
                "updated_ts=CURRENT_TIMESTAMP",
                (self.session_id, key, json.dumps(value, ensure_ascii=False)),
            )
            conn.commit()

    def delete(self, key: str) -> None:
        with self._write_lock:
            conn = self._get_conn()
            conn.execute(
                "DELETE FROM session_state WHERE session_id=? AND key=?",
                (self.session_id, key),
            )
            conn.commit()

    def pop(self, key: str, default: Any = None) -> Any:
        value = self.get(key, default)
        self.delete(key)
        return value

    def clear(self) -> None:
        """Drop every key of this session."""
        with self._write_lock:
            conn = self._get_conn()
            conn.execute("DELETE FROM session_state WHERE session_id=?", (self.session_id,))
            conn.commit()

    def close(self):
        if self._shared is not None:
            self._shared.close()
            self._shared = None
        elif getattr(self._local, "conn", None) is not None:
            self._local.conn.close()
            self._local.conn = None
