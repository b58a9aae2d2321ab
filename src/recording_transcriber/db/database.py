from __future__ import annotations

import sqlite3
from pathlib import Path
from threading import Lock


class Database:
    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()
        self._conn = sqlite3.connect(str(path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._initialize()

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    @property
    def lock(self) -> Lock:
        return self._lock

    def _initialize(self) -> None:
        with self._lock:
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")

            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS recordings (
                  id TEXT PRIMARY KEY,
                  filename TEXT NOT NULL,
                  created_at TEXT NOT NULL DEFAULT (datetime('now')),
                  size INTEGER,
                  transcription_status TEXT NOT NULL DEFAULT 'idle',
                  transcript TEXT,
                  transcription_error TEXT,
                  transcription_updated_at TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_recordings_status_created_at
                ON recordings(transcription_status, created_at);
                """
            )
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()
