from __future__ import annotations

import logging
import sqlite3
from typing import Any

from recording_transcriber.db.database import Database
from recording_transcriber.errors import StorageWriteError
from recording_transcriber.types import Recording, TranscriptionState, TranscriptionStatus

logger = logging.getLogger(__name__)


class RecordingsRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    def create(self, recording_id: str, filename: str, size: int | None = None) -> Recording:
        with self.db.lock:
            self.db.conn.execute(
                "INSERT INTO recordings(id, filename, size) VALUES (?, ?, ?)",
                (recording_id, filename, size),
            )
            self.db.conn.commit()

        recording = self.get(recording_id)
        if recording is None:
            raise RuntimeError("Failed to create recording")
        return recording

    def get(self, recording_id: str) -> Recording | None:
        row = self.db.conn.execute("SELECT * FROM recordings WHERE id = ?", (recording_id,)).fetchone()
        return self._to_recording(dict(row)) if row is not None else None

    def list_by_status(self, status: TranscriptionStatus, limit: int = 50) -> list[Recording]:
        rows = self.db.conn.execute(
            """
            SELECT * FROM recordings
            WHERE transcription_status = ?
            ORDER BY created_at ASC
            LIMIT ?
            """,
            (status, max(1, min(limit, 500))),
        ).fetchall()
        return [self._to_recording(dict(row)) for row in rows]

    def set_transcription(self, recording_id: str, state: TranscriptionState) -> None:
        """Write only the transcription columns so concurrent edits to other fields survive."""
        try:
            with self.db.lock:
                cursor = self.db.conn.execute(
                    """
                    UPDATE recordings
                    SET transcription_status = ?,
                        transcript = ?,
                        transcription_error = ?,
                        transcription_updated_at = datetime('now')
                    WHERE id = ?
                    """,
                    (state.status, state.transcript, state.error, recording_id),
                )
                self.db.conn.commit()
        except sqlite3.Error as exc:
            raise StorageWriteError(f"could not store '{state.status}' for recording '{recording_id}': {exc}", exc) from exc

        if cursor.rowcount == 0:
            raise StorageWriteError(f"recording '{recording_id}' disappeared before '{state.status}' was stored")
        logger.debug("Recording %s transcription is now %s", recording_id, state.status)

    @staticmethod
    def _to_recording(row: dict[str, Any]) -> Recording:
        return Recording(
            id=str(row["id"]),
            filename=str(row["filename"]),
            created_at=str(row["created_at"]),
            size=int(row["size"]) if row["size"] is not None else None,
            transcription=TranscriptionState(
                status=row["transcription_status"],
                transcript=row["transcript"],
                error=row["transcription_error"],
            ),
        )
