from __future__ import annotations

from typing import Any

from fastmcp import FastMCP
from mcp.types import ToolAnnotations

from recording_transcriber.db.recordings import RecordingsRepository
from recording_transcriber.errors import PipelineError, RecordingNotFoundError
from recording_transcriber.events import ProgressTracker
from recording_transcriber.pipeline.orchestrator import TranscriptionOrchestrator


class ToolRegistry:
    def __init__(
        self,
        orchestrator: TranscriptionOrchestrator,
        recordings: RecordingsRepository,
        tracker: ProgressTracker,
    ) -> None:
        self.orchestrator = orchestrator
        self.recordings = recordings
        self.tracker = tracker

    def register(self, mcp: FastMCP) -> None:
        _ro = ToolAnnotations(readOnlyHint=True)

        @mcp.tool(annotations=ToolAnnotations(readOnlyHint=False, idempotentHint=False))
        def transcribe(recording_id: str) -> dict[str, Any]:
            """Request a transcript for a stored recording.

            Args:
                recording_id: The recording to transcribe

            Returns:
                Whether the transcription started. Poll transcription_status for the outcome.
            """
            try:
                self.orchestrator.submit(recording_id)
            except RecordingNotFoundError:
                return {"error": "recording_not_found", "recording_id": recording_id}
            except PipelineError as exc:
                return {"error": "transcription_unavailable", "recording_id": recording_id, "message": exc.reason}

            return {
                "recording_id": recording_id,
                "status": "transcribing",
                "started": True,
            }

        @mcp.tool(annotations=_ro)
        def transcription_status(recording_id: str) -> dict[str, Any]:
            recording = self.recordings.get(recording_id)
            if recording is None:
                return {"error": "recording_not_found", "recording_id": recording_id}

            state = recording.transcription
            payload: dict[str, Any] = {
                "recording_id": recording.id,
                "filename": recording.filename,
                "status": state.status,
            }
            if state.status == "transcribed":
                payload["transcript"] = state.transcript or ""
            elif state.status == "failed":
                payload["error"] = state.error
            elif state.status == "transcribing":
                progress = self.tracker.get(recording_id)
                if progress is not None:
                    payload["progress"] = progress
            return payload
