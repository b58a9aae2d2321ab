from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

TranscriptionStatus = Literal["idle", "transcribing", "transcribed", "failed"]
ComputePhase = Literal["unloaded", "loading", "ready", "transcribing"]
Isolation = Literal["process", "thread"]

ALLOWED_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "idle": ("transcribing",),
    "transcribing": ("transcribed", "failed"),
    "transcribed": ("transcribing",),
    "failed": ("transcribing",),
}


@dataclass(slots=True, frozen=True)
class TranscriptionState:
    status: TranscriptionStatus = "idle"
    transcript: str | None = None
    error: str | None = None

    @classmethod
    def transcribing(cls) -> TranscriptionState:
        return cls(status="transcribing")

    @classmethod
    def transcribed(cls, transcript: str) -> TranscriptionState:
        return cls(status="transcribed", transcript=transcript)

    @classmethod
    def failed(cls, reason: str) -> TranscriptionState:
        return cls(status="failed", error=reason)

    def can_move_to(self, status: TranscriptionStatus) -> bool:
        return status in ALLOWED_TRANSITIONS[self.status]


@dataclass(slots=True)
class Recording:
    id: str
    filename: str
    created_at: str
    size: int | None = None
    transcription: TranscriptionState = TranscriptionState()


@dataclass(slots=True)
class TranscriptSegment:
    start: float
    end: float
    text: str
