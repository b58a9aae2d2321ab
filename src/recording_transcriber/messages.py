"""Typed messages passed between the pipeline contexts.

Every message is a small frozen dataclass so it pickles across a
``multiprocessing`` queue unchanged. Receivers dispatch on the concrete class
and reject anything outside ``PipelineMessage``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from recording_transcriber.errors import PipelineError

LOADING_STATUS = "Loading AI model"
STARTING_STATUS = "Starting transcription"
TRANSCRIBING_STATUS = "Transcribing audio"
COMPLETE_STATUS = "Complete!"

MAX_LOAD_PROGRESS = 30
TRANSCRIBING_PROGRESS = 50

# Samples crossing any hop are mono float32 at this rate.
SAMPLE_RATE = 16_000


@dataclass(slots=True, frozen=True)
class Initialize:
    """Ask the compute unit to load its model."""


@dataclass(slots=True, frozen=True)
class Initialized:
    """The model is loaded and the compute unit accepts transcriptions."""


@dataclass(slots=True, frozen=True)
class Transcribe:
    """Request a transcript.

    Between the orchestrator and the host only ``recording_id`` is set; between
    the facade and the compute unit ``samples`` holds the mono float32 buffer,
    which the sender must not touch after sending.
    """

    recording_id: str | None = None
    samples: Any = None


@dataclass(slots=True, frozen=True)
class Progress:
    status: str
    percent: int
    recording_id: str | None = None


@dataclass(slots=True, frozen=True)
class Complete:
    transcript: str
    recording_id: str | None = None


@dataclass(slots=True, frozen=True)
class Error:
    reason: str
    kind: str = PipelineError.kind
    recording_id: str | None = None

    @classmethod
    def from_exception(cls, exc: Exception, recording_id: str | None = None) -> Error:
        if isinstance(exc, PipelineError):
            return cls(reason=exc.detail, kind=exc.kind, recording_id=recording_id)
        return cls(reason=str(exc).strip() or type(exc).__name__, recording_id=recording_id)


@dataclass(slots=True, frozen=True)
class Terminate:
    """Stop the receiving context after releasing its resources."""


PipelineMessage = Union[Initialize, Initialized, Transcribe, Progress, Complete, Error, Terminate]

DOWNSTREAM_MESSAGES = (Initialize, Transcribe, Terminate)
