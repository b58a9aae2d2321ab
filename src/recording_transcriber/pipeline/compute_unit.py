from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

import numpy as np

from recording_transcriber.config import configure_logging
from recording_transcriber.errors import ChannelError, InferenceError, ModelLoadError
from recording_transcriber.messages import (
    COMPLETE_STATUS,
    LOADING_STATUS,
    MAX_LOAD_PROGRESS,
    SAMPLE_RATE,
    TRANSCRIBING_PROGRESS,
    TRANSCRIBING_STATUS,
    Complete,
    Error,
    Initialize,
    Initialized,
    PipelineMessage,
    Progress,
    Terminate,
    Transcribe,
)
from recording_transcriber.pipeline.chunking import (
    CHUNK_LENGTH_S,
    STRIDE_LENGTH_S,
    join_transcript,
    owned_text,
    plan_windows,
)
from recording_transcriber.services.speech_model import ModelLoader, SpeechModel
from recording_transcriber.types import ComputePhase

logger = logging.getLogger(__name__)

Emit = Callable[[PipelineMessage], None]


@dataclass(slots=True, frozen=True)
class InferenceOptions:
    sample_rate: int = SAMPLE_RATE
    chunk_length_s: float = CHUNK_LENGTH_S
    stride_length_s: float = STRIDE_LENGTH_S


class ComputeUnit:
    def __init__(self, load_model: ModelLoader, emit: Emit, options: InferenceOptions | None = None) -> None:
        self._load_model = load_model
        self._emit = emit
        self.options = options or InferenceOptions()
        self.phase: ComputePhase = "unloaded"
        self._model: SpeechModel | None = None
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    def handle(self, message: PipelineMessage) -> bool:
        if isinstance(message, Initialize):
            self.initialize()
        elif isinstance(message, Transcribe):
            self.transcribe(message.samples)
        elif isinstance(message, Terminate):
            self.terminate()
        else:
            logger.warning("Compute unit received unsupported message %r", message)
            self._emit(Error(reason=f"unsupported message {type(message).__name__}", kind=ChannelError.kind))
        return self._running

    def initialize(self) -> bool:
        if self.phase in ("ready", "transcribing"):
            self._emit(Initialized())
            return True
        if self.phase == "loading":
            return False

        self.phase = "loading"
        self._emit(Progress(status=LOADING_STATUS, percent=0))
        reported = 0

        def on_progress(value: float) -> None:
            nonlocal reported
            percent = min(int(round(value)), MAX_LOAD_PROGRESS)
            if percent > reported:
                reported = percent
                self._emit(Progress(status=LOADING_STATUS, percent=percent))

        try:
            model = self._load_model(on_progress)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Failed to load speech model")
            self.phase = "unloaded"
            message = str(exc).strip() or type(exc).__name__
            self._emit(Error(reason=f"Failed to load model: {message}", kind=ModelLoadError.kind))
            return False

        self._model = model
        self.phase = "ready"
        logger.info("Speech model loaded")
        self._emit(Initialized())
        return True

    def transcribe(self, samples: Any) -> None:
        if self.phase != "ready" and not self.initialize():
            if self.phase == "loading":
                self._emit(Error(reason="model is still loading", kind=InferenceError.kind))
            return

        self.phase = "transcribing"
        self._emit(Progress(status=TRANSCRIBING_STATUS, percent=TRANSCRIBING_PROGRESS))
        try:
            transcript = self._run_inference(samples)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Transcription failed")
            message = exc.detail if isinstance(exc, InferenceError) else str(exc).strip() or type(exc).__name__
            self._emit(Error(reason=f"Transcription failed: {message}", kind=InferenceError.kind))
            return
        finally:
            if self.phase == "transcribing":
                self.phase = "ready"

        self._emit(Progress(status=COMPLETE_STATUS, percent=100))
        self._emit(Complete(transcript=transcript))

    def terminate(self) -> None:
        self._model = None
        self.phase = "unloaded"
        self._running = False

    def _run_inference(self, samples: Any) -> str:
        if self._model is None:
            raise InferenceError("model not loaded")
        audio = np.asarray(samples if samples is not None else [], dtype=np.float32).reshape(-1)
        options = self.options
        windows = plan_windows(len(audio), options.sample_rate, options.chunk_length_s, options.stride_length_s)
        logger.info("Transcribing %.1fs of audio in %d window(s)", len(audio) / options.sample_rate, len(windows))

        parts: list[str] = []
        reported = TRANSCRIBING_PROGRESS
        for index, window in enumerate(windows, start=1):
            segments = self._model.transcribe(audio[window.start : window.end])
            parts.extend(owned_text(window, segments, options.sample_rate))

            percent = TRANSCRIBING_PROGRESS + (index * (99 - TRANSCRIBING_PROGRESS)) // len(windows)
            if percent > reported:
                reported = percent
                self._emit(Progress(status=TRANSCRIBING_STATUS, percent=percent))
        return join_transcript(parts)


def run_compute_unit(inbox: Any, outbox: Any, load_model: ModelLoader, options: InferenceOptions | None = None) -> None:
    """Message loop of the compute context; returns after ``Terminate``."""
    configure_logging()
    unit = ComputeUnit(load_model, outbox.put, options)
    while unit.running:
        message = inbox.get()
        try:
            unit.handle(message)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Compute unit failed while handling %s", type(message).__name__)
            outbox.put(Error.from_exception(exc))
    logger.info("Compute unit stopped")
