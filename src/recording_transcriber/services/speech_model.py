from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol

import numpy as np

from recording_transcriber.types import TranscriptSegment

logger = logging.getLogger(__name__)

LoadProgress = Callable[[float], None]


class SpeechModel(Protocol):
    def transcribe(self, samples: np.ndarray) -> list[TranscriptSegment]:
        """Transcribe one window; segment times are relative to the window start."""
        ...


class ModelLoader(Protocol):
    def __call__(self, on_progress: LoadProgress) -> SpeechModel: ...


class FasterWhisperModel:
    def __init__(self, model: object, *, language: str | None, beam_size: int = 5) -> None:
        self._model = model
        self.language = language
        self.beam_size = beam_size

    def transcribe(self, samples: np.ndarray) -> list[TranscriptSegment]:
        segments, _ = self._model.transcribe(  # type: ignore[attr-defined]
            samples,
            language=self.language,
            beam_size=self.beam_size,
            vad_filter=False,
            word_timestamps=False,
        )
        return [
            TranscriptSegment(start=float(segment.start), end=float(segment.end), text=segment.text.strip())
            for segment in segments
            if segment.text.strip()
        ]


@dataclass(slots=True, frozen=True)
class FasterWhisperLoader:
    """Picklable recipe for loading a Whisper model inside the compute unit."""

    model: str = "tiny.en"
    device: str = "cpu"
    compute_type: str = "int8"
    language: str | None = "en"
    download_root: Path | None = None

    def __call__(self, on_progress: LoadProgress) -> SpeechModel:
        from faster_whisper import WhisperModel
        from faster_whisper.utils import download_model

        on_progress(0)
        cache_dir = str(self.download_root) if self.download_root is not None else None
        model_path = download_model(self.model, cache_dir=cache_dir)
        logger.info("Whisper model %s available at %s", self.model, model_path)
        on_progress(50)

        model = WhisperModel(model_path, device=self.device, compute_type=self.compute_type)
        on_progress(100)
        return FasterWhisperModel(model, language=self.language)
