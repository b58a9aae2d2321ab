from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Union

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class TranscriptionStarted:
    recording_id: str


@dataclass(slots=True, frozen=True)
class TranscriptionProgress:
    recording_id: str
    status: str
    percent: int


@dataclass(slots=True, frozen=True)
class TranscriptionCompleted:
    recording_id: str
    transcript: str


@dataclass(slots=True, frozen=True)
class TranscriptionFailed:
    recording_id: str
    reason: str


TranscriptionEvent = Union[TranscriptionStarted, TranscriptionProgress, TranscriptionCompleted, TranscriptionFailed]
Observer = Callable[[TranscriptionEvent], None]


class EventBus:
    """Broadcasts transcription events to every current subscriber, in emit order."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._observers: list[Observer] = []

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        with self._lock:
            self._observers.append(observer)

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    def emit(self, event: TranscriptionEvent) -> None:
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(event)
            except Exception:  # pylint: disable=broad-except
                logger.exception("Observer failed on %s for recording %s", type(event).__name__, event.recording_id)


class ProgressTracker:
    """Observer that remembers the latest progress of each running transcription.

    A recording submitted again before its earlier run ended keeps an entry
    until every run has reported an outcome.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._latest: dict[str, dict[str, Any]] = {}
        self._runs: dict[str, int] = {}

    def __call__(self, event: TranscriptionEvent) -> None:
        recording_id = event.recording_id
        with self._lock:
            if isinstance(event, TranscriptionStarted):
                self._runs[recording_id] = self._runs.get(recording_id, 0) + 1
                self._latest.setdefault(recording_id, {"status": "Queued", "percent": 0})
            elif isinstance(event, TranscriptionProgress):
                self._latest[recording_id] = {"status": event.status, "percent": event.percent}
            elif isinstance(event, (TranscriptionCompleted, TranscriptionFailed)):
                runs = self._runs.pop(recording_id, 0) - 1
                if runs > 0:
                    self._runs[recording_id] = runs
                    self._latest[recording_id] = {"status": "Queued", "percent": 0}
                else:
                    self._latest.pop(recording_id, None)

    def get(self, recording_id: str) -> dict[str, Any] | None:
        with self._lock:
            latest = self._latest.get(recording_id)
            return dict(latest) if latest is not None else None
