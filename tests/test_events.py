from typing import Any

from recording_transcriber.events import (
    EventBus,
    ProgressTracker,
    TranscriptionCompleted,
    TranscriptionFailed,
    TranscriptionProgress,
    TranscriptionStarted,
)


def test_observers_see_events_in_emit_order() -> None:
    bus = EventBus()
    seen: list[Any] = []
    bus.subscribe(seen.append)

    bus.emit(TranscriptionStarted(recording_id="r1"))
    bus.emit(TranscriptionProgress(recording_id="r1", status="Transcribing audio", percent=50))
    bus.emit(TranscriptionCompleted(recording_id="r1", transcript="hi"))

    assert [type(event) for event in seen] == [TranscriptionStarted, TranscriptionProgress, TranscriptionCompleted]


def test_failing_observer_does_not_starve_the_others() -> None:
    bus = EventBus()
    seen: list[Any] = []

    def broken(_: Any) -> None:
        raise RuntimeError("observer bug")

    bus.subscribe(broken)
    bus.subscribe(seen.append)
    bus.emit(TranscriptionStarted(recording_id="r1"))

    assert seen == [TranscriptionStarted(recording_id="r1")]


def test_unsubscribe() -> None:
    bus = EventBus()
    seen: list[Any] = []
    unsubscribe = bus.subscribe(seen.append)

    unsubscribe()
    unsubscribe()
    bus.emit(TranscriptionStarted(recording_id="r1"))

    assert seen == []


def test_progress_tracker_follows_a_transcription() -> None:
    tracker = ProgressTracker()
    assert tracker.get("r1") is None

    tracker(TranscriptionStarted(recording_id="r1"))
    assert tracker.get("r1") == {"status": "Queued", "percent": 0}

    tracker(TranscriptionProgress(recording_id="r1", status="Loading AI model", percent=30))
    assert tracker.get("r1") == {"status": "Loading AI model", "percent": 30}

    tracker(TranscriptionFailed(recording_id="r1", reason="NotFound"))
    assert tracker.get("r1") is None


def test_progress_tracker_keeps_a_queued_rerun() -> None:
    tracker = ProgressTracker()

    tracker(TranscriptionStarted(recording_id="r1"))
    tracker(TranscriptionProgress(recording_id="r1", status="Transcribing audio", percent=50))
    tracker(TranscriptionStarted(recording_id="r1"))
    assert tracker.get("r1") == {"status": "Transcribing audio", "percent": 50}

    tracker(TranscriptionCompleted(recording_id="r1", transcript="first"))
    assert tracker.get("r1") == {"status": "Queued", "percent": 0}

    tracker(TranscriptionCompleted(recording_id="r1", transcript="second"))
    assert tracker.get("r1") is None
