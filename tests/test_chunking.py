import pytest

from recording_transcriber.pipeline.chunking import join_transcript, owned_text, plan_windows
from recording_transcriber.types import TranscriptSegment

RATE = 16_000


def test_short_audio_is_a_single_window() -> None:
    windows = plan_windows(10 * RATE, RATE)

    assert len(windows) == 1
    window = windows[0]
    assert (window.start, window.end) == (0, 10 * RATE)
    assert (window.owned_start, window.owned_end) == (0, 10 * RATE)
    assert window.is_last


def test_long_audio_windows_overlap_by_the_stride() -> None:
    windows = plan_windows(70 * RATE, RATE)

    assert [(w.start // RATE, w.end // RATE) for w in windows] == [(0, 30), (20, 50), (40, 70)]
    assert [(w.owned_start // RATE, w.owned_end // RATE) for w in windows] == [(0, 25), (25, 45), (45, 70)]
    assert [w.is_last for w in windows] == [False, False, True]


def test_no_samples_means_no_windows() -> None:
    assert plan_windows(0, RATE) == []


def test_stride_must_leave_room_for_a_step() -> None:
    with pytest.raises(ValueError):
        plan_windows(60 * RATE, RATE, chunk_length_s=10.0, stride_length_s=5.0)


def test_segment_across_a_window_edge_is_kept_once() -> None:
    first, second, _ = plan_windows(70 * RATE, RATE)
    # 24s-27s of the recording, seen by both windows.
    crossing_first = TranscriptSegment(start=24.0, end=27.0, text="edge words")
    crossing_second = TranscriptSegment(start=4.0, end=7.0, text="edge words")

    parts = owned_text(first, [crossing_first], RATE) + owned_text(second, [crossing_second], RATE)

    assert parts == ["edge words"]


def test_last_window_keeps_segments_past_the_end() -> None:
    (window,) = plan_windows(10 * RATE, RATE)
    segments = [
        TranscriptSegment(start=1.0, end=2.0, text=" first "),
        TranscriptSegment(start=9.5, end=11.0, text="tail"),
        TranscriptSegment(start=3.0, end=4.0, text="   "),
    ]

    assert owned_text(window, segments, RATE) == ["first", "tail"]


def test_join_transcript_drops_blank_parts() -> None:
    assert join_transcript(["hello", " ", " world "]) == "hello world"
    assert join_transcript([]) == ""
