"""Overlapping windows for long-form inference.

Audio is cut into ``chunk_length_s`` windows that overlap by ``stride_length_s``
on each inner edge. Each window owns the span between its strides; a segment is
kept only by the window that owns its midpoint, so speech crossing a window
edge appears exactly once in the joined transcript.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from recording_transcriber.types import TranscriptSegment

CHUNK_LENGTH_S = 30.0
STRIDE_LENGTH_S = 5.0


@dataclass(slots=True, frozen=True)
class Window:
    start: int
    end: int
    owned_start: int
    owned_end: int
    is_last: bool = False


def plan_windows(
    num_samples: int,
    sample_rate: int,
    chunk_length_s: float = CHUNK_LENGTH_S,
    stride_length_s: float = STRIDE_LENGTH_S,
) -> list[Window]:
    chunk_len = int(round(chunk_length_s * sample_rate))
    stride_len = int(round(stride_length_s * sample_rate))
    step = chunk_len - 2 * stride_len
    if step <= 0:
        raise ValueError("chunk length must be more than twice the stride length")

    windows: list[Window] = []
    for start in range(0, num_samples, step):
        end = start + chunk_len
        is_last = end >= num_samples
        windows.append(
            Window(
                start=start,
                end=min(end, num_samples),
                owned_start=start if start == 0 else start + stride_len,
                owned_end=num_samples if is_last else end - stride_len,
                is_last=is_last,
            )
        )
        if is_last:
            break
    return windows


def owned_text(window: Window, segments: Iterable[TranscriptSegment], sample_rate: int) -> list[str]:
    texts: list[str] = []
    for segment in segments:
        midpoint = window.start + int((segment.start + segment.end) / 2 * sample_rate)
        # The last window also keeps segments the model places past the end of the audio.
        if window.owned_start <= midpoint and (midpoint < window.owned_end or window.is_last):
            texts.append(segment.text.strip())
    return [text for text in texts if text]


def join_transcript(parts: Iterable[str]) -> str:
    return " ".join(part.strip() for part in parts if part.strip()).strip()
