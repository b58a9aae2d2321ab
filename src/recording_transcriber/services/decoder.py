"""Container bytes to 16 kHz mono float PCM.

Decoding goes through pydub, which hands anything but plain WAV to ffmpeg.
"""

from __future__ import annotations

import io
import logging

import numpy as np
from pydub import AudioSegment

from recording_transcriber.errors import DecodeError
from recording_transcriber.messages import SAMPLE_RATE

logger = logging.getLogger(__name__)

TARGET_SAMPLE_RATE = SAMPLE_RATE
_SAMPLE_WIDTH = 2
_FULL_SCALE = float(2 ** (8 * _SAMPLE_WIDTH - 1))


def _container_format(data: bytes) -> str | None:
    if data[:4] == b"RIFF" and data[8:12] == b"WAVE":
        return "wav"
    return None


def decode_audio(data: bytes, *, sample_rate: int = TARGET_SAMPLE_RATE) -> np.ndarray:
    """Decode a recording into a mono float32 buffer in ``[-1, 1]``.

    Args:
        data: Raw container bytes (webm, mp4, wav, ...).
        sample_rate: Output sample rate in Hz.

    Returns:
        A one-dimensional float32 array. A recording without audio frames
        decodes to an empty array.

    Raises:
        DecodeError: If the bytes cannot be parsed as an audio container.
    """
    if not data:
        raise DecodeError("recording is empty")

    try:
        audio = AudioSegment.from_file(io.BytesIO(data), format=_container_format(data))
        audio = audio.set_channels(1).set_frame_rate(sample_rate).set_sample_width(_SAMPLE_WIDTH)
        pcm = np.array(audio.get_array_of_samples(), dtype=np.int16)
    except Exception as exc:  # pylint: disable=broad-except
        message = str(exc).strip().splitlines()[0] if str(exc).strip() else type(exc).__name__
        logger.warning("Could not decode %d bytes: %s", len(data), message)
        raise DecodeError(message, exc) from exc

    return (pcm.astype(np.float32) / _FULL_SCALE).astype(np.float32, copy=False)
