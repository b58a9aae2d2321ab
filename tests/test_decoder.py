import io
import wave

import numpy as np
import pytest

from recording_transcriber.errors import DecodeError
from recording_transcriber.services.decoder import decode_audio


def _wav(samples: np.ndarray, *, rate: int, channels: int = 1) -> bytes:
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as out:
        out.setnchannels(channels)
        out.setsampwidth(2)
        out.setframerate(rate)
        out.writeframes(samples.astype("<i2").tobytes())
    return buffer.getvalue()


def test_mono_wav_decodes_to_float_samples() -> None:
    t = np.arange(8_000) / 16_000
    pcm = (np.sin(2 * np.pi * 440 * t) * 16_384).astype(np.int16)

    samples = decode_audio(_wav(pcm, rate=16_000))

    assert samples.dtype == np.float32
    assert samples.shape == (8_000,)
    assert 0.45 < float(np.abs(samples).max()) <= 0.5


def test_stereo_wav_is_mixed_down_to_mono() -> None:
    frames = np.full((4_000, 2), 8_192, dtype=np.int16)

    samples = decode_audio(_wav(frames.reshape(-1), rate=16_000, channels=2))

    assert samples.shape == (4_000,)
    assert np.allclose(samples, 0.25, atol=1e-3)


def test_empty_bytes_are_a_decode_error() -> None:
    with pytest.raises(DecodeError):
        decode_audio(b"")


def test_garbage_is_a_decode_error() -> None:
    with pytest.raises(DecodeError) as excinfo:
        decode_audio(b"RIFF\x00\x00\x00\x00WAVEnot-a-real-chunk")
    assert excinfo.value.reason.startswith("DecodeError:")
