import pytest

from recording_transcriber.errors import (
    AlreadyInFlightError,
    BlobNotFoundError,
    ChannelError,
    DecodeError,
    InferenceError,
    ModelLoadError,
    NotFoundError,
    PipelineError,
    StorageWriteError,
    error_from_message,
)
from recording_transcriber.messages import Error


@pytest.mark.parametrize(
    ("error", "expected_type"),
    [
        (BlobNotFoundError("r1"), NotFoundError),
        (DecodeError("bad header"), DecodeError),
        (ModelLoadError("Failed to load model: gone"), ModelLoadError),
        (InferenceError("Transcription failed: oom"), InferenceError),
        (ChannelError("execution host stopped"), ChannelError),
        (StorageWriteError("database is locked"), StorageWriteError),
        (AlreadyInFlightError(), AlreadyInFlightError),
    ],
)
def test_errors_keep_their_kind_across_a_hop(error: PipelineError, expected_type: type[PipelineError]) -> None:
    rebuilt = error_from_message(Error.from_exception(error, "r1"))

    assert type(rebuilt) is expected_type
    assert rebuilt.reason == error.reason


def test_unknown_kind_becomes_a_plain_pipeline_error() -> None:
    rebuilt = error_from_message(Error(reason="something odd", kind="Mystery"))

    assert type(rebuilt) is PipelineError
    assert rebuilt.reason == "PipelineError: something odd"


def test_reason_starts_with_the_kind() -> None:
    assert DecodeError("bad header").reason == "DecodeError: bad header"
    assert ChannelError().reason == "ChannelError"
