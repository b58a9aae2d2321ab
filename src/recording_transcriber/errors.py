"""Error taxonomy shared by every context of the transcription pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from recording_transcriber.messages import Error


class PipelineError(Exception):
    """Base class for failures that end a transcription.

    ``kind`` is the stable name observers see at the start of ``reason``.
    """

    kind = "PipelineError"

    def __init__(self, detail: str = "", cause: Exception | None = None) -> None:
        self.detail = detail
        self.cause = cause
        super().__init__(self.reason)

    @property
    def reason(self) -> str:
        if not self.detail:
            return self.kind
        return f"{self.kind}: {self.detail}"


class NotFoundError(PipelineError):
    kind = "NotFound"


class RecordingNotFoundError(NotFoundError):
    def __init__(self, recording_id: str) -> None:
        self.recording_id = recording_id
        super().__init__(f"recording '{recording_id}' does not exist")


class BlobNotFoundError(NotFoundError):
    def __init__(self, recording_id: str) -> None:
        self.recording_id = recording_id
        super().__init__(f"no video stored for recording '{recording_id}'")


class DecodeError(PipelineError):
    kind = "DecodeError"


class ModelLoadError(PipelineError):
    kind = "ModelLoadError"


class InferenceError(PipelineError):
    kind = "InferenceError"


class ChannelError(PipelineError):
    kind = "ChannelError"


class StorageWriteError(PipelineError):
    kind = "StorageWriteError"


class AlreadyInFlightError(PipelineError):
    kind = "AlreadyInFlight"

    def __init__(self, detail: str = "a transcription is already outstanding on this worker") -> None:
        super().__init__(detail)


_KINDS: dict[str, type[PipelineError]] = {
    cls.kind: cls
    for cls in (
        PipelineError,
        NotFoundError,
        DecodeError,
        ModelLoadError,
        InferenceError,
        ChannelError,
        StorageWriteError,
        AlreadyInFlightError,
    )
}


def error_from_message(message: Error) -> PipelineError:
    """Rebuild the typed exception carried by an ``Error`` message."""
    error_cls = _KINDS.get(message.kind, PipelineError)
    return error_cls(message.reason)
