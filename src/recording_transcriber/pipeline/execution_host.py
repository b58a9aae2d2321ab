from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

import numpy as np

from recording_transcriber.config import configure_logging
from recording_transcriber.contexts import get_context
from recording_transcriber.errors import BlobNotFoundError, ChannelError, PipelineError
from recording_transcriber.messages import (
    STARTING_STATUS,
    Complete,
    Error,
    PipelineMessage,
    Progress,
    Terminate,
    Transcribe,
)
from recording_transcriber.pipeline.compute_unit import InferenceOptions
from recording_transcriber.pipeline.worker_facade import ProgressCallback, WorkerFacade
from recording_transcriber.services.decoder import decode_audio
from recording_transcriber.services.speech_model import ModelLoader
from recording_transcriber.types import Isolation

logger = logging.getLogger(__name__)

Decoder = Callable[[bytes], np.ndarray]
Emit = Callable[[PipelineMessage], None]


class BlobStore(Protocol):
    def get(self, recording_id: str) -> bytes | None: ...


@dataclass(slots=True, frozen=True)
class HostConfig:
    """Everything the host context needs; picklable for process isolation."""

    blob_store: BlobStore
    load_model: ModelLoader
    decoder: Decoder = decode_audio
    compute_isolation: Isolation = "process"
    options: InferenceOptions = field(default_factory=InferenceOptions)
    poll_interval_seconds: float = 0.5


class ExecutionHost:
    def __init__(self, *, blobs: BlobStore, decoder: Decoder, facade: WorkerFacade) -> None:
        self.blobs = blobs
        self.decoder = decoder
        self.facade = facade

    def transcribe(self, recording_id: str, on_progress: ProgressCallback | None = None) -> str:
        data = self.blobs.get(recording_id)
        if data is None:
            raise BlobNotFoundError(recording_id)

        if on_progress is not None:
            on_progress(STARTING_STATUS, 0)
        samples = self.decoder(data)
        del data
        logger.info("Decoded recording %s into %d samples", recording_id, len(samples))

        return self.facade.transcribe_video(samples, on_progress)

    def handle(self, message: PipelineMessage, emit: Emit) -> bool:
        """Serve one request; returns False once the host should stop."""
        if isinstance(message, Transcribe):
            recording_id = message.recording_id
            if not recording_id:
                emit(Error(reason="transcribe request without a recording id", kind=ChannelError.kind))
                return True

            def forward(status: str, percent: int) -> None:
                emit(Progress(status=status, percent=percent, recording_id=recording_id))

            try:
                transcript = self.transcribe(recording_id, forward)
            except PipelineError as exc:
                logger.warning("Transcription of %s failed: %s", recording_id, exc.reason)
                emit(Error.from_exception(exc, recording_id))
                return True
            except Exception as exc:  # pylint: disable=broad-except
                logger.exception("Transcription of %s failed", recording_id)
                emit(Error.from_exception(exc, recording_id))
                return True

            emit(Complete(transcript=transcript, recording_id=recording_id))
            return True

        if isinstance(message, Terminate):
            self.facade.terminate()
            return False

        logger.warning("Execution host received unsupported message %r", message)
        emit(Error(reason=f"unsupported message {type(message).__name__}", kind=ChannelError.kind))
        return True


def run_execution_host(requests: Any, events: Any, config: HostConfig) -> None:
    """Message loop of the host context; serves one request at a time until ``Terminate``."""
    configure_logging()
    facade = WorkerFacade(
        config.load_model,
        context=get_context(config.compute_isolation),
        options=config.options,
        poll_interval_seconds=config.poll_interval_seconds,
    )
    host = ExecutionHost(blobs=config.blob_store, decoder=config.decoder, facade=facade)
    logger.info("Execution host ready")
    try:
        while host.handle(requests.get(), events.put):
            pass
    finally:
        facade.terminate()
        logger.info("Execution host stopped")
