from __future__ import annotations

import logging
import queue
from collections import Counter
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from threading import Lock, Thread
from typing import Any

from recording_transcriber.contexts import get_context
from recording_transcriber.db.recordings import RecordingsRepository
from recording_transcriber.errors import (
    AlreadyInFlightError,
    ChannelError,
    PipelineError,
    RecordingNotFoundError,
    StorageWriteError,
    error_from_message,
)
from recording_transcriber.events import (
    EventBus,
    TranscriptionCompleted,
    TranscriptionFailed,
    TranscriptionProgress,
    TranscriptionStarted,
)
from recording_transcriber.messages import Complete, Error, PipelineMessage, Progress, Terminate, Transcribe
from recording_transcriber.pipeline.execution_host import HostConfig, run_execution_host
from recording_transcriber.pipeline.worker_facade import ProgressCallback
from recording_transcriber.types import TranscriptionState

logger = logging.getLogger(__name__)

HOST_NAME = "recording-transcriber-host"


@dataclass(slots=True)
class _PendingRequest:
    future: Future[str]
    on_progress: ProgressCallback | None


class ExecutionHostHandle:
    """Process-wide handle on the single execution host.

    ``ensure_started`` is the creation guard: a live host is reused, a creation
    already under way is awaited, and only otherwise is a new host started.
    """

    def __init__(
        self,
        config: HostConfig,
        *,
        context: Any = None,
        request_timeout_seconds: float | None = 3600.0,
        poll_interval_seconds: float = 0.5,
        join_timeout_seconds: float = 10.0,
    ) -> None:
        self.config = config
        self._context = context if context is not None else get_context("process")
        self.request_timeout_seconds = request_timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.join_timeout_seconds = join_timeout_seconds

        self._lock = Lock()
        self._creating: Future[None] | None = None
        self._process: Any = None
        self._requests: Any = None
        self._events: Any = None
        self._pending: dict[str, _PendingRequest] = {}
        self._stopped = False

    @property
    def is_alive(self) -> bool:
        return self._find_live_host() is not None

    def ensure_started(self) -> None:
        if self._stopped:
            raise ChannelError("execution host stopped")
        if self._find_live_host() is not None:
            return

        with self._lock:
            if self._find_live_host() is not None:
                return
            creating = self._creating
            owner = creating is None
            if creating is None:
                creating = self._creating = Future()

        if not owner:
            creating.result()
            return

        try:
            self._start_host()
        except Exception as exc:  # pylint: disable=broad-except
            error = ChannelError(f"could not start execution host: {exc}", exc)
            creating.set_exception(error)
            raise error from exc
        else:
            creating.set_result(None)
        finally:
            with self._lock:
                self._creating = None

    def transcribe(self, recording_id: str, on_progress: ProgressCallback | None = None) -> str:
        pending = _PendingRequest(future=Future(), on_progress=on_progress)
        with self._lock:
            requests = self._requests
            if requests is None:
                raise ChannelError("execution host is not running")
            if recording_id in self._pending:
                raise AlreadyInFlightError()
            self._pending[recording_id] = pending

        try:
            requests.put(Transcribe(recording_id=recording_id))
            return pending.future.result(timeout=self.request_timeout_seconds)
        except TimeoutError as exc:
            raise ChannelError(f"no answer from execution host after {self.request_timeout_seconds:.0f}s") from exc
        finally:
            with self._lock:
                self._pending.pop(recording_id, None)

    def shutdown(self) -> None:
        """Stop the host for good; requests still waiting fail with ``ChannelError``."""
        with self._lock:
            self._stopped = True
            process, requests, events = self._process, self._requests, self._events
            self._process = self._requests = self._events = None
            pending = list(self._pending.values())

        error = ChannelError("execution host stopped")
        for request in pending:
            if not request.future.done():
                request.future.set_exception(error)

        if requests is not None:
            requests.put(Terminate())
        if process is not None:
            process.join(timeout=self.join_timeout_seconds)
            if process.is_alive():
                logger.warning("Execution host did not stop in time, terminating it")
                process.terminate()
        if events is not None:
            events.put(None)

    def _find_live_host(self) -> Any:
        for child in self._context.active_children():
            if child.name == HOST_NAME and child is self._process:
                return child
        return None

    def _start_host(self) -> None:
        requests = self._context.Queue()
        events = self._context.Queue()
        # Not a daemon: the host starts the compute unit as its own child.
        process = self._context.Process(
            target=run_execution_host,
            name=HOST_NAME,
            args=(requests, events, self.config),
            daemon=False,
        )
        process.start()
        with self._lock:
            if self._stopped:
                requests.put(Terminate())
                raise ChannelError("execution host stopped")
            self._process, self._requests, self._events = process, requests, events

        reader = Thread(target=self._read_events, args=(events, process), name=f"{HOST_NAME}-reader", daemon=True)
        reader.start()
        logger.info("Started execution host %s", HOST_NAME)

    def _read_events(self, events: Any, process: Any) -> None:
        while True:
            try:
                message = events.get(timeout=self.poll_interval_seconds)
            except queue.Empty:
                if process.is_alive():
                    continue
                self._on_host_exit(events, process)
                return

            if message is None:
                return
            try:
                self._route(message)
            except Exception:  # pylint: disable=broad-except
                logger.exception("Failed to route %s from the execution host", type(message).__name__)

    def _route(self, message: PipelineMessage) -> None:
        recording_id = getattr(message, "recording_id", None)
        with self._lock:
            pending = self._pending.get(recording_id) if recording_id else None

        if isinstance(message, Progress):
            if pending is not None and pending.on_progress is not None:
                pending.on_progress(message.status, message.percent)
        elif isinstance(message, Complete):
            if pending is not None and not pending.future.done():
                pending.future.set_result(message.transcript)
        elif isinstance(message, Error):
            error = error_from_message(message)
            if pending is not None and not pending.future.done():
                pending.future.set_exception(error)
            else:
                logger.warning("Execution host reported an error nobody waits for: %s", error.reason)
            return
        else:
            logger.error("Execution host sent an unexpected message: %r", message)
            return

        if pending is None:
            logger.debug("Dropping %s for recording %s with no request outstanding", type(message).__name__, recording_id)

    def _on_host_exit(self, events: Any, process: Any) -> None:
        with self._lock:
            if self._events is not events:
                return
            pending = list(self._pending.values())
            self._process = self._requests = self._events = None

        logger.error("Execution host exited unexpectedly (exit code %s)", process.exitcode)
        error = ChannelError(f"execution host exited with code {process.exitcode}")
        for request in pending:
            if not request.future.done():
                request.future.set_exception(error)


class TranscriptionOrchestrator:
    """Accepts transcription requests and owns the durable transcription state.

    Requests run one at a time on a single background thread; observers learn
    about every step through the event bus. When the same recording is
    submitted again before an earlier run finished, every run reports its
    outcome but only the last one writes the stored state.
    """

    def __init__(
        self,
        *,
        recordings: RecordingsRepository,
        bus: EventBus,
        host: ExecutionHostHandle,
    ) -> None:
        self.recordings = recordings
        self.bus = bus
        self.host = host
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="recording-transcriber")
        self._lock = Lock()
        self._closed = False
        self._outstanding: Counter[str] = Counter()
        self._submissions: list[tuple[str, Future[None]]] = []

    @property
    def is_running(self) -> bool:
        return not self._closed

    def fail_abandoned(self) -> int:
        """Mark recordings an earlier process left ``transcribing`` as failed.

        Call before the first ``submit``; returns how many recordings were reset.
        """
        reason = ChannelError("abandoned by restart").reason
        count = 0
        while batch := self.recordings.list_by_status("transcribing", limit=100):
            for recording in batch:
                self.recordings.set_transcription(recording.id, TranscriptionState.failed(reason))
                self.bus.emit(TranscriptionFailed(recording_id=recording.id, reason=reason))
                count += 1
        if count:
            logger.warning("Marked %d recording(s) abandoned by a restart as failed", count)
        return count

    def submit(self, recording_id: str) -> Future[None]:
        """Start transcribing ``recording_id``.

        Raises ``RecordingNotFoundError`` for an unknown recording; every later
        failure is recorded on the recording and announced on the bus instead.
        """
        if self._closed:
            raise ChannelError("orchestrator is closed")

        recording = self.recordings.get(recording_id)
        if recording is None:
            raise RecordingNotFoundError(recording_id)
        if not recording.transcription.can_move_to("transcribing"):
            logger.warning("Recording %s is already transcribing, queueing another run", recording_id)

        self.recordings.set_transcription(recording_id, TranscriptionState.transcribing())
        self.bus.emit(TranscriptionStarted(recording_id=recording_id))

        with self._lock:
            self._outstanding[recording_id] += 1
            if not self._closed:
                future = self._executor.submit(self._process_recording, recording_id)
                self._submissions = [entry for entry in self._submissions if not entry[1].done()]
                self._submissions.append((recording_id, future))
                logger.info("Queued transcription of recording %s", recording_id)
                return future

        error = ChannelError("orchestrator is closed")
        self._mark_failed(recording_id, error.reason)
        raise error

    def close(self) -> None:
        """Stop accepting work and settle every submission.

        Queued runs and the run in flight end ``failed``; returns once the
        worker thread is idle.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            submissions, self._submissions = self._submissions, []

        self._executor.shutdown(wait=False, cancel_futures=True)
        reason = ChannelError("orchestrator closed before the transcription started").reason
        for recording_id, future in submissions:
            if future.cancelled():
                self._mark_failed(recording_id, reason)

        self.host.shutdown()
        self._executor.shutdown(wait=True)

    def _process_recording(self, recording_id: str) -> None:
        def forward(status: str, percent: int) -> None:
            self.bus.emit(TranscriptionProgress(recording_id=recording_id, status=status, percent=percent))

        try:
            self.host.ensure_started()
            transcript = self.host.transcribe(recording_id, forward)
        except PipelineError as exc:
            logger.warning("Transcription of recording %s failed: %s", recording_id, exc.reason)
            self._mark_failed(recording_id, exc.reason)
            return
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Transcription of recording %s failed", recording_id)
            self._mark_failed(recording_id, ChannelError(str(exc).strip() or type(exc).__name__).reason)
            return

        if self._release(recording_id):
            try:
                self.recordings.set_transcription(recording_id, TranscriptionState.transcribed(transcript))
            except StorageWriteError as exc:
                logger.exception("Could not store transcript for recording %s", recording_id)
                self._mark_failed(recording_id, exc.reason, released=True)
                return
        else:
            logger.info("Recording %s has another run queued, leaving its stored state to that run", recording_id)

        logger.info("Transcribed recording %s (%d words)", recording_id, len(transcript.split()))
        self.bus.emit(TranscriptionCompleted(recording_id=recording_id, transcript=transcript))

    def _release(self, recording_id: str) -> bool:
        """Finish one run of ``recording_id``; True when no other run is outstanding."""
        with self._lock:
            self._outstanding[recording_id] -= 1
            if self._outstanding[recording_id] > 0:
                return False
            del self._outstanding[recording_id]
            return True

    def _mark_failed(self, recording_id: str, reason: str, *, released: bool = False) -> None:
        if released or self._release(recording_id):
            try:
                self.recordings.set_transcription(recording_id, TranscriptionState.failed(reason))
            except StorageWriteError:
                logger.exception("Could not mark recording %s as failed; it keeps its last stored state", recording_id)
        self.bus.emit(TranscriptionFailed(recording_id=recording_id, reason=reason))
