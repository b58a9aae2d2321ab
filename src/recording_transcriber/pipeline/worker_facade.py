from __future__ import annotations

import logging
import queue
from concurrent.futures import Future
from dataclasses import dataclass
from threading import Lock, Thread
from typing import Any, Callable

from recording_transcriber.contexts import get_context
from recording_transcriber.errors import AlreadyInFlightError, ChannelError, error_from_message
from recording_transcriber.messages import (
    DOWNSTREAM_MESSAGES,
    LOADING_STATUS,
    Complete,
    Error,
    Initialize,
    Initialized,
    PipelineMessage,
    Progress,
    Terminate,
    Transcribe,
)
from recording_transcriber.pipeline.compute_unit import InferenceOptions, run_compute_unit
from recording_transcriber.services.speech_model import ModelLoader

logger = logging.getLogger(__name__)

COMPUTE_UNIT_NAME = "recording-transcriber-compute"

ProgressCallback = Callable[[str, int], None]
LoadProgressCallback = Callable[[int], None]


@dataclass(slots=True)
class _PendingCall:
    future: Future[str]
    on_progress: ProgressCallback | None


def _resolved() -> Future[None]:
    future: Future[None] = Future()
    future.set_result(None)
    return future


class WorkerFacade:
    """Owns one compute unit and routes its messages to whoever is waiting.

    Initialization is shared: every caller that arrives while the model loads
    waits on the same future. At most one transcription may be outstanding;
    a second one raises ``AlreadyInFlightError``.
    """

    def __init__(
        self,
        load_model: ModelLoader,
        *,
        context: Any = None,
        options: InferenceOptions | None = None,
        poll_interval_seconds: float = 0.5,
        join_timeout_seconds: float = 5.0,
    ) -> None:
        self._load_model = load_model
        self._context = context if context is not None else get_context("process")
        self._options = options or InferenceOptions()
        self.poll_interval_seconds = poll_interval_seconds
        self.join_timeout_seconds = join_timeout_seconds

        self._lock = Lock()
        self._process: Any = None
        self._inbox: Any = None
        self._outbox: Any = None
        self._ready = False
        self._loading = False
        self._init_future: Future[None] | None = None
        self._load_listeners: list[LoadProgressCallback] = []
        self._pending: _PendingCall | None = None

    @property
    def is_ready(self) -> bool:
        with self._lock:
            return self._ready

    @property
    def is_loading(self) -> bool:
        with self._lock:
            return self._loading

    def initialize(self, on_load_progress: LoadProgressCallback | None = None, timeout: float | None = None) -> None:
        self._begin_initialize(on_load_progress).result(timeout=timeout)

    def submit(self, samples: Any, on_progress: ProgressCallback | None = None) -> Future[str]:
        """Send ``samples`` for transcription once the model is ready.

        Blocks while the model loads, then returns a future for the transcript.
        The caller must not reuse ``samples`` afterwards.
        """
        call = _PendingCall(future=Future(), on_progress=on_progress)
        with self._lock:
            if self._pending is not None:
                raise AlreadyInFlightError()
            self._pending = call

        on_load_progress = None
        if on_progress is not None:
            on_load_progress = lambda percent: on_progress(LOADING_STATUS, percent)  # noqa: E731
        try:
            self.initialize(on_load_progress)
        except BaseException:
            with self._lock:
                if self._pending is call:
                    self._pending = None
            raise

        with self._lock:
            inbox = self._inbox
            if self._pending is not call or inbox is None:
                # Terminated while loading; the call is abandoned with the unit.
                return call.future
        inbox.put(Transcribe(samples=samples))
        return call.future

    def transcribe_video(
        self,
        samples: Any,
        on_progress: ProgressCallback | None = None,
        timeout: float | None = None,
    ) -> str:
        return self.submit(samples, on_progress).result(timeout=timeout)

    def terminate(self) -> None:
        with self._lock:
            process, inbox, outbox = self._process, self._inbox, self._outbox
            self._reset_locked()

        if inbox is not None:
            inbox.put(Terminate())
        if process is not None:
            process.join(timeout=self.join_timeout_seconds)
            if process.is_alive():
                logger.warning("Compute unit did not stop in time, terminating it")
                process.terminate()
        if outbox is not None:
            outbox.put(None)
        logger.info("Worker facade terminated")

    def _begin_initialize(self, on_load_progress: LoadProgressCallback | None) -> Future[None]:
        with self._lock:
            if self._ready:
                return _resolved()
            if on_load_progress is not None:
                self._load_listeners.append(on_load_progress)
            if self._init_future is not None:
                return self._init_future

            future: Future[None] = Future()
            self._init_future = future
            self._loading = True
            try:
                self._ensure_compute_unit_locked()
                self._inbox.put(Initialize())
            except Exception as exc:  # pylint: disable=broad-except
                logger.exception("Could not start the compute unit")
                self._reset_locked()
                future.set_exception(ChannelError(f"could not start compute unit: {exc}", exc))
            return future

    def _ensure_compute_unit_locked(self) -> None:
        if self._process is not None and self._process.is_alive():
            return

        inbox = self._context.Queue()
        outbox = self._context.Queue()
        process = self._context.Process(
            target=run_compute_unit,
            name=COMPUTE_UNIT_NAME,
            args=(inbox, outbox, self._load_model, self._options),
            daemon=True,
        )
        process.start()
        self._process, self._inbox, self._outbox = process, inbox, outbox

        reader = Thread(
            target=self._read_messages,
            args=(outbox, process),
            name=f"{COMPUTE_UNIT_NAME}-reader",
            daemon=True,
        )
        reader.start()
        logger.info("Started compute unit %s", COMPUTE_UNIT_NAME)

    def _reset_locked(self) -> None:
        self._process = None
        self._inbox = None
        self._outbox = None
        self._ready = False
        self._loading = False
        self._init_future = None
        self._load_listeners = []
        self._pending = None

    def _read_messages(self, outbox: Any, process: Any) -> None:
        while True:
            try:
                message = outbox.get(timeout=self.poll_interval_seconds)
            except queue.Empty:
                if process.is_alive():
                    continue
                self._on_compute_unit_exit(outbox, process)
                return

            if message is None:
                return
            try:
                self._dispatch(outbox, message)
            except Exception:  # pylint: disable=broad-except
                logger.exception("Failed to route %s from the compute unit", type(message).__name__)

    def _dispatch(self, outbox: Any, message: PipelineMessage) -> None:
        if isinstance(message, Progress):
            with self._lock:
                if self._outbox is not outbox:
                    return
                listeners = list(self._load_listeners) if self._loading else []
                call = self._pending if not self._loading else None
            for listener in listeners:
                self._notify(listener, message.percent)
            if call is not None and call.on_progress is not None:
                self._notify(call.on_progress, message.status, message.percent)

        elif isinstance(message, Initialized):
            with self._lock:
                if self._outbox is not outbox or not self._loading:
                    return
                future = self._init_future
                self._ready = True
                self._loading = False
                self._init_future = None
                self._load_listeners = []
            if future is not None:
                future.set_result(None)

        elif isinstance(message, Complete):
            with self._lock:
                if self._outbox is not outbox:
                    return
                call = None if self._loading else self._pending
                if call is not None:
                    self._pending = None
            if call is None:
                logger.warning("Dropping transcript with no transcription outstanding")
                return
            call.future.set_result(message.transcript)

        elif isinstance(message, Error):
            error = error_from_message(message)
            with self._lock:
                if self._outbox is not outbox:
                    return
                if self._loading:
                    target: Future[Any] | None = self._init_future
                    self._init_future = None
                    self._loading = False
                    self._load_listeners = []
                elif self._pending is not None:
                    target = self._pending.future
                    self._pending = None
                else:
                    target = None
            if target is None:
                logger.warning("Dropping error with nothing waiting: %s", error.reason)
                return
            target.set_exception(error)

        elif isinstance(message, DOWNSTREAM_MESSAGES):
            logger.warning("Compute unit sent a request message upstream: %r", message)
        else:
            logger.error("Compute unit sent an unknown message: %r", message)

    def _on_compute_unit_exit(self, outbox: Any, process: Any) -> None:
        with self._lock:
            if self._outbox is not outbox:
                return
            init_future, call = self._init_future, self._pending
            self._reset_locked()

        logger.error("Compute unit exited unexpectedly (exit code %s)", process.exitcode)
        error = ChannelError(f"compute unit exited with code {process.exitcode}")
        if init_future is not None and not init_future.done():
            init_future.set_exception(error)
        if call is not None:
            call.future.set_exception(error)

    @staticmethod
    def _notify(callback: Callable[..., None], *args: Any) -> None:
        try:
            callback(*args)
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Progress callback error: %s", exc)
