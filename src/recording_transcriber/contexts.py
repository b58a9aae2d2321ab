"""Execution contexts for the host and the compute unit.

Both expose the subset of the ``multiprocessing`` context API the pipeline
uses: ``Process``, ``Queue`` and ``active_children``. The process context
isolates each stage in its own interpreter; ``ThreadContext`` keeps them in the
current process, which is how the test-suite and single-process deployments
run.
"""

from __future__ import annotations

import logging
import multiprocessing
import queue
from threading import Lock, Thread
from typing import Any, Callable

from recording_transcriber.types import Isolation

logger = logging.getLogger(__name__)


class ThreadProcess(Thread):
    """A daemon thread that answers to the ``multiprocessing.Process`` API."""

    def __init__(self, *, target: Callable[..., Any], name: str | None, args: tuple[Any, ...]) -> None:
        super().__init__(target=target, name=name, args=args, daemon=True)

    @property
    def exitcode(self) -> int | None:
        if self.ident is None or self.is_alive():
            return None
        return 0

    def terminate(self) -> None:
        # Threads cannot be killed; the target exits on its Terminate message.
        logger.debug("Thread context %s left to finish on its own", self.name)


class ThreadContext:
    def __init__(self) -> None:
        self._lock = Lock()
        self._children: list[ThreadProcess] = []

    def Process(  # noqa: N802 - mirrors multiprocessing contexts
        self,
        *,
        target: Callable[..., Any],
        name: str | None = None,
        args: tuple[Any, ...] = (),
        daemon: bool | None = None,
    ) -> ThreadProcess:
        child = ThreadProcess(target=target, name=name, args=args)
        with self._lock:
            self._children.append(child)
        return child

    def Queue(self) -> queue.Queue[Any]:  # noqa: N802
        return queue.Queue()

    def active_children(self) -> list[ThreadProcess]:
        with self._lock:
            self._children = [child for child in self._children if child.ident is None or child.is_alive()]
            return [child for child in self._children if child.is_alive()]


def get_context(isolation: Isolation) -> Any:
    if isolation == "process":
        return multiprocessing.get_context("spawn")
    if isolation == "thread":
        return ThreadContext()
    raise ValueError(f"Unknown isolation mode: {isolation}")
