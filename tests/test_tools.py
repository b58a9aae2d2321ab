from pathlib import Path
from typing import Any

from fakes import FakeLoader, Pipeline, wait_for
from recording_transcriber.events import ProgressTracker
from recording_transcriber.mcp_tools import ToolRegistry


class DummyMCP:
    def __init__(self) -> None:
        self.tools: dict[str, Any] = {}

    def tool(self, fn: Any = None, **_: Any) -> Any:
        def register(fn: Any) -> Any:
            self.tools[fn.__name__] = fn
            return fn

        return register(fn) if fn is not None else register


def _tools(pipeline: Pipeline) -> DummyMCP:
    tracker = ProgressTracker()
    pipeline.bus.subscribe(tracker)
    mcp = DummyMCP()
    ToolRegistry(pipeline.orchestrator, pipeline.recordings, tracker).register(mcp)  # type: ignore[arg-type]
    return mcp


def test_transcribe_unknown_recording(tmp_path: Path) -> None:
    pipeline = Pipeline(tmp_path, FakeLoader())
    try:
        mcp = _tools(pipeline)

        assert mcp.tools["transcribe"]("missing") == {"error": "recording_not_found", "recording_id": "missing"}
        assert mcp.tools["transcription_status"]("missing")["error"] == "recording_not_found"
    finally:
        pipeline.close()


def test_transcribe_then_poll_status(tmp_path: Path) -> None:
    pipeline = Pipeline(tmp_path, FakeLoader())
    try:
        mcp = _tools(pipeline)
        pipeline.add_recording("r1", b"seconds:3")

        response = mcp.tools["transcribe"]("r1")
        assert response == {"recording_id": "r1", "status": "transcribing", "started": True}

        assert wait_for(lambda: mcp.tools["transcription_status"]("r1")["status"] == "transcribed", timeout=10)
        status = mcp.tools["transcription_status"]("r1")
        assert status["transcript"] == "hello world"
        assert status["filename"] == "r1.webm"
    finally:
        pipeline.close()


def test_status_reports_the_failure_reason(tmp_path: Path) -> None:
    pipeline = Pipeline(tmp_path, FakeLoader())
    try:
        mcp = _tools(pipeline)
        pipeline.add_recording("r2", None)

        mcp.tools["transcribe"]("r2")

        assert wait_for(lambda: mcp.tools["transcription_status"]("r2")["status"] == "failed", timeout=10)
        assert mcp.tools["transcription_status"]("r2")["error"].startswith("NotFound")
    finally:
        pipeline.close()


def test_closed_orchestrator_is_reported_as_unavailable(tmp_path: Path) -> None:
    pipeline = Pipeline(tmp_path, FakeLoader())
    mcp = _tools(pipeline)
    pipeline.add_recording("r1", b"seconds:1")
    pipeline.orchestrator.close()
    try:
        response = mcp.tools["transcribe"]("r1")
        assert response["error"] == "transcription_unavailable"
        assert response["message"].startswith("ChannelError")
    finally:
        pipeline.database.close()
