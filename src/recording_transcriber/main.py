from __future__ import annotations

import logging

from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse

from recording_transcriber.config import Settings, configure_logging, load_settings
from recording_transcriber.contexts import get_context
from recording_transcriber.db.database import Database
from recording_transcriber.db.recordings import RecordingsRepository
from recording_transcriber.events import EventBus, ProgressTracker
from recording_transcriber.mcp_tools import ToolRegistry
from recording_transcriber.pipeline.execution_host import HostConfig
from recording_transcriber.pipeline.orchestrator import ExecutionHostHandle, TranscriptionOrchestrator
from recording_transcriber.services.speech_model import FasterWhisperLoader
from recording_transcriber.services.storage import FileBlobStore

logger = logging.getLogger(__name__)


class AppRuntime:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.database = Database(settings.database_path)
        self.recordings = RecordingsRepository(self.database)
        self.blobs = FileBlobStore(settings.videos_dir)

        self.bus = EventBus()
        self.tracker = ProgressTracker()
        self.bus.subscribe(self.tracker)

        loader = FasterWhisperLoader(
            model=settings.whisper_model,
            device=settings.whisper_device,
            compute_type=settings.whisper_compute_type,
            language=settings.whisper_language,
            download_root=settings.models_dir,
        )
        host_config = HostConfig(
            blob_store=self.blobs,
            load_model=loader,
            compute_isolation=settings.isolation,
        )
        self.host = ExecutionHostHandle(
            host_config,
            context=get_context(settings.isolation),
            request_timeout_seconds=settings.request_timeout_seconds,
        )
        self.orchestrator = TranscriptionOrchestrator(
            recordings=self.recordings,
            bus=self.bus,
            host=self.host,
        )
        self.orchestrator.fail_abandoned()

    def close(self) -> None:
        self.orchestrator.close()
        self.database.close()


def create_app(runtime: AppRuntime) -> FastMCP:
    mcp = FastMCP(name="recording-transcriber")

    tools = ToolRegistry(runtime.orchestrator, runtime.recordings, runtime.tracker)
    tools.register(mcp)

    @mcp.custom_route(runtime.settings.health_path, methods=["GET"])
    async def health(_: Request) -> JSONResponse:
        return JSONResponse(
            {
                "ok": True,
                "orchestrator_running": runtime.orchestrator.is_running,
                "host_alive": runtime.host.is_alive,
                "isolation": runtime.settings.isolation,
                "db_path": str(runtime.settings.database_path),
                "mcp_path": runtime.settings.mcp_path,
            }
        )

    return mcp


def cli() -> None:
    configure_logging()
    settings = load_settings()
    runtime = AppRuntime(settings)

    app = create_app(runtime)
    logger.info("Starting MCP server on %s:%s%s", settings.host, settings.port, settings.mcp_path)
    try:
        app.run(
            transport="http",
            host=settings.host,
            port=settings.port,
            path=settings.mcp_path,
        )
    finally:
        # Must run before interpreter exit joins the orchestrator worker thread.
        runtime.close()


if __name__ == "__main__":
    cli()
