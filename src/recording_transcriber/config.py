from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from recording_transcriber.types import Isolation

ISOLATION_MODES: tuple[Isolation, ...] = ("process", "thread")
LOG_FORMAT = "%(asctime)s %(levelname)s %(processName)s %(name)s - %(message)s"


def configure_logging() -> None:
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)


@dataclass(slots=True)
class Settings:
    host: str
    port: int
    mcp_path: str
    health_path: str
    data_dir: Path
    database_path: Path
    whisper_model: str
    whisper_device: str
    whisper_compute_type: str
    whisper_language: str | None
    isolation: Isolation
    request_timeout_seconds: float

    @property
    def videos_dir(self) -> Path:
        return self.data_dir / "videos"

    @property
    def models_dir(self) -> Path:
        return self.data_dir / "models"


def _as_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    return int(raw)


def _as_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    return float(raw)


def _normalized_path(path: str) -> str:
    if not path.startswith("/"):
        path = f"/{path}"
    return path


def _isolation(raw: str) -> Isolation:
    value = raw.strip().lower()
    if value not in ISOLATION_MODES:
        raise RuntimeError(f"TRANSCRIBER_ISOLATION must be one of {', '.join(ISOLATION_MODES)}, got {raw!r}")
    return value  # type: ignore[return-value]


def load_settings() -> Settings:
    load_dotenv()
    data_dir = Path(os.getenv("DATA_DIR", "/data")).resolve()
    database_path = Path(
        os.getenv("DATABASE_PATH", str(data_dir / "recording_transcriber.sqlite3"))
    ).resolve()

    return Settings(
        host=os.getenv("HOST", "0.0.0.0"),
        port=_as_int("PORT", 3000),
        mcp_path=_normalized_path(os.getenv("MCP_PATH", "/mcp")),
        health_path=_normalized_path(os.getenv("HEALTH_PATH", "/healthz")),
        data_dir=data_dir,
        database_path=database_path,
        whisper_model=os.getenv("WHISPER_MODEL", "tiny.en"),
        whisper_device=os.getenv("WHISPER_DEVICE", "cpu"),
        whisper_compute_type=os.getenv("WHISPER_COMPUTE_TYPE", "int8"),
        whisper_language=os.getenv("WHISPER_LANGUAGE", "en") or None,
        isolation=_isolation(os.getenv("TRANSCRIBER_ISOLATION", "process")),
        request_timeout_seconds=_as_float("REQUEST_TIMEOUT_SECONDS", 3600.0),
    )
