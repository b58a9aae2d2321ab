from __future__ import annotations

import re
from pathlib import Path


def _sanitize_path_component(value: str, fallback: str) -> str:
    clean = re.sub(r"[^a-zA-Z0-9._-]+", "_", value.strip())
    clean = clean.strip("._")
    return clean or fallback


class FileBlobStore:
    """Video bytes keyed by recording id, one file per recording."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, recording_id: str) -> Path:
        return self.root / f"{_sanitize_path_component(recording_id, 'recording')}.webm"

    def get(self, recording_id: str) -> bytes | None:
        path = self.path_for(recording_id)
        if not path.is_file():
            return None
        return path.read_bytes()

    def put(self, recording_id: str, data: bytes) -> Path:
        path = self.path_for(recording_id)
        tmp_path = path.with_suffix(".part")
        tmp_path.write_bytes(data)
        tmp_path.replace(path)
        return path
