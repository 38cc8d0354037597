"""
Local filesystem storage for development deployments.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from audio_lti.utils.ids import generate_audio_file_name

from .base import StorageBackend, StorageError, StoredAudio

logger = logging.getLogger(__name__)


class LocalStorageBackend(StorageBackend):
    """Stores recordings in ``upload_dir`` under freshly generated names."""

    name = "local"

    def __init__(self, upload_dir: str | Path, url_prefix: str = "/uploads"):
        self.upload_dir = Path(upload_dir)
        self.url_prefix = url_prefix.rstrip("/")

    def ensure_directory(self) -> None:
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    def static_mount(self) -> tuple[str, Path]:
        return self.url_prefix, self.upload_dir

    async def save(self, submission_id: str, data: bytes) -> StoredAudio:
        file_name = generate_audio_file_name()
        path = self.upload_dir / file_name

        def _write() -> None:
            self.ensure_directory()
            path.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise StorageError(f"Could not write {path}: {e}") from e

        logger.info("Stored %d bytes for submission %s at %s", len(data), submission_id, path)
        return StoredAudio(url=f"{self.url_prefix}/{file_name}", file_name=file_name)
