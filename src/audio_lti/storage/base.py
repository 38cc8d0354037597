"""
Storage backend interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path


class StorageError(Exception):
    """Raised when a recording could not be written to storage."""


@dataclass(frozen=True)
class StoredAudio:
    """Where a recording ended up."""

    url: str  # directly playable by an <audio> element, no auth required
    file_name: str


class StorageBackend(ABC):
    """Writes recording bytes somewhere a browser can fetch them."""

    name: str = "abstract"

    @abstractmethod
    async def save(self, submission_id: str, data: bytes) -> StoredAudio:
        """
        Persist one recording.

        Raises:
            StorageError: if the bytes could not be stored
        """

    def static_mount(self) -> tuple[str, Path] | None:
        """Route prefix and directory the app should serve, if any."""
        return None

    def media_origin(self) -> str | None:
        """External origin recordings are served from, for the CSP."""
        return None
