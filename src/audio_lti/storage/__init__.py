"""
Recording storage backends.

Two implementations share the ``StorageBackend`` interface:

- ``LocalStorageBackend``: files on disk, served from ``/uploads``
- ``S3StorageBackend``: public-read objects in an S3 bucket

The backend is chosen once when the application is built.
"""

from .base import StorageBackend, StorageError, StoredAudio
from .local import LocalStorageBackend
from .s3 import S3StorageBackend

__all__ = [
    "StorageBackend",
    "StorageError",
    "StoredAudio",
    "LocalStorageBackend",
    "S3StorageBackend",
]
