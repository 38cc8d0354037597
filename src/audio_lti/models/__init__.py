"""Database and API models for audio submissions."""

from .base import Base, metadata, utcnow
from .submission import (
    Submission,
    SubmissionCreate,
    SubmissionModel,
    SubmissionSummary,
)

__all__ = [
    "Base",
    "metadata",
    "utcnow",
    "Submission",
    "SubmissionCreate",
    "SubmissionModel",
    "SubmissionSummary",
]
