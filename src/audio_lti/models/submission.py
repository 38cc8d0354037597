"""
Submission models for audio recordings.

One row per recording a learner submitted from an LTI launch.
Rows are written once and never updated.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from .base import Base, utcnow


def _as_utc(value: datetime) -> datetime:
    # SQLite drops the offset; stored values are always UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


# ============================================================================
# Pydantic Models (for API/validation)
# ============================================================================


class SubmissionCreate(BaseModel):
    """Schema for creating a submission."""

    id: str
    user_id: str
    course_id: Optional[str] = None
    assignment_id: Optional[str] = None
    audio_url: str
    file_name: str
    file_size: int = Field(..., ge=0)


class Submission(BaseModel):
    """Complete submission entity, as returned by ``GET /submission/{id}``."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    course_id: Optional[str] = None
    assignment_id: Optional[str] = None
    audio_url: str
    file_name: str
    file_size: int
    # Declared for clients that may report it; the upload path leaves it empty.
    duration: Optional[int] = None
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class SubmissionSummary(BaseModel):
    """List projection; omits the storage location."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    file_name: str
    file_size: int
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


# ============================================================================
# SQLAlchemy Models (for database)
# ============================================================================


class SubmissionModel(Base):
    """SQLAlchemy model for submissions table."""

    __tablename__ = "submissions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    course_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    assignment_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    audio_url: Mapped[str] = mapped_column(Text, nullable=False)
    file_name: Mapped[str] = mapped_column(String, nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    # Composite index for the per-assignment listing
    __table_args__ = (
        Index("idx_submissions_owner", "user_id", "course_id", "assignment_id"),
    )
