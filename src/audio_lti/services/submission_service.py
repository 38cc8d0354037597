"""
Submission Service for recorded audio.

Handles the insert-once metadata rows and the owner-scoped read queries.
There are no update or delete operations.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from audio_lti.models import (
    Submission,
    SubmissionCreate,
    SubmissionModel,
    SubmissionSummary,
)


class SubmissionNotFoundError(Exception):
    """Raised when a submission is absent or not owned by the caller."""

    pass


def _matches(column, value: Optional[str]):
    # Launches without a course or assignment still scope to "none"
    return column.is_(None) if value is None else column == value


async def create_submission(session: AsyncSession, data: SubmissionCreate) -> Submission:
    """
    Insert the metadata row for a stored recording.

    Args:
        session: Database session
        data: Submission fields, including the pre-generated ID

    Returns:
        Created submission with its server-assigned timestamp
    """
    submission = SubmissionModel(
        id=data.id,
        user_id=data.user_id,
        course_id=data.course_id,
        assignment_id=data.assignment_id,
        audio_url=data.audio_url,
        file_name=data.file_name,
        file_size=data.file_size,
    )
    session.add(submission)
    await session.flush()
    await session.refresh(submission)

    return Submission.model_validate(submission)


async def get_submission_for_user(
    session: AsyncSession, submission_id: str, user_id: str
) -> Submission:
    """
    Fetch a submission owned by ``user_id``.

    Raises:
        SubmissionNotFoundError: If the ID is unknown or belongs to someone else
    """
    result = await session.execute(
        select(SubmissionModel).where(
            SubmissionModel.id == submission_id,
            SubmissionModel.user_id == user_id,
        )
    )
    submission = result.scalar_one_or_none()
    if submission is None:
        raise SubmissionNotFoundError(f"Submission {submission_id} not found")

    return Submission.model_validate(submission)


async def list_submissions(
    session: AsyncSession,
    user_id: str,
    course_id: Optional[str],
    assignment_id: Optional[str],
) -> list[SubmissionSummary]:
    """
    List a learner's submissions for one course assignment, newest first.
    """
    result = await session.execute(
        select(SubmissionModel)
        .where(
            SubmissionModel.user_id == user_id,
            _matches(SubmissionModel.course_id, course_id),
            _matches(SubmissionModel.assignment_id, assignment_id),
        )
        .order_by(SubmissionModel.created_at.desc())
    )
    return [SubmissionSummary.model_validate(row) for row in result.scalars().all()]


async def list_all_submissions(
    session: AsyncSession, user_id: Optional[str] = None, limit: int = 50
) -> list[Submission]:
    """Admin listing across all learners (used by the CLI)."""
    query = select(SubmissionModel).order_by(SubmissionModel.created_at.desc()).limit(limit)
    if user_id:
        query = query.where(SubmissionModel.user_id == user_id)
    result = await session.execute(query)
    return [Submission.model_validate(row) for row in result.scalars().all()]
