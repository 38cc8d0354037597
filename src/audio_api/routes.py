"""
Recording API routes.

Provides endpoints for:
- Liveness and health checks
- Audio upload (storage + metadata + grade passback)
- Owner-scoped submission lookup and listing
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from audio_api.auth import get_launch_context
from audio_api.database import Database
from audio_api.lti.outcomes import COMPLETION_GRADE, OutcomeReporter
from audio_api.lti.sessions import LaunchContext
from audio_api.uploads import receive_audio_upload
from audio_lti.models import Submission, SubmissionCreate, SubmissionSummary
from audio_lti.services.submission_service import (
    SubmissionNotFoundError,
    create_submission,
    get_submission_for_user,
    list_submissions,
)
from audio_lti.storage import StorageBackend, StorageError
from audio_lti.utils.ids import generate_submission_id

logger = logging.getLogger(__name__)

router = APIRouter(tags=["recordings"])


# =============================================================================
# Response Models
# =============================================================================


class HealthResponse(BaseModel):
    status: str
    timestamp: str


class UploadResponse(BaseModel):
    """Result of a successful upload."""

    success: bool = True
    submission_id: str = Field(..., serialization_alias="submissionId")
    audio_url: str = Field(..., serialization_alias="audioUrl")
    message: str = "Recording submitted successfully!"


# =============================================================================
# Dependencies
# =============================================================================


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_storage(request: Request) -> StorageBackend:
    return request.app.state.storage


def get_outcome_reporter(request: Request) -> OutcomeReporter:
    return request.app.state.outcome_reporter


# =============================================================================
# Public endpoints
# =============================================================================


@router.get("/", response_class=PlainTextResponse)
async def root() -> str:
    return "Canvas Audio LTI Tool is running!"


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    return HealthResponse(status="OK", timestamp=datetime.now(timezone.utc).isoformat())


# =============================================================================
# Recording endpoints
# =============================================================================


@router.post("/upload-audio", response_model=UploadResponse, response_model_by_alias=True)
async def upload_audio(
    request: Request,
    context: LaunchContext = Depends(get_launch_context),
    database: Database = Depends(get_database),
    storage: StorageBackend = Depends(get_storage),
    reporter: OutcomeReporter = Depends(get_outcome_reporter),
) -> UploadResponse:
    """
    Store a recording for the current launch.

    The multipart body is read only after the session check and is capped
    while streaming.  Storage happens before the metadata insert; a storage
    failure returns before anything is written to the database.
    """
    upload = await receive_audio_upload(request, request.app.state.settings.max_upload_bytes)
    data = upload.data
    submission_id = generate_submission_id()

    try:
        stored = await storage.save(submission_id, data)
    except StorageError:
        logger.exception("Upload error for submission %s", submission_id)
        raise HTTPException(status_code=500, detail="Upload failed. Please try again.")

    try:
        async with database.session() as session:
            await create_submission(
                session,
                SubmissionCreate(
                    id=submission_id,
                    user_id=context.user_id,
                    course_id=context.course_id,
                    assignment_id=context.assignment_id,
                    audio_url=stored.url,
                    file_name=stored.file_name,
                    file_size=len(data),
                ),
            )
    except Exception:
        logger.exception("Database error saving submission %s", submission_id)
        raise HTTPException(status_code=500, detail="Failed to save submission")

    logger.info(
        "Submission %s saved for user %s (%d bytes, %s)",
        submission_id, context.user_id, len(data), storage.name,
    )

    if context.lis_outcome_service_url:
        reporter.dispatch(context, COMPLETION_GRADE)

    return UploadResponse(submission_id=submission_id, audio_url=stored.url)


@router.get("/submission/{submission_id}", response_model=Submission)
async def get_submission(
    submission_id: str,
    context: LaunchContext = Depends(get_launch_context),
    database: Database = Depends(get_database),
) -> Submission:
    """Return one of the caller's submissions; foreign IDs look absent."""
    try:
        async with database.session() as session:
            return await get_submission_for_user(session, submission_id, context.user_id)
    except SubmissionNotFoundError:
        raise HTTPException(status_code=404, detail="Submission not found")


@router.get("/submissions", response_model=list[SubmissionSummary])
async def get_submissions(
    context: LaunchContext = Depends(get_launch_context),
    database: Database = Depends(get_database),
) -> list[SubmissionSummary]:
    """List the caller's submissions for the launched assignment, newest first."""
    async with database.session() as session:
        return await list_submissions(
            session, context.user_id, context.course_id, context.assignment_id
        )
