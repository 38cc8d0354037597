"""
LTI 1.1 endpoints.

POST /launch  - OAuth-signed basic launch; establishes the session and
                serves the recorder page
"""

from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, Request
from fastapi.responses import FileResponse, PlainTextResponse

from audio_api.auth import current_session_id, set_session_cookie

from .launch import LaunchValidationError, context_from_launch
from .sessions import new_session_id

logger = logging.getLogger(__name__)

router = APIRouter(tags=["lti"])

RECORDER_PAGE = Path(__file__).resolve().parents[1] / "static" / "recorder.html"

LAUNCH_FAILED_MESSAGE = "LTI authentication failed. Please relaunch the tool from your course."


def _is_secure(request: Request) -> bool:
    """Check if request is HTTPS (direct or behind proxy)."""
    if request.url.scheme == "https":
        return True
    return request.headers.get("x-forwarded-proto", "") == "https"


def signed_launch_url(request: Request, public_url: str = "") -> str:
    """
    Reconstruct the URL the consumer signed.

    ``public_url`` wins when configured; otherwise the request URL is used
    with its scheme corrected for TLS-terminating proxies.
    """
    url = request.url
    if public_url:
        base = public_url.rstrip("/")
        query = f"?{url.query}" if url.query else ""
        return f"{base}{url.path}{query}"

    if _is_secure(request) and url.scheme != "https":
        url = url.replace(scheme="https")
    return str(url)


@router.post("/launch")
async def lti_launch(request: Request):
    """
    LTI basic launch.

    Called by the LMS when a learner opens the tool.  Validates the OAuth
    signature, replaces any previous session for this browser and serves
    the recorder page.
    """
    state = request.app.state
    body = (await request.body()).decode("utf-8", errors="replace")
    url = signed_launch_url(request, state.settings.public_url)

    try:
        params = await state.launch_validator.validate(
            url, body, request.headers.get("content-type")
        )
    except LaunchValidationError as e:
        logger.error("LTI authentication failed for %s: %s", url, e)
        return PlainTextResponse(LAUNCH_FAILED_MESSAGE, status_code=401)

    context = context_from_launch(params)
    store = state.session_store

    previous = current_session_id(request)
    if previous:
        await store.delete(previous)

    session_id = new_session_id()
    await store.set(session_id, context)

    logger.info(
        "LTI launch - User: %s, Course: %s, Assignment: %s, Outcome service: %s",
        context.user_id,
        context.course_id,
        context.assignment_id,
        "yes" if context.has_outcome_service else "no",
    )

    response = FileResponse(RECORDER_PAGE, media_type="text/html")
    set_session_cookie(response, request, session_id)
    return response
