"""
Session dependencies for FastAPI endpoints.

Resolves the LTI launch context from the signed session cookie set by
``POST /launch``.  Protected endpoints declare
``Depends(get_launch_context)`` and receive the context explicitly.

Usage::

    from audio_api.auth import get_launch_context
    from audio_api.lti.sessions import LaunchContext

    @router.get("/example")
    async def example(ctx: LaunchContext = Depends(get_launch_context)):
        print(ctx.user_id, ctx.course_id)
"""

from __future__ import annotations

from fastapi import HTTPException, Request, Response

from audio_api.lti.sessions import SESSION_COOKIE_NAME, LaunchContext

SESSION_EXPIRED_MESSAGE = "Session expired. Please relaunch from Canvas."


def current_session_id(request: Request) -> str | None:
    """Session ID from the request cookie, if present and correctly signed."""
    cookie = request.app.state.session_cookie
    return cookie.unsign(request.cookies.get(SESSION_COOKIE_NAME))


async def get_launch_context(request: Request) -> LaunchContext:
    """FastAPI dependency: resolve the launch context or reject with 401."""
    session_id = current_session_id(request)
    if session_id:
        context = await request.app.state.session_store.get(session_id)
        if context is not None:
            return context

    raise HTTPException(status_code=401, detail=SESSION_EXPIRED_MESSAGE)


def set_session_cookie(response: Response, request: Request, session_id: str) -> None:
    """Attach the signed session cookie to a response."""
    settings = request.app.state.settings
    secure = settings.cookie_secure
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=request.app.state.session_cookie.sign(session_id),
        secure=secure,
        httponly=True,
        path="/",
        # The tool runs inside an LMS iframe; cross-site cookies need SameSite=None
        samesite="none" if secure else "lax",
    )
