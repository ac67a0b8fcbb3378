# backend/studysphere/guards.py
"""FastAPI dependencies that gate routes on session state."""

import math

from fastapi import Depends, Request

from .errors import ApiError, auth_required
from .models import Role
from .schemas import SessionUser
from .sessions import Session, SessionManager, get_session, get_sessions


def require_auth(session: Session = Depends(get_session)) -> SessionUser:
    if session.user is None:
        if session.expired:
            raise ApiError(401, "Session expired", "SESSION_EXPIRED")
        raise auth_required()
    return session.user


def require_role(role: Role):
    def dependency(user: SessionUser = Depends(require_auth)) -> SessionUser:
        if user.role != role:
            raise ApiError(403, f"Access denied. {role} role required", "INSUFFICIENT_PERMISSIONS")
        return user

    return dependency


require_teacher = require_role("teacher")
require_student = require_role("student")


def check_rate_limit(
    request: Request,
    session: Session = Depends(get_session),
    sessions: SessionManager = Depends(get_sessions),
) -> None:
    """
    Refuse login attempts once this session has failed `max_login_attempts`
    times in a row, until `lockout_minutes` have passed since the last failure.

    The counter lives in the session, so a client that drops its cookie starts
    over with a clean slate.
    """
    settings = request.app.state.settings
    data = session.data
    if data.login_attempts < settings.max_login_attempts:
        return
    elapsed = sessions.clock() - (data.last_failed_login or 0)
    if elapsed < settings.lockout_seconds:
        remaining = math.ceil((settings.lockout_seconds - elapsed) / 60)
        raise ApiError(
            429,
            f"Too many failed attempts. Try again in {remaining} minutes",
            "RATE_LIMITED",
            retryAfter=remaining,
        )
    session.reset_attempts()
