# backend/studysphere/sessions.py
"""
Server-side sessions bound to an opaque cookie.

The cookie carries only a signed session id (HS256 via python-jose); all
state lives in process memory, so a restart logs everybody out.

Lifecycle: Anonymous -> Authenticated -> Destroyed | Expired.
A session is persisted only once something is written to it, so anonymous
visitors that never attempt a login never get a cookie.
"""

import logging
import random
import secrets
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from fastapi import Request
from jose import JWTError, jwt

from .config import Settings
from .schemas import SessionUser

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


@dataclass
class SessionData:
    created_at: float
    expires_at: float
    user: Optional[SessionUser] = None
    login_attempts: int = 0
    last_failed_login: Optional[float] = None


class Session:
    """Request-bound handle on one session record."""

    def __init__(self, sid: str, data: SessionData, is_new: bool = False, expired: bool = False):
        self.id = sid
        self.data = data
        self._original = replace(data)
        self.is_new = is_new
        # the request's cookie named a session whose lifetime had run out
        self.expired = expired
        self.destroyed = False
        self.touched = False
        self.regenerated = False

    @property
    def user(self) -> Optional[SessionUser]:
        return self.data.user

    @property
    def modified(self) -> bool:
        return self.data != self._original

    def login(self, user: SessionUser) -> None:
        self.data.user = user
        self.reset_attempts()

    def reset_attempts(self) -> None:
        self.data.login_attempts = 0
        self.data.last_failed_login = None

    def record_failed_login(self, now: float) -> None:
        self.data.login_attempts += 1
        self.data.last_failed_login = now

    def info(self) -> dict:
        return {
            "created_at": datetime.fromtimestamp(self.data.created_at, tz=timezone.utc),
            "expires_at": datetime.fromtimestamp(self.data.expires_at, tz=timezone.utc),
        }


class SessionManager:
    def __init__(
        self,
        secret: str,
        cookie_name: str = "studysphere.sid",
        max_age_seconds: int = 24 * 60 * 60,
        secure: bool = False,
        rotation_probability: float = 0.1,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ):
        self.secret = secret
        self.cookie_name = cookie_name
        self.max_age_seconds = max_age_seconds
        self.secure = secure
        self.rotation_probability = rotation_probability
        self.clock = clock
        self.rng = rng or random.Random()
        self._records: Dict[str, SessionData] = {}

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "SessionManager":
        return cls(
            secret=settings.session_secret,
            cookie_name=settings.session_cookie_name,
            max_age_seconds=settings.session_max_age_seconds,
            secure=settings.is_production,
            rotation_probability=settings.session_rotation_probability,
            **kwargs,
        )

    def __len__(self) -> int:
        return len(self._records)

    # ---------- cookie token ----------

    def encode_token(self, sid: str) -> str:
        return jwt.encode({"sid": sid}, self.secret, algorithm=ALGORITHM)

    def decode_token(self, token: str) -> Optional[str]:
        """Return the session id inside a cookie value, or None if it is forged or garbled."""
        try:
            payload = jwt.decode(token, self.secret, algorithms=[ALGORITHM])
        except JWTError:
            return None
        sid = payload.get("sid")
        return sid if isinstance(sid, str) else None

    # ---------- record lifecycle ----------

    def _new_sid(self) -> str:
        return secrets.token_urlsafe(32)

    def new_session(self, expired: bool = False) -> Session:
        now = self.clock()
        data = SessionData(created_at=now, expires_at=now + self.max_age_seconds)
        return Session(self._new_sid(), data, is_new=True, expired=expired)

    def load(self, token: Optional[str]) -> Session:
        sid = self.decode_token(token) if token else None
        record = self._records.get(sid) if sid else None
        if record is None:
            return self.new_session()
        if self.clock() >= record.expires_at:
            del self._records[sid]
            return self.new_session(expired=True)
        return Session(sid, replace(record))

    def get(self, sid: str) -> Optional[SessionData]:
        return self._records.get(sid)

    def save(self, session: Session) -> None:
        if session.is_new:
            self.purge_expired()
        self._records[session.id] = replace(session.data)

    def destroy(self, session: Session) -> None:
        self._records.pop(session.id, None)
        session.destroyed = True

    def touch(self, session: Session) -> None:
        """Restart the session's lifetime from now."""
        session.data.expires_at = self.clock() + self.max_age_seconds
        session.touched = True

    def regenerate(self, session: Session) -> None:
        """Move the session's state to a fresh id; the old id stops working."""
        self._records.pop(session.id, None)
        session.id = self._new_sid()
        session.is_new = True
        session.regenerated = True

    def maybe_rotate(self, session: Session) -> bool:
        if self.rng.random() < self.rotation_probability:
            self.regenerate(session)
            logger.debug("Rotated session id")
            return True
        return False

    def purge_expired(self) -> int:
        now = self.clock()
        stale = [sid for sid, rec in self._records.items() if now >= rec.expires_at]
        for sid in stale:
            del self._records[sid]
        return len(stale)

    # ---------- response side ----------

    def set_cookie(self, response, session: Session) -> None:
        max_age = max(0, int(session.data.expires_at - self.clock()))
        response.set_cookie(
            self.cookie_name,
            self.encode_token(session.id),
            max_age=max_age,
            path="/",
            httponly=True,
            secure=self.secure,
            samesite="strict",
        )

    def clear_cookie(self, response) -> None:
        response.delete_cookie(
            self.cookie_name, path="/", httponly=True, secure=self.secure, samesite="strict"
        )

    def commit(self, session: Session, response) -> None:
        if session.destroyed:
            self.clear_cookie(response)
            return
        if session.modified or session.touched or session.regenerated:
            self.save(session)
            if session.is_new or session.touched:
                self.set_cookie(response, session)
        elif session.expired:
            self.clear_cookie(response)


async def session_middleware(request: Request, call_next):
    manager: SessionManager = request.app.state.sessions
    session = manager.load(request.cookies.get(manager.cookie_name))
    request.state.session = session
    response = await call_next(request)
    manager.commit(session, response)
    return response


def get_session(request: Request) -> Session:
    return request.state.session


def get_sessions(request: Request) -> SessionManager:
    return request.app.state.sessions
