"""Server-side sessions.

A session is an explicit ``SessionState`` value: load it from the cookie,
change it, then ``SessionStore.save()`` it. Saving commits before the
response is sent, and every save pushes the expiry forward (rolling
sessions).
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from fastapi import Response
from sqlalchemy.orm import Session

from akadeo.config import Settings
from akadeo.models.user_session import UserSession
from akadeo.services.auth import read_session_id, sign_session_id

logger = logging.getLogger(__name__)


@dataclass
class SessionState:
    """The data held for one browser session."""

    session_id: str | None = None
    user_id: int | None = None
    setup_completed_at: datetime | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def requires_setup(self) -> bool:
        return self.setup_completed_at is None

    def as_auth_context(self) -> dict:
        return {
            "userId": self.user_id,
            "setupCompletedAt": (
                self.setup_completed_at.isoformat() if self.setup_completed_at else None
            ),
        }


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class SessionStore:
    """Reads and writes ``user_sessions`` rows in the credentials store."""

    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings

    def load(self, cookie_value: str | None, now: datetime | None = None) -> SessionState:
        """Resolve the cookie to a session, or an empty state if there is none."""
        session_id = read_session_id(cookie_value, self.settings)
        if session_id is None:
            return SessionState()

        row = self.db.get(UserSession, session_id)
        if row is None:
            return SessionState()
        if row.expires_at <= (now or datetime.now(UTC)):
            self.db.delete(row)
            self.db.commit()
            return SessionState()
        return SessionState(
            session_id=row.id,
            user_id=row.user_id,
            setup_completed_at=row.setup_completed_at,
        )

    def save(self, state: SessionState, now: datetime | None = None) -> SessionState:
        """Persist the state and extend its expiry."""
        if state.session_id is None:
            state.session_id = new_session_id()
        expires_at = (now or datetime.now(UTC)) + timedelta(seconds=self.settings.session_max_age_seconds)

        row = self.db.get(UserSession, state.session_id)
        if row is None:
            row = UserSession(id=state.session_id)
            self.db.add(row)
        row.user_id = state.user_id
        row.setup_completed_at = state.setup_completed_at
        row.expires_at = expires_at
        self.db.commit()
        return state

    def regenerate(self, state: SessionState) -> SessionState:
        """Drop the old session id and start a fresh, empty session."""
        if state.session_id is not None:
            self._delete(state.session_id)
        return SessionState(session_id=new_session_id())

    def destroy(self, state: SessionState) -> None:
        if state.session_id is not None:
            self._delete(state.session_id)
            self.db.commit()
        state.session_id = None
        state.user_id = None
        state.setup_completed_at = None

    def purge_expired(self, now: datetime | None = None) -> int:
        deleted = (
            self.db.query(UserSession)
            .filter(UserSession.expires_at <= (now or datetime.now(UTC)))
            .delete(synchronize_session=False)
        )
        self.db.commit()
        if deleted:
            logger.info(f"Purged {deleted} expired sessions")
        return deleted

    def _delete(self, session_id: str) -> None:
        self.db.query(UserSession).filter(UserSession.id == session_id).delete(
            synchronize_session=False
        )


def set_session_cookie(response: Response, state: SessionState, settings: Settings) -> None:
    """Attach (or refresh) the signed session cookie."""
    response.set_cookie(
        key=settings.session_cookie_name,
        value=sign_session_id(state.session_id, settings),
        max_age=settings.session_max_age_seconds,
        path="/",
        domain=settings.session_cookie_domain,
        secure=settings.cookie_secure,
        httponly=True,
        samesite=settings.session_cookie_samesite,
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=settings.session_cookie_name,
        path="/",
        domain=settings.session_cookie_domain,
        secure=settings.cookie_secure,
        httponly=True,
        samesite=settings.session_cookie_samesite,
    )
