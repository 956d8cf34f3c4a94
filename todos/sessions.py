"""Server-side sessions backed by the `sessions` table.

The browser only holds a random token in an HttpOnly cookie. Everything else
(sign-in state, pending flash messages and, with the session persistence
backend, the visitor's todo lists) lives in the row's JSON payload.
"""
import json
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import delete as sqlalchemy_delete
from sqlmodel import select

from . import config
from .db import async_session
from .models import Session
from .utils import now_utc

logger = logging.getLogger(__name__)


def _as_aware(dt: datetime) -> datetime:
    # SQLite hands datetimes back without tzinfo; they were written as UTC.
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


class SessionData:
    """Mutable view of one visitor's session for the duration of a request."""

    def __init__(self, data: Optional[dict[str, Any]] = None, token: Optional[str] = None):
        self.data: dict[str, Any] = data if data is not None else {}
        self.token = token
        self.previous_token: Optional[str] = None
        self._saved = self._dump()

    def _dump(self) -> str:
        return json.dumps(self.data, sort_keys=True)

    @property
    def modified(self) -> bool:
        return self._dump() != self._saved

    @property
    def username(self) -> Optional[str]:
        return self.data.get('username')

    @property
    def signed_in(self) -> bool:
        return bool(self.data.get('signed_in')) and bool(self.username)

    def regenerate(self) -> None:
        """Issue a new token on the next save and retire the current one."""
        if self.token is not None:
            self.previous_token = self.token
        self.token = None
        self._saved = ''

    def sign_in(self, username: str) -> None:
        self.data['username'] = username
        self.data['signed_in'] = True

    def sign_out(self) -> None:
        self.data.pop('username', None)
        self.data.pop('signed_in', None)

    def flash(self, category: str, message: str) -> None:
        self.data.setdefault('flash', {}).setdefault(category, []).append(message)

    def pop_flashes(self) -> dict[str, list[str]]:
        return self.data.pop('flash', None) or {}


async def load_session(token: Optional[str]) -> SessionData:
    """Return the session for `token`, or a fresh empty one.

    Unknown tokens and expired sessions both yield an empty session; expired
    rows are deleted on the way.
    """
    if not token:
        return SessionData()
    async with async_session() as s:
        q = await s.exec(select(Session).where(Session.session_token == token))
        row = q.first()
        if not row:
            return SessionData()
        if row.expires_at and _as_aware(row.expires_at) < now_utc():
            await s.exec(sqlalchemy_delete(Session).where(Session.id == row.id))
            await s.commit()
            logger.info('session expired; starting a new one')
            return SessionData()
        try:
            data = json.loads(row.data_json or '{}')
        except ValueError:
            logger.warning('discarding unreadable session payload (session id=%s)', row.id)
            data = {}
    return SessionData(data, token=token)


async def save_session(session: SessionData) -> bool:
    """Persist `session` if it changed.

    Returns True when a new session row was created, meaning the caller must
    send the session cookie with the response.
    """
    if not session.modified:
        return False
    payload = json.dumps(session.data)
    async with async_session() as s:
        if session.token is None:
            # Nothing worth remembering yet.
            if not session.data:
                return False
            session.token = secrets.token_urlsafe(32)
            if session.previous_token:
                await s.exec(sqlalchemy_delete(Session).where(Session.session_token == session.previous_token))
                session.previous_token = None
            s.add(Session(
                session_token=session.token,
                expires_at=now_utc() + timedelta(days=config.SESSION_MAX_AGE_DAYS),
                data_json=payload,
            ))
            await s.commit()
            return True
        q = await s.exec(select(Session).where(Session.session_token == session.token))
        row = q.first()
        if row is None:
            # row vanished (expired and cleaned up by a concurrent request)
            row = Session(
                session_token=session.token,
                expires_at=now_utc() + timedelta(days=config.SESSION_MAX_AGE_DAYS),
            )
        row.data_json = payload
        s.add(row)
        await s.commit()
    return False

