"""
Server-side sessions stored in the database.

The cookie carries only a signed, random session id. The session dictionary
(Flask-Login's user id, flashed messages) lives in the sessions table and
expires after PERMANENT_SESSION_LIFETIME without a write. Empty sessions are
never stored.
"""

import logging
import secrets
from datetime import datetime, timezone
from typing import Optional

from flask import session
from flask.json.tag import TaggedJSONSerializer
from flask.sessions import SessionInterface, SessionMixin
from itsdangerous import BadSignature, Signer
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.datastructures import CallbackDict

from ..models import db, utcnow
from ..models.session import StoredSession

logger = logging.getLogger(__name__)


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ServerSideSession(CallbackDict, SessionMixin):
    def __init__(self, initial=None, sid: Optional[str] = None, new: bool = False):
        def on_update(self) -> None:
            self.modified = True
            self.accessed = True

        super().__init__(initial, on_update)
        self.sid = sid or secrets.token_urlsafe(32)
        self.new = new
        self.modified = False
        self.accessed = False
        self.previous_sid: Optional[str] = None

    def __getitem__(self, key):
        self.accessed = True
        return super().__getitem__(key)

    def get(self, key, default=None):
        self.accessed = True
        return super().get(key, default)

    def setdefault(self, key, default=None):
        self.accessed = True
        return super().setdefault(key, default)

    def rotate(self) -> None:
        """Move the data to a fresh id, so a pre-login id cannot be reused."""
        if not self.new:
            self.previous_sid = self.sid
        self.sid = secrets.token_urlsafe(32)
        self.modified = True


def rotate_session() -> None:
    if isinstance(session, ServerSideSession):
        session.rotate()


class DatabaseSessionInterface(SessionInterface):
    serializer = TaggedJSONSerializer()
    salt = "cartracker-session"

    def __init__(self, database=db):
        self.db = database

    def _signer(self, app) -> Signer:
        return Signer(app.secret_key, salt=self.salt, key_derivation="hmac")

    def _drop(self, sid: str) -> None:
        self.db.session.query(StoredSession).filter_by(id=sid).delete()

    def open_session(self, app, request):
        cookie = request.cookies.get(self.get_cookie_name(app))
        if not cookie:
            return ServerSideSession(new=True)

        try:
            sid = self._signer(app).unsign(cookie).decode("utf-8")
        except BadSignature:
            logger.info("Ignoring session cookie with a bad signature")
            return ServerSideSession(new=True)

        try:
            row = self.db.session.get(StoredSession, sid)
            if row is None:
                return ServerSideSession(new=True)
            if _aware(row.expires_at) <= utcnow():
                self.db.session.delete(row)
                self.db.session.commit()
                return ServerSideSession(new=True)
            data = self.serializer.loads(row.data)
        except SQLAlchemyError:
            self.db.session.rollback()
            logger.exception("Session store unavailable")
            return self.make_null_session(app)

        return ServerSideSession(data, sid=sid)

    def save_session(self, app, session, response) -> None:
        name = self.get_cookie_name(app)
        domain = self.get_cookie_domain(app)
        path = self.get_cookie_path(app)

        if session.accessed:
            response.vary.add("Cookie")

        try:
            if session.previous_sid:
                self._drop(session.previous_sid)
                session.previous_sid = None

            if not session:
                # cleared (logout) or never used
                if session.modified and not session.new:
                    self._drop(session.sid)
                    self.db.session.commit()
                    response.delete_cookie(
                        name,
                        domain=domain,
                        path=path,
                        secure=self.get_cookie_secure(app),
                        samesite=self.get_cookie_samesite(app),
                        httponly=self.get_cookie_httponly(app),
                    )
                return

            # sliding expiry: every request with a live session pushes it out
            expires = utcnow() + app.permanent_session_lifetime
            row = self.db.session.get(StoredSession, session.sid)
            if row is None:
                row = StoredSession(id=session.sid)
                self.db.session.add(row)
            row.data = self.serializer.dumps(dict(session))
            row.expires_at = expires
            self.db.session.commit()
        except SQLAlchemyError:
            self.db.session.rollback()
            # the response is already built; keep it and skip the cookie
            logger.exception("Could not persist session")
            return

        response.set_cookie(
            name,
            self._signer(app).sign(session.sid).decode("utf-8"),
            max_age=int(app.permanent_session_lifetime.total_seconds()),
            expires=expires,
            httponly=self.get_cookie_httponly(app),
            domain=domain,
            path=path,
            secure=self.get_cookie_secure(app),
            samesite=self.get_cookie_samesite(app),
        )

    def purge_expired(self) -> int:
        """Delete every expired session row. Returns how many were removed."""
        deleted = (
            self.db.session.query(StoredSession)
            .filter(StoredSession.expires_at <= utcnow())
            .delete()
        )
        self.db.session.commit()
        return deleted
