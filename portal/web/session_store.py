"""Server-side Flask sessions stored in the ``web_sessions`` table.

The cookie carries only an opaque random id. Each saved request pushes the
expiry forward by the idle window; a row past its expiry is treated exactly
like a missing one.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from flask.sessions import SessionInterface, SessionMixin
from sqlalchemy.orm import sessionmaker
from werkzeug.datastructures import CallbackDict

from portal.auth.sessions import SESSION_TOKEN
from portal.models import WebSession


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class ServerSession(CallbackDict, SessionMixin):
    def __init__(self, initial=None, sid: str | None = None, new: bool = False, stale_cookie: bool = False) -> None:
        def on_update(self) -> None:
            self.modified = True

        CallbackDict.__init__(self, initial, on_update)
        self.sid = sid or new_session_id()
        self.new = new
        self.stale_cookie = stale_cookie
        self.retired_sid: str | None = None
        self.modified = False

    def regenerate(self) -> None:
        """Move the contents to a fresh id; the old row is dropped on save."""
        if not self.new and self.retired_sid is None:
            self.retired_sid = self.sid
        self.sid = new_session_id()
        self.new = True
        self.modified = True


class SqlSessionInterface(SessionInterface):
    session_class = ServerSession

    def __init__(self, session_factory: sessionmaker, idle_minutes: int = 30) -> None:
        self.session_factory = session_factory
        self.idle = timedelta(minutes=idle_minutes)

    def open_session(self, app, request) -> ServerSession:
        sid = request.cookies.get(self.get_cookie_name(app))
        if not sid:
            return self.session_class(new=True)
        db = self.session_factory()
        try:
            row = db.get(WebSession, sid)
            if row is None:
                return self.session_class(new=True, stale_cookie=True)
            if _aware(row.expires_at) <= datetime.now(timezone.utc):
                db.delete(row)
                db.commit()
                return self.session_class(new=True, stale_cookie=True)
            return self.session_class(dict(row.data or {}), sid=sid)
        finally:
            db.close()

    def save_session(self, app, session: ServerSession, response) -> None:
        name = self.get_cookie_name(app)
        domain = self.get_cookie_domain(app)
        path = self.get_cookie_path(app)

        if session.retired_sid:
            self._delete(session.retired_sid)

        if not session:
            if not session.new:
                self._delete(session.sid)
            if not session.new or session.stale_cookie or session.retired_sid:
                response.delete_cookie(name, domain=domain, path=path)
            return

        expires = datetime.now(timezone.utc) + self.idle
        db = self.session_factory()
        try:
            row = db.get(WebSession, session.sid)
            if row is None:
                row = WebSession(id=session.sid)
                db.add(row)
            row.data = dict(session)
            row.session_token = session.get(SESSION_TOKEN)
            row.expires_at = expires
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        response.set_cookie(
            name,
            session.sid,
            expires=expires,
            httponly=self.get_cookie_httponly(app),
            domain=domain,
            path=path,
            secure=self.get_cookie_secure(app),
            samesite=self.get_cookie_samesite(app),
        )

    def _delete(self, sid: str) -> None:
        db = self.session_factory()
        try:
            row = db.get(WebSession, sid)
            if row is not None:
                db.delete(row)
                db.commit()
        finally:
            db.close()
