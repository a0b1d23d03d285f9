from __future__ import annotations

import os
import tempfile
import unittest
from datetime import datetime, timedelta, timezone

from flask import Flask, session
from sqlalchemy import create_engine, func, select, update
from sqlalchemy.orm import Session, sessionmaker

from portal.auth.sessions import SESSION_TOKEN
from portal.models import Base, WebSession
from portal.web.session_store import SqlSessionInterface

COOKIE = "portal_session"


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class SqlSessionInterfaceTests(unittest.TestCase):
    def setUp(self) -> None:
        fd, self.db_path = tempfile.mkstemp(prefix="portal-sessions", suffix=".db")
        os.close(fd)
        self.engine = create_engine(f"sqlite+pysqlite:///{self.db_path}", future=True)
        Base.metadata.create_all(self.engine)
        factory = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)

        app = Flask(__name__)
        app.secret_key = "test-session-secret"
        app.config["SESSION_COOKIE_NAME"] = COOKIE
        app.session_interface = SqlSessionInterface(factory, idle_minutes=30)

        @app.route("/put/<value>")
        def put(value):
            session["value"] = value
            session[SESSION_TOKEN] = f"tok-{value}"
            return "ok"

        @app.route("/get")
        def get():
            return session.get("value", "")

        @app.route("/rotate")
        def rotate():
            session.regenerate()
            return "ok"

        @app.route("/clear")
        def clear():
            session.clear()
            return "ok"

        self.client = app.test_client()

    def tearDown(self) -> None:
        self.engine.dispose()
        os.remove(self.db_path)

    def rows(self) -> list[WebSession]:
        with Session(self.engine) as db:
            return db.scalars(select(WebSession)).all()

    def row_count(self) -> int:
        with Session(self.engine) as db:
            return db.scalar(select(func.count()).select_from(WebSession))

    def expire_all(self, delta: timedelta) -> None:
        with self.engine.begin() as conn:
            conn.execute(update(WebSession).values(expires_at=datetime.now(timezone.utc) + delta))

    def test_empty_session_sets_no_cookie(self) -> None:
        self.assertEqual(self.client.get("/get").data, b"")
        self.assertIsNone(self.client.get_cookie(COOKIE))
        self.assertEqual(self.row_count(), 0)

    def test_contents_stay_server_side(self) -> None:
        self.client.get("/put/abc")

        cookie = self.client.get_cookie(COOKIE)
        self.assertIsNotNone(cookie)
        self.assertNotIn("abc", cookie.value)
        [row] = self.rows()
        self.assertEqual(row.id, cookie.value)
        self.assertEqual(row.data, {"value": "abc", SESSION_TOKEN: "tok-abc"})
        self.assertEqual(row.session_token, "tok-abc")
        self.assertEqual(self.client.get("/get").data, b"abc")

    def test_each_request_slides_expiry(self) -> None:
        self.client.get("/put/abc")
        self.expire_all(timedelta(minutes=1))

        self.client.get("/get")

        [row] = self.rows()
        self.assertGreater(_aware(row.expires_at), datetime.now(timezone.utc) + timedelta(minutes=25))

    def test_idle_expired_row_is_discarded(self) -> None:
        self.client.get("/put/abc")
        self.expire_all(timedelta(minutes=-1))

        self.assertEqual(self.client.get("/get").data, b"")

        self.assertIsNone(self.client.get_cookie(COOKIE))
        self.assertEqual(self.row_count(), 0)

    def test_unknown_cookie_is_deleted(self) -> None:
        self.client.set_cookie(COOKIE, "no-such-session")

        self.assertEqual(self.client.get("/get").data, b"")

        self.assertIsNone(self.client.get_cookie(COOKIE))

    def test_regenerate_moves_contents_to_new_id(self) -> None:
        self.client.get("/put/abc")
        old_sid = self.client.get_cookie(COOKIE).value

        self.client.get("/rotate")

        new_sid = self.client.get_cookie(COOKIE).value
        self.assertNotEqual(old_sid, new_sid)
        [row] = self.rows()
        self.assertEqual(row.id, new_sid)
        self.assertEqual(row.session_token, "tok-abc")
        self.assertEqual(self.client.get("/get").data, b"abc")

    def test_clear_removes_row_and_cookie(self) -> None:
        self.client.get("/put/abc")

        self.client.get("/clear")

        self.assertIsNone(self.client.get_cookie(COOKIE))
        self.assertEqual(self.row_count(), 0)


if __name__ == "__main__":
    unittest.main()
