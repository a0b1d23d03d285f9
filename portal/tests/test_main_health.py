from __future__ import annotations

import os
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from portal.main import create_app
from portal.models import Base, WebSession


class HealthEndpointTests(unittest.TestCase):
    def setUp(self) -> None:
        fd, self.db_path = tempfile.mkstemp(prefix="portal-health", suffix=".db")
        os.close(fd)
        self.db_url = f"sqlite+pysqlite:///{self.db_path}"
        env = {
            "DATABASE_URL": self.db_url,
            "SESSION_SECRET": "test-session-secret",
            "OTP_ISSUER_NAME": "Student Portal",
            "APP_ENV": "test",
            "SECOND_FACTOR": "email",
        }
        self.env_patch = patch.dict(os.environ, env)
        self.env_patch.start()
        self.app = create_app()
        self.engine = self.app.state.engine
        self.client = TestClient(self.app)

    def tearDown(self) -> None:
        self.env_patch.stop()
        self.engine.dispose()
        os.remove(self.db_path)

    def test_empty_database_is_degraded(self) -> None:
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["status"], "degraded")
        self.assertFalse(body["schema"]["ready"])
        self.assertIn("accounts", body["schema"]["missing_tables"])
        self.assertIsNone(body["active_sessions"])

    def test_health_reports_configuration_and_sessions(self) -> None:
        Base.metadata.create_all(self.engine)
        now = datetime.now(timezone.utc)
        with Session(self.engine) as db:
            db.add(WebSession(id="live", data={"account_id": 1}, expires_at=now + timedelta(minutes=10)))
            db.add(WebSession(id="stale", data={}, expires_at=now - timedelta(minutes=10)))
            db.commit()

        resp = self.client.get("/health")

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(
            resp.json(),
            {
                "status": "ok",
                "schema": {"ready": True, "missing_tables": []},
                "active_sessions": 1,
                "second_factor": "email",
                "single_session_policy": "reject",
            },
        )

    def test_health_reports_database_outage(self) -> None:
        broken = MagicMock()
        broken.connect.side_effect = OSError("down")
        self.app.state.engine = broken
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 503)
        self.assertEqual(resp.json()["detail"], "database_unavailable")


if __name__ == "__main__":
    unittest.main()
