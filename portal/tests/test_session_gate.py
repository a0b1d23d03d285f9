from __future__ import annotations

import unittest

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from portal.auth import CredentialStore, DeviceMismatch, SessionExpiredOrAbsent, SessionGate, SessionIssuer
from portal.models import Base

LAPTOP = "Mozilla/5.0 (X11; Linux x86_64) Firefox/128.0"
PHONE = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0) Safari/604.1"


class SessionGateTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.session = Session(self.engine)
        self.store = CredentialStore(self.session)
        self.store.ensure_default_roles()
        student = self.store.get_role_by_name("student")
        self.account = self.store.create_account("S100", "Password1!", "s100@example.edu", student.id, "Grace", "Hopper")
        tokens = iter(["token-one", "token-two", "token-three"])
        self.issuer = SessionIssuer(self.store, token_factory=lambda: next(tokens))
        self.gate = SessionGate(self.store)

    def tearDown(self) -> None:
        self.session.close()
        self.engine.dispose()

    def test_bound_session_passes(self) -> None:
        state: dict = {}
        self.issuer.bind(self.account, state, LAPTOP, menus=[{"name": "Home", "url": "/dashboard", "icon": "bi bi-house"}])

        bound = self.gate.check(state, LAPTOP)

        self.assertEqual(bound.account_id, self.account.id)
        self.assertEqual(bound.session_token, "token-one")
        self.assertEqual(bound.display_name, "Grace Hopper")
        self.assertEqual(bound.menus[0]["url"], "/dashboard")
        self.assertEqual(self.store.bound_token(self.account.id), "token-one")

    def test_empty_session_is_rejected(self) -> None:
        with self.assertRaises(SessionExpiredOrAbsent):
            self.gate.check({}, LAPTOP)

    def test_rebinding_invalidates_older_session(self) -> None:
        laptop: dict = {}
        phone: dict = {}
        self.issuer.bind(self.account, laptop, LAPTOP)
        self.issuer.bind(self.account, phone, PHONE)

        with self.assertRaises(SessionExpiredOrAbsent):
            self.gate.check(laptop, LAPTOP)
        self.assertEqual(laptop, {})
        self.assertEqual(self.gate.check(phone, PHONE).session_token, "token-two")

    def test_device_mismatch_clears_session(self) -> None:
        state: dict = {}
        self.issuer.bind(self.account, state, LAPTOP)
        stolen = dict(state)

        with self.assertRaises(DeviceMismatch):
            self.gate.check(stolen, PHONE)
        self.assertEqual(stolen, {})
        self.gate.check(state, LAPTOP)

    def test_missing_user_agent_must_match_exactly(self) -> None:
        state: dict = {}
        self.issuer.bind(self.account, state, None)
        self.gate.check(state, None)
        self.gate.check(state, "")
        with self.assertRaises(DeviceMismatch):
            self.gate.check(state, LAPTOP)

    def test_unbind_is_idempotent(self) -> None:
        state: dict = {}
        self.issuer.bind(self.account, state, LAPTOP)
        snapshot = dict(state)

        self.assertTrue(self.issuer.unbind(self.account.id, state))
        self.assertFalse(self.issuer.unbind(self.account.id, state))
        self.assertFalse(self.issuer.unbind(self.account.id))
        self.assertIsNone(self.store.bound_token(self.account.id))
        with self.assertRaises(SessionExpiredOrAbsent):
            self.gate.check(snapshot, LAPTOP)

    def test_superseded_device_logout_keeps_newer_session(self) -> None:
        laptop: dict = {}
        phone: dict = {}
        self.issuer.bind(self.account, laptop, LAPTOP)
        self.issuer.bind(self.account, phone, PHONE)

        self.assertFalse(self.issuer.unbind(self.account.id, laptop))
        self.assertEqual(laptop, {})
        self.gate.check(phone, PHONE)

    def test_unbind_without_session_clears_account(self) -> None:
        state: dict = {}
        self.issuer.bind(self.account, state, LAPTOP)
        self.assertTrue(self.issuer.unbind(self.account.id))
        with self.assertRaises(SessionExpiredOrAbsent):
            self.gate.check(state, LAPTOP)

    def test_unknown_account(self) -> None:
        self.assertFalse(self.issuer.unbind(404, {"account_id": 404}))
        with self.assertRaises(SessionExpiredOrAbsent):
            self.gate.check({"account_id": 404, "session_token": "x", "user_agent": LAPTOP}, LAPTOP)


if __name__ == "__main__":
    unittest.main()
