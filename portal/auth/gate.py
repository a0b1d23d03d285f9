from __future__ import annotations

import hmac
from typing import MutableMapping

from portal.auth.errors import DeviceMismatch, SessionExpiredOrAbsent
from portal.auth.sessions import (
    SESSION_ACCOUNT_ID,
    SESSION_DISPLAY_NAME,
    SESSION_MENUS,
    SESSION_ROLE_ID,
    SESSION_TOKEN,
    SESSION_USER_AGENT,
    BoundSession,
)
from portal.auth.store import CredentialStore
from portal.logging import log_auth_event


class SessionGate:
    """Per-request validation of a bound session.

    The user-agent comparison is a heuristic against replayed cookies, not a
    cryptographic binding: the header is client supplied.
    """

    def __init__(self, store: CredentialStore) -> None:
        self.store = store

    def check(self, session_state: MutableMapping, user_agent: str | None) -> BoundSession:
        account_id = session_state.get(SESSION_ACCOUNT_ID)
        token = session_state.get(SESSION_TOKEN)
        if not account_id or not token:
            raise SessionExpiredOrAbsent()

        if session_state.get(SESSION_USER_AGENT, "") != (user_agent or ""):
            session_state.clear()
            log_auth_event("session_gate", "rejected", account_id=account_id, reason=DeviceMismatch.code)
            raise DeviceMismatch()

        bound = self.store.bound_token(account_id)
        if not bound or not hmac.compare_digest(bound, str(token)):
            session_state.clear()
            log_auth_event("session_gate", "rejected", account_id=account_id, reason="token_mismatch")
            raise SessionExpiredOrAbsent()

        return BoundSession(
            account_id=account_id,
            role_id=session_state.get(SESSION_ROLE_ID),
            session_token=token,
            user_agent=user_agent or "",
            display_name=session_state.get(SESSION_DISPLAY_NAME, ""),
            menus=tuple(session_state.get(SESSION_MENUS) or ()),
        )
