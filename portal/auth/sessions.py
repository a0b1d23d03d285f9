from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from typing import Callable, MutableMapping, Sequence

from portal.auth.store import CredentialStore
from portal.logging import log_auth_event
from portal.models import Account

SESSION_ACCOUNT_ID = "account_id"
SESSION_ROLE_ID = "role_id"
SESSION_TOKEN = "session_token"
SESSION_USER_AGENT = "user_agent"
SESSION_DISPLAY_NAME = "display_name"
SESSION_MENUS = "menus"


def new_session_token() -> str:
    return secrets.token_urlsafe(32)


@dataclass(frozen=True)
class BoundSession:
    account_id: int
    role_id: int
    session_token: str
    user_agent: str
    display_name: str = ""
    menus: Sequence[dict] = field(default_factory=tuple)


class SessionIssuer:
    """The single place where an account becomes "logged in".

    Binding writes a fresh token to the account and to the live session; any
    session holding an older token fails its next gate check.
    """

    def __init__(self, store: CredentialStore, token_factory: Callable[[], str] = new_session_token) -> None:
        self.store = store
        self.token_factory = token_factory

    def bind(
        self,
        account: Account,
        session_state: MutableMapping,
        user_agent: str | None,
        menus: Sequence[dict] = (),
    ) -> BoundSession:
        token = self.token_factory()
        self.store.set_bound_token(account, token)
        bound = BoundSession(
            account_id=account.id,
            role_id=account.role_id,
            session_token=token,
            user_agent=user_agent or "",
            display_name=account.display_name,
            menus=tuple(menus),
        )
        # Server-side sessions move to a fresh id on every bind.
        regenerate = getattr(session_state, "regenerate", None)
        if regenerate is not None:
            regenerate()
        session_state.clear()
        session_state.update(
            {
                SESSION_ACCOUNT_ID: bound.account_id,
                SESSION_ROLE_ID: bound.role_id,
                SESSION_TOKEN: bound.session_token,
                SESSION_USER_AGENT: bound.user_agent,
                SESSION_DISPLAY_NAME: bound.display_name,
                SESSION_MENUS: list(bound.menus),
            }
        )
        log_auth_event("session_bind", "success", account_id=account.id)
        return bound

    def unbind(self, account_id: int | None, session_state: MutableMapping | None = None) -> bool:
        """Clear the account's bound token and the given live session.

        Idempotent. With a ``session_state``, the account is only touched when
        that session still holds the current token, so a superseded device
        logging out leaves the newer session alone.
        """
        presented = session_state.get(SESSION_TOKEN) if session_state is not None else None
        if session_state is not None:
            session_state.clear()
        account = self.store.get(account_id)
        if not account or not account.current_session_token:
            return False
        if session_state is not None and presented != account.current_session_token:
            return False
        self.store.set_bound_token(account, None)
        log_auth_event("session_unbind", "success", account_id=account.id)
        return True
