from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, MutableMapping

from portal.auth.errors import (
    AccountNotFound,
    AuthError,
    CodeExpiredOrInvalid,
    InvalidCredentials,
    PermissionDenied,
    SessionConflict,
)
from portal.auth.passwords import verify_secret
from portal.auth.second_factor import SecondFactor
from portal.auth.sessions import SESSION_ACCOUNT_ID, SESSION_ROLE_ID, BoundSession, SessionIssuer
from portal.auth.store import CredentialStore
from portal.logging import AuditLogger, log_auth_event
from portal.models import Account
from portal.services.mailer import DeliveryQueue, OutboundMessage
from portal.services.menus import MenuService

DEFAULT_LANDING_URL = "/dashboard"
ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class RequestContext:
    user_agent: str = ""
    ip_address: str | None = None
    endpoint: str | None = None


@dataclass(frozen=True)
class SetupChallenge:
    account_id: int
    secret: str
    provisioning_uri: str

    def as_result(self) -> dict:
        return {
            "success": True,
            "step": "setup",
            "account_id": self.account_id,
            "manual_key": self.secret,
            "provisioning_uri": self.provisioning_uri,
        }


@dataclass(frozen=True)
class VerifyChallenge:
    account_id: int
    method: str

    def as_result(self) -> dict:
        return {"success": True, "step": "verify", "method": self.method, "account_id": self.account_id}


@dataclass(frozen=True)
class Authenticated:
    account_id: int
    role_id: int
    redirect_url: str
    session: BoundSession

    def as_result(self) -> dict:
        return {"success": True, "redirect_url": self.redirect_url}


class LoginService:
    """Two round-trip login: credentials, then a second factor.

    Nothing about an in-flight login lives outside the account row; the second
    request is resolved from the account id the client echoes back.

    Under the ``reject`` policy a bound token only blocks a new login while
    ``live_session_check`` reports a session still holding it. Without a
    check every bound token counts as live.
    """

    def __init__(
        self,
        store: CredentialStore,
        second_factor: SecondFactor,
        issuer: SessionIssuer,
        menus: MenuService,
        audit: AuditLogger | None = None,
        delivery: DeliveryQueue | None = None,
        single_session_policy: str = "reject",
        live_session_check: Callable[[str, datetime], bool] | None = None,
    ) -> None:
        if single_session_policy not in ("reject", "supersede"):
            raise ValueError(f"Unknown single-session policy: {single_session_policy}")
        self.store = store
        self.second_factor = second_factor
        self.issuer = issuer
        self.menus = menus
        self.audit = audit
        self.delivery = delivery
        self.single_session_policy = single_session_policy
        self.live_session_check = live_session_check

    def begin_login(
        self,
        identifier: str,
        credential: str,
        role_id: int | None = None,
        context: RequestContext | None = None,
        now: datetime | None = None,
    ) -> SetupChallenge | VerifyChallenge:
        ctx = context or RequestContext()
        moment = now or datetime.now(timezone.utc)
        username = self.store.canonical_username(identifier, role_id)
        account = self.store.find_by_username(username)
        if not verify_secret(credential or "", account.password_hash if account else None):
            self._record(ctx, "Login", "Failed", f"Invalid credentials for {username or '<empty>'}")
            log_auth_event("login", "failed", reason=InvalidCredentials.code)
            raise InvalidCredentials()
        if self.single_session_policy == "reject" and self._holds_live_session(account, moment):
            self._record(ctx, "Login", "Failed", f"User {username} is already logged in", account)
            log_auth_event("login", "failed", account_id=account.id, reason=SessionConflict.code)
            raise SessionConflict()

        material = None
        if self.second_factor.needs_enrollment(account):
            material = self.second_factor.provision(account)
        message = self.second_factor.challenge(account, moment)
        self.store.commit()
        if message:
            self._deliver(message)

        self._record(ctx, "Login", "Success", f"Credentials accepted for {username}", account)
        log_auth_event("login", "challenge", account_id=account.id, metadata={"setup": material is not None})
        if material:
            return SetupChallenge(account.id, material.secret, material.provisioning_uri)
        return VerifyChallenge(account.id, self.second_factor.name)

    def complete_login(
        self,
        account_id: int | None,
        code: str,
        session_state: MutableMapping,
        context: RequestContext | None = None,
        now: datetime | None = None,
    ) -> Authenticated:
        ctx = context or RequestContext()
        moment = now or datetime.now(timezone.utc)
        account = self.store.get(account_id)
        if not account:
            log_auth_event("verify", "failed", account_id=account_id, reason=AccountNotFound.code)
            raise AccountNotFound()
        try:
            self.second_factor.validate(account, code, moment)
        except AuthError as exc:
            self._record(ctx, "Verify", "Failed", f"Second factor rejected for {account.username}", account)
            log_auth_event("verify", "failed", account_id=account.id, reason=exc.code)
            raise

        account.second_factor_enabled = True
        account.last_login = moment
        menus = self.menus.menus_for_role(account.role_id)
        # Binding commits the consumed code and the new token together.
        bound = self.issuer.bind(account, session_state, ctx.user_agent, menus)

        self._record(ctx, "Login", "Success", f"User {account.username} signed in", account)
        role = self.store.get_role(account.role_id)
        landing = role.landing_url if role and role.landing_url else DEFAULT_LANDING_URL
        return Authenticated(account.id, account.role_id, landing, bound)

    def resend_code(
        self,
        account_id: int | None,
        context: RequestContext | None = None,
        now: datetime | None = None,
    ) -> VerifyChallenge:
        ctx = context or RequestContext()
        moment = now or datetime.now(timezone.utc)
        account = self.store.get(account_id)
        if not account:
            raise AccountNotFound()
        if not self.second_factor.delivers_codes:
            raise CodeExpiredOrInvalid("Use the current code from your authenticator app.")
        if not self.second_factor.is_pending(account, moment):
            raise CodeExpiredOrInvalid("Your sign-in attempt expired. Please sign in again.")
        message = self.second_factor.challenge(account, moment)
        self.store.commit()
        if message:
            self._deliver(message)
        self._record(ctx, "Resend Code", "Success", f"New code issued for {account.username}", account)
        return VerifyChallenge(account.id, self.second_factor.name)

    def register(
        self,
        username: str,
        password: str,
        email: str,
        role_id: int | None = None,
        first_name: str = "",
        last_name: str = "",
        context: RequestContext | None = None,
        allow_privileged: bool = False,
    ) -> Account:
        ctx = context or RequestContext()
        role = self.store.get_role(role_id) if role_id else self.store.get_role_by_name("student")
        if not role:
            raise ValueError("Unknown role")
        if role.name == ADMIN_ROLE and not allow_privileged:
            raise PermissionDenied()
        final_username = self.store.canonical_username(username, role.id)
        if not final_username or not password or not (email or "").strip():
            raise ValueError("Username, password and email are required")
        account = self.store.create_account(
            final_username,
            password,
            email,
            role.id,
            first_name=first_name or "",
            last_name=last_name or "",
        )
        self._record(ctx, "Register", "Success", f"User {final_username} created", account)
        return account

    def username_available(self, username: str, role_id: int | None = None) -> bool:
        final_username = self.store.canonical_username(username, role_id)
        return bool(final_username) and not self.store.username_exists(final_username)

    def logout(self, session_state: MutableMapping, context: RequestContext | None = None) -> bool:
        ctx = context or RequestContext()
        account_id = session_state.get(SESSION_ACCOUNT_ID)
        role_id = session_state.get(SESSION_ROLE_ID)
        released = self.issuer.unbind(account_id, session_state)
        if account_id is not None:
            self.audit_event(ctx, "Logout", "Success", f"Account {account_id} logged out", account_id, role_id)
        return released

    def force_logout(self, actor: BoundSession, account_id: int | None, context: RequestContext | None = None) -> bool:
        """Release another account's session from an admin session."""
        ctx = context or RequestContext()
        self._require_admin(actor)
        account = self.store.require(account_id)
        released = self.issuer.unbind(account.id)
        self.audit_event(
            ctx,
            "Force Logout",
            "Success" if released else "Skipped",
            f"Session of {account.username} released by account {actor.account_id}",
            actor.account_id,
            actor.role_id,
        )
        return released

    def delete_account(self, actor: BoundSession, account_id: int | None, context: RequestContext | None = None) -> None:
        ctx = context or RequestContext()
        self._require_admin(actor)
        self.store.delete_account(account_id, actor_id=actor.account_id, ip_address=ctx.ip_address)
        log_auth_event("account_delete", "success", account_id=account_id, metadata={"actor": actor.account_id})

    def audit_event(
        self,
        ctx: RequestContext,
        action: str,
        status: str,
        details: str,
        account_id: int | None = None,
        role_id: int | None = None,
    ) -> None:
        if self.audit is None:
            return
        self.audit.record(
            action,
            status,
            details,
            account_id=account_id,
            role_id=role_id,
            ip_address=ctx.ip_address,
            endpoint=ctx.endpoint,
        )

    def _require_admin(self, actor: BoundSession) -> None:
        role = self.store.get_role(actor.role_id)
        if not role or role.name != ADMIN_ROLE:
            raise PermissionDenied()

    def _holds_live_session(self, account: Account, moment: datetime) -> bool:
        token = account.current_session_token
        if not token:
            return False
        if self.live_session_check is None or self.live_session_check(token, moment):
            return True
        log_auth_event("login", "stale_session", account_id=account.id)
        return False

    def _record(self, ctx: RequestContext, action: str, status: str, details: str, account: Account | None = None) -> None:
        account_id = account.id if account else None
        role_id = account.role_id if account else None
        self.audit_event(ctx, action, status, details, account_id, role_id)

    def _deliver(self, message: OutboundMessage) -> None:
        if self.delivery is None:
            log_auth_event("mail_delivery", "skipped", reason="no_delivery_queue")
            return
        self.delivery.submit(message)
