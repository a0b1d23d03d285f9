from __future__ import annotations

from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from portal.auth.errors import AccountNotFound, UsernameTaken
from portal.auth.passwords import hash_secret
from portal.models import Account, Role, SystemLog, WebSession

DEFAULT_ROLES = (
    ("student", "S", "/dashboard"),
    ("faculty", "F", "/dashboard"),
    ("admin", "A", "/dashboard"),
)


class CredentialStore:
    """Account records and the single-field writes the auth core needs."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def ensure_default_roles(self) -> list[Role]:
        roles = []
        for name, prefix, landing_url in DEFAULT_ROLES:
            role = self.session.query(Role).filter_by(name=name).first()
            if not role:
                role = Role(name=name, prefix=prefix, landing_url=landing_url)
                self.session.add(role)
            roles.append(role)
        self.commit()
        return roles

    def list_roles(self) -> list[Role]:
        return self.session.query(Role).order_by(Role.id.asc()).all()

    def get_role(self, role_id: int | None) -> Role | None:
        if role_id is None:
            return None
        return self.session.get(Role, role_id)

    def get_role_by_name(self, name: str) -> Role | None:
        return self.session.query(Role).filter_by(name=name).first()

    def canonical_username(self, username: str, role_id: int | None) -> str:
        normalized = (username or "").strip()
        if not normalized:
            return ""
        role = self.get_role(role_id)
        prefix = role.prefix if role and role.prefix else ""
        if prefix and not normalized.startswith(prefix):
            return prefix + normalized
        return normalized

    def find_by_username(self, username: str) -> Account | None:
        if not username:
            return None
        return self.session.query(Account).filter_by(username=username).first()

    def get(self, account_id: int | None) -> Account | None:
        if account_id is None:
            return None
        return self.session.get(Account, account_id)

    def require(self, account_id: int | None) -> Account:
        account = self.get(account_id)
        if not account:
            raise AccountNotFound()
        return account

    def username_exists(self, username: str) -> bool:
        return self.find_by_username(username) is not None

    def create_account(
        self,
        username: str,
        password: str,
        email: str,
        role_id: int,
        first_name: str = "",
        last_name: str = "",
    ) -> Account:
        if self.username_exists(username):
            raise UsernameTaken()
        account = Account(
            username=username,
            password_hash=hash_secret(password),
            email=email.strip().lower(),
            role_id=role_id,
            first_name=first_name.strip(),
            last_name=last_name.strip(),
        )
        self.session.add(account)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise UsernameTaken() from exc
        self.session.refresh(account)
        return account

    def bound_token(self, account_id: int) -> str | None:
        row = self.session.query(Account.current_session_token).filter(Account.id == account_id).first()
        if row is None:
            return None
        return row[0]

    def set_bound_token(self, account: Account, token: str | None) -> None:
        account.current_session_token = token
        self.commit()

    def token_is_live(self, token: str, moment: datetime) -> bool:
        """True while an unexpired server-side session still carries ``token``."""
        row = (
            self.session.query(WebSession.id)
            .filter(WebSession.session_token == token, WebSession.expires_at > moment)
            .first()
        )
        return row is not None

    def delete_account(self, account_id: int, actor_id: int | None = None, ip_address: str | None = None) -> None:
        """Delete an account and record the deletion as one unit.

        Either both the removal and its audit entry are committed or neither is.
        """
        account = self.require(account_id)
        username = account.username
        try:
            self.session.delete(account)
            self.session.add(
                SystemLog(
                    action="Delete Account",
                    status="Success",
                    details=f"Deleted user {username}",
                    account_id=actor_id,
                    ip_address=ip_address or "unknown",
                )
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def commit(self) -> None:
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
