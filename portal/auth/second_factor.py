"""Second-factor strategies.

Both strategies share one contract so the login flow never branches on the
delivery mechanism. The strategy is chosen per deployment (``SECOND_FACTOR``),
never per account.

Every challenge opens a window on the account (``challenge_expires_at``). A
code is only accepted while that window is open, which ties the second step
to a preceding successful credential check without a separate pending-login
table.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

import pyotp

from portal.auth.errors import AccountHasNoSecondFactorConfigured, AlreadyConsumed, CodeExpiredOrInvalid
from portal.auth.passwords import hash_secret, verify_secret
from portal.models import Account
from portal.services.mailer import OutboundMessage


@dataclass(frozen=True)
class EnrollmentMaterial:
    secret: str
    provisioning_uri: str


def normalize_time(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def numeric_code(length: int) -> str:
    return f"{secrets.randbelow(10 ** length):0{length}d}"


class SecondFactor:
    name = "base"
    delivers_codes = False

    def __init__(self, ttl_seconds: int = 300) -> None:
        self.ttl_seconds = ttl_seconds

    def needs_enrollment(self, account: Account) -> bool:
        raise NotImplementedError

    def provision(self, account: Account) -> EnrollmentMaterial:
        raise NotImplementedError

    def challenge(self, account: Account, now: datetime | None = None) -> OutboundMessage | None:
        """Open a challenge window; return the message to deliver, if any."""
        raise NotImplementedError

    def validate(self, account: Account, code: str, now: datetime | None = None) -> None:
        """Raise a second-factor error unless ``code`` is acceptable.

        On success the account's one-time state is consumed; the caller commits.
        """
        raise NotImplementedError

    def _open_window(self, account: Account, moment: datetime) -> None:
        account.challenge_expires_at = moment + timedelta(seconds=self.ttl_seconds)

    def is_pending(self, account: Account, moment: datetime) -> bool:
        expires = normalize_time(account.challenge_expires_at)
        return expires is not None and moment < expires


class TotpSecondFactor(SecondFactor):
    name = "totp"

    def __init__(self, issuer_name: str, valid_window: int = 1, ttl_seconds: int = 300) -> None:
        super().__init__(ttl_seconds)
        self.issuer_name = issuer_name
        self.valid_window = valid_window

    def needs_enrollment(self, account: Account) -> bool:
        return not account.second_factor_enabled or not account.otp_secret

    def provision(self, account: Account) -> EnrollmentMaterial:
        if not account.otp_secret:
            account.otp_secret = pyotp.random_base32()
        uri = pyotp.TOTP(account.otp_secret).provisioning_uri(
            name=account.email or account.username,
            issuer_name=self.issuer_name,
        )
        return EnrollmentMaterial(secret=account.otp_secret, provisioning_uri=uri)

    def challenge(self, account: Account, now: datetime | None = None) -> OutboundMessage | None:
        # The authenticator app computes codes on its own; only the window is opened.
        self._open_window(account, now or datetime.now(timezone.utc))
        return None

    def validate(self, account: Account, code: str, now: datetime | None = None) -> None:
        moment = now or datetime.now(timezone.utc)
        if not account.otp_secret:
            raise AccountHasNoSecondFactorConfigured()
        submitted = (code or "").strip()
        if account.last_used_otp and submitted == account.last_used_otp:
            raise AlreadyConsumed()
        if not self.is_pending(account, moment):
            raise CodeExpiredOrInvalid()
        if not pyotp.TOTP(account.otp_secret).verify(submitted, for_time=moment, valid_window=self.valid_window):
            raise CodeExpiredOrInvalid()
        account.last_used_otp = submitted
        account.challenge_expires_at = None


class MailedOtpSecondFactor(SecondFactor):
    name = "email"
    delivers_codes = True
    subject = "Your verification code"

    def __init__(
        self,
        ttl_seconds: int = 300,
        code_length: int = 6,
        code_factory: Callable[[int], str] = numeric_code,
    ) -> None:
        super().__init__(ttl_seconds)
        self.code_length = code_length
        self.code_factory = code_factory

    def needs_enrollment(self, account: Account) -> bool:
        return False

    def provision(self, account: Account) -> EnrollmentMaterial:
        raise AccountHasNoSecondFactorConfigured("Mailed codes need no enrollment.")

    def challenge(self, account: Account, now: datetime | None = None) -> OutboundMessage | None:
        moment = now or datetime.now(timezone.utc)
        if not account.email:
            raise AccountHasNoSecondFactorConfigured()
        code = self.code_factory(self.code_length)
        account.otp_code_hash = hash_secret(code)
        self._open_window(account, moment)
        minutes = max(1, self.ttl_seconds // 60)
        body = f"Your one-time code is {code}. It expires in {minutes} minutes."
        return OutboundMessage(account.email, self.subject, body)

    def validate(self, account: Account, code: str, now: datetime | None = None) -> None:
        moment = now or datetime.now(timezone.utc)
        submitted = (code or "").strip()
        if not account.otp_code_hash or not self.is_pending(account, moment):
            raise CodeExpiredOrInvalid()
        if not submitted.isdigit() or not verify_secret(submitted, account.otp_code_hash):
            raise CodeExpiredOrInvalid()
        account.otp_code_hash = None
        account.challenge_expires_at = None


def build_second_factor(settings) -> SecondFactor:
    if settings.second_factor == "email":
        return MailedOtpSecondFactor(ttl_seconds=settings.otp_ttl_seconds, code_length=settings.otp_length)
    return TotpSecondFactor(
        issuer_name=settings.otp_issuer_name,
        valid_window=settings.totp_valid_window,
        ttl_seconds=settings.otp_ttl_seconds,
    )
