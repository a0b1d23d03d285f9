"""Environment-backed application settings with strict validation."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping

logger = logging.getLogger(__name__)

REQUIRED_ENV_VARS = (
    "DATABASE_URL",
    "SESSION_SECRET",
    "OTP_ISSUER_NAME",
)

SECOND_FACTOR_MODES = ("totp", "email")
SINGLE_SESSION_POLICIES = ("reject", "supersede")


def _read_env_var(name: str, env: Mapping[str, str | None]) -> str:
    value = env.get(name)
    if value is None or str(value).strip() == "":
        raise RuntimeError(f"Missing required environment variable: {name}")
    return str(value)


def _read_choice(name: str, env: Mapping[str, str | None], choices: tuple[str, ...], default: str) -> str:
    value = str(env.get(name) or default).strip().lower()
    if value not in choices:
        raise RuntimeError(f"Invalid value for {name}: {value!r} (expected one of {', '.join(choices)})")
    return value


def _read_int(name: str, env: Mapping[str, str | None], default: int, minimum: int = 0) -> int:
    raw = env.get(name)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        value = int(str(raw).strip())
    except ValueError:
        raise RuntimeError(f"Invalid integer for {name}: {raw!r}") from None
    if value < minimum:
        raise RuntimeError(f"{name} must be >= {minimum}")
    return value


def _read_optional(name: str, env: Mapping[str, str | None]) -> str | None:
    value = env.get(name)
    if value is None or str(value).strip() == "":
        return None
    return str(value).strip()


@dataclass(frozen=True)
class Settings:
    database_url: str
    session_secret: str
    otp_issuer_name: str
    app_env: str
    second_factor: str = "totp"
    single_session_policy: str = "reject"
    otp_ttl_seconds: int = 300
    otp_length: int = 6
    totp_valid_window: int = 1
    session_idle_minutes: int = 30
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    mail_from: str | None = None

    @property
    def secure_cookies(self) -> bool:
        return self.app_env not in ("test", "development")


def load_settings(env: Mapping[str, str | None] | None = None) -> Settings:
    """Load and validate environment variables into a Settings object."""
    source_env = os.environ if env is None else env

    missing = [key for key in REQUIRED_ENV_VARS if not str(source_env.get(key) or "").strip()]
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    app_env = str(source_env.get("APP_ENV", "development")).strip() or "development"

    settings = Settings(
        database_url=_read_env_var("DATABASE_URL", source_env),
        session_secret=_read_env_var("SESSION_SECRET", source_env),
        otp_issuer_name=_read_env_var("OTP_ISSUER_NAME", source_env),
        app_env=app_env,
        second_factor=_read_choice("SECOND_FACTOR", source_env, SECOND_FACTOR_MODES, "totp"),
        single_session_policy=_read_choice("SINGLE_SESSION_POLICY", source_env, SINGLE_SESSION_POLICIES, "reject"),
        otp_ttl_seconds=_read_int("OTP_TTL_SECONDS", source_env, 300, minimum=1),
        otp_length=_read_int("OTP_LENGTH", source_env, 6, minimum=4),
        totp_valid_window=_read_int("TOTP_VALID_WINDOW", source_env, 1),
        session_idle_minutes=_read_int("SESSION_IDLE_MINUTES", source_env, 30, minimum=1),
        smtp_host=_read_optional("SMTP_HOST", source_env),
        smtp_port=_read_int("SMTP_PORT", source_env, 587, minimum=1),
        smtp_user=_read_optional("SMTP_USER", source_env),
        smtp_password=_read_optional("SMTP_PASSWORD", source_env),
        mail_from=_read_optional("MAIL_FROM", source_env),
    )

    logger.info(
        "Loaded application settings for env=%s second_factor=%s single_session_policy=%s",
        settings.app_env,
        settings.second_factor,
        settings.single_session_policy,
    )
    return settings
