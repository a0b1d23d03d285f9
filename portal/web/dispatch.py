from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, MutableMapping

from sqlalchemy.exc import SQLAlchemyError

from portal.auth import (
    AuthError,
    BoundSession,
    DeviceMismatch,
    LoginService,
    PermissionDenied,
    RequestContext,
    SessionConflict,
    SessionExpiredOrAbsent,
    SessionGate,
)
from portal.logging import get_logger

logger = get_logger("dispatch")

# Numeric tags used by older portal front-ends.
OPERATION_ALIASES = {
    "2": "register",
    "3": "login",
    "5": "check_username",
    "6": "verify_code",
    "8": "resend_code",
    "21": "delete_account",
}
PUBLIC_OPERATIONS = frozenset({"login", "verify_code", "resend_code", "register", "check_username"})

STATUS_BY_ERROR = (
    (SessionExpiredOrAbsent, 401),
    (DeviceMismatch, 401),
    (PermissionDenied, 403),
    (SessionConflict, 409),
)


def status_for_error(exc: AuthError) -> int:
    for error_type, status in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 400


@dataclass(frozen=True)
class ActionRequest:
    operation: str
    params: Mapping[str, Any]

    @staticmethod
    def from_payload(payload: Any) -> "ActionRequest":
        if not isinstance(payload, Mapping):
            raise ValueError("Request body must be a JSON object")
        raw = payload.get("operation")
        if raw is None or str(raw).strip() == "":
            raise ValueError("operation is required")
        operation = str(raw).strip().lower()
        operation = OPERATION_ALIASES.get(operation, operation)
        params = {key: value for key, value in payload.items() if key != "operation"}
        return ActionRequest(operation=operation, params=params)


def _text(params: Mapping[str, Any], *names: str) -> str:
    for name in names:
        value = params.get(name)
        if value is not None:
            return str(value)
    return ""


def _int(params: Mapping[str, Any], name: str) -> int | None:
    value = params.get(name)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer") from None


Handler = Callable[[Mapping[str, Any], MutableMapping, RequestContext, "BoundSession | None"], dict]


class ActionDispatcher:
    """Single entry point for tagged portal operations.

    Authentication failures come back as structured results; storage faults
    are rolled back and reported as a generic failure.
    """

    def __init__(self, service: LoginService, gate: SessionGate, login_url: str = "/login") -> None:
        self.service = service
        self.gate = gate
        self.login_url = login_url
        self._handlers: dict[str, Handler] = {
            "login": self._login,
            "verify_code": self._verify_code,
            "resend_code": self._resend_code,
            "register": self._register,
            "check_username": self._check_username,
            "delete_account": self._delete_account,
            "force_logout": self._force_logout,
        }

    def dispatch(self, action: ActionRequest, session_state: MutableMapping, context: RequestContext) -> tuple[dict, int]:
        handler = self._handlers.get(action.operation)
        if handler is None:
            return {"success": False, "message": "Unsupported operation"}, 400
        try:
            actor = None
            if action.operation not in PUBLIC_OPERATIONS:
                actor = self.gate.check(session_state, context.user_agent)
            return handler(action.params, session_state, context, actor), 200
        except (SessionExpiredOrAbsent, DeviceMismatch):
            return self.session_expired(), 401
        except AuthError as exc:
            return exc.as_result(), status_for_error(exc)
        except ValueError as exc:
            return {"success": False, "message": str(exc)}, 400
        except SQLAlchemyError:
            self.service.store.session.rollback()
            logger.exception("Operation %s failed in storage", action.operation)
            return {"success": False, "message": "Operation failed"}, 500

    def session_expired(self) -> dict:
        return {"success": False, "message": "Session expired", "redirect_url": self.login_url}

    def _optional_actor(self, session_state: MutableMapping, context: RequestContext) -> BoundSession | None:
        if not session_state:
            return None
        try:
            return self.gate.check(session_state, context.user_agent)
        except AuthError:
            return None

    def _login(self, params, session_state, context, actor) -> dict:
        result = self.service.begin_login(
            _text(params, "username", "identifier"),
            _text(params, "password", "credential"),
            role_id=_int(params, "role_id"),
            context=context,
        )
        return result.as_result()

    def _verify_code(self, params, session_state, context, actor) -> dict:
        result = self.service.complete_login(
            _int(params, "account_id"),
            _text(params, "code", "otp_code"),
            session_state,
            context=context,
        )
        return result.as_result()

    def _resend_code(self, params, session_state, context, actor) -> dict:
        self.service.resend_code(_int(params, "account_id"), context=context)
        return {"success": True, "message": "A new code has been sent."}

    def _register(self, params, session_state, context, actor) -> dict:
        current = self._optional_actor(session_state, context)
        allow_privileged = False
        if current is not None:
            role = self.service.store.get_role(current.role_id)
            allow_privileged = bool(role and role.name == "admin")
        self.service.register(
            _text(params, "username", "identifier"),
            _text(params, "password", "credential"),
            _text(params, "email"),
            role_id=_int(params, "role_id"),
            first_name=_text(params, "first_name"),
            last_name=_text(params, "last_name"),
            context=context,
            allow_privileged=allow_privileged,
        )
        return {"success": True, "message": "Registration successful!"}

    def _check_username(self, params, session_state, context, actor) -> dict:
        available = self.service.username_available(_text(params, "username", "identifier"), _int(params, "role_id"))
        return {"success": True, "is_available": available}

    def _delete_account(self, params, session_state, context, actor) -> dict:
        self.service.delete_account(actor, _int(params, "account_id"), context=context)
        return {"success": True}

    def _force_logout(self, params, session_state, context, actor) -> dict:
        released = self.service.force_logout(actor, _int(params, "account_id"), context=context)
        return {"success": True, "released": released}
