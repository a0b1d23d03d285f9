from __future__ import annotations


class AuthError(Exception):
    code = "auth_error"
    message = "Authentication failed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message

    def as_result(self) -> dict:
        return {"success": False, "code": self.code, "message": self.message}


class InvalidCredentials(AuthError):
    code = "invalid_credentials"
    message = "Invalid credentials."


class SessionConflict(AuthError):
    code = "session_conflict"
    message = "User is already logged in on another device."


class AccountNotFound(AuthError):
    code = "account_not_found"
    message = "User not found."


class CodeExpiredOrInvalid(AuthError):
    code = "code_invalid"
    message = "Invalid or expired verification code."


class AlreadyConsumed(AuthError):
    code = "code_consumed"
    message = "This code has already been used. Please wait for the next code."


class AccountHasNoSecondFactorConfigured(AuthError):
    code = "second_factor_missing"
    message = "Two-factor authentication is not set up for this account."


class DeviceMismatch(AuthError):
    code = "device_mismatch"
    message = "Session expired"


class SessionExpiredOrAbsent(AuthError):
    code = "session_expired"
    message = "Session expired"


class UsernameTaken(AuthError):
    code = "username_taken"
    message = "Username taken."


class PermissionDenied(AuthError):
    code = "permission_denied"
    message = "You are not allowed to perform this operation."
