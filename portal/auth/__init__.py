from .errors import (
    AccountHasNoSecondFactorConfigured,
    AccountNotFound,
    AlreadyConsumed,
    AuthError,
    CodeExpiredOrInvalid,
    DeviceMismatch,
    InvalidCredentials,
    PermissionDenied,
    SessionConflict,
    SessionExpiredOrAbsent,
    UsernameTaken,
)
from .gate import SessionGate
from .second_factor import (
    EnrollmentMaterial,
    MailedOtpSecondFactor,
    SecondFactor,
    TotpSecondFactor,
    build_second_factor,
)
from .service import Authenticated, LoginService, RequestContext, SetupChallenge, VerifyChallenge
from .sessions import BoundSession, SessionIssuer
from .store import CredentialStore

__all__ = [
    "AccountHasNoSecondFactorConfigured",
    "AccountNotFound",
    "AlreadyConsumed",
    "AuthError",
    "Authenticated",
    "BoundSession",
    "CodeExpiredOrInvalid",
    "CredentialStore",
    "DeviceMismatch",
    "EnrollmentMaterial",
    "InvalidCredentials",
    "LoginService",
    "MailedOtpSecondFactor",
    "PermissionDenied",
    "RequestContext",
    "SecondFactor",
    "SessionConflict",
    "SessionExpiredOrAbsent",
    "SessionGate",
    "SessionIssuer",
    "SetupChallenge",
    "TotpSecondFactor",
    "UsernameTaken",
    "VerifyChallenge",
    "build_second_factor",
]
