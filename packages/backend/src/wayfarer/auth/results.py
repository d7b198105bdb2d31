"""Typed outcomes for the auth flows.

Learn: Expected business failures (wrong password, reused refresh token,
expired reset link) are ordinary results, not exceptions. Every service
operation returns either its success value or a `Failure`, and the HTTP
layer maps the failure's code onto a status and the wire envelope.

Exceptions are reserved for infrastructure trouble (database down,
session binding failed) — those propagate and become a generic 500.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TypeVar, Union


class ErrorCategory(str, Enum):
    """Error taxonomy — which family a wire code belongs to."""

    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    RESOURCE = "resource"
    CONFLICT = "conflict"
    CONSISTENCY = "consistency"
    INFRASTRUCTURE = "infrastructure"


class ErrorCode(str, Enum):
    """Wire error codes (the `error` field of the envelope)."""

    VALIDATION_ERROR = "ValidationError"
    EMAIL_ALREADY_EXISTS = "EmailAlreadyExists"
    INVALID_CREDENTIALS = "InvalidCredentials"
    INVALID_REFRESH_TOKEN = "InvalidRefreshToken"
    TOKEN_NOT_FOUND = "TokenNotFound"
    TOKEN_EXPIRED = "TokenExpired"
    CURRENT_PASSWORD_MISMATCH = "CurrentPasswordMismatch"
    SAME_PASSWORD = "SamePassword"
    USER_NOT_FOUND = "UserNotFound"
    INTERNAL_SERVER_ERROR = "InternalServerError"

    @property
    def category(self) -> ErrorCategory:
        return _CATEGORIES[self]

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]


_CATEGORIES = {
    ErrorCode.VALIDATION_ERROR: ErrorCategory.VALIDATION,
    ErrorCode.EMAIL_ALREADY_EXISTS: ErrorCategory.CONFLICT,
    ErrorCode.INVALID_CREDENTIALS: ErrorCategory.AUTHENTICATION,
    ErrorCode.INVALID_REFRESH_TOKEN: ErrorCategory.AUTHENTICATION,
    ErrorCode.TOKEN_NOT_FOUND: ErrorCategory.RESOURCE,
    ErrorCode.TOKEN_EXPIRED: ErrorCategory.RESOURCE,
    ErrorCode.CURRENT_PASSWORD_MISMATCH: ErrorCategory.CONSISTENCY,
    ErrorCode.SAME_PASSWORD: ErrorCategory.CONFLICT,
    ErrorCode.USER_NOT_FOUND: ErrorCategory.RESOURCE,
    ErrorCode.INTERNAL_SERVER_ERROR: ErrorCategory.INFRASTRUCTURE,
}

# SamePassword is a conflict in the taxonomy but a 400 on the wire.
_HTTP_STATUS = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.EMAIL_ALREADY_EXISTS: 409,
    ErrorCode.INVALID_CREDENTIALS: 401,
    ErrorCode.INVALID_REFRESH_TOKEN: 401,
    ErrorCode.TOKEN_NOT_FOUND: 404,
    ErrorCode.TOKEN_EXPIRED: 400,
    ErrorCode.CURRENT_PASSWORD_MISMATCH: 400,
    ErrorCode.SAME_PASSWORD: 400,
    ErrorCode.USER_NOT_FOUND: 404,
    ErrorCode.INTERNAL_SERVER_ERROR: 500,
}


@dataclass(frozen=True)
class Failure:
    """A named, expected failure of an auth flow."""

    code: ErrorCode
    message: str

    @property
    def http_status(self) -> int:
        return self.code.http_status


T = TypeVar("T")

# An operation result: the success value, or a Failure.
Outcome = Union[T, Failure]


def is_failure(result: object) -> bool:
    return isinstance(result, Failure)
