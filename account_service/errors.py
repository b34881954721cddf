"""Error taxonomy shared by the domain, security, and HTTP layers.

Every expected failure is raised as a subclass of :class:`AccountServiceError`
tagged with an :class:`ErrorKind`. The HTTP layer maps kinds to status codes via
a lookup table, so messages are free to change without affecting routing.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    invalid_credential = "INVALID_CREDENTIAL"
    already_exists = "ALREADY_EXISTS"
    forbidden = "FORBIDDEN"
    not_found = "NOT_FOUND"
    email_conflict = "EMAIL_CONFLICT"
    unauthenticated = "UNAUTHENTICATED"
    invalid_cursor = "INVALID_CURSOR"
    malformed = "MALFORMED"
    token_expired = "TOKEN_EXPIRED"
    internal = "INTERNAL"


class AccountServiceError(Exception):
    """Base class for all expected account service failures."""

    kind: ErrorKind = ErrorKind.internal
    default_message = "account service error"

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return self.kind.value

    def to_dict(self) -> dict[str, Any]:
        """Convert the error into the JSON body returned to API consumers."""
        body: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class InvalidCredentialError(AccountServiceError):
    """Raised for an unknown email or a wrong password; the two are indistinguishable."""

    kind = ErrorKind.invalid_credential
    default_message = "invalid credentials"


class AlreadyExistsError(AccountServiceError):
    kind = ErrorKind.already_exists
    default_message = "account with this email already exists"


class ForbiddenError(AccountServiceError):
    kind = ErrorKind.forbidden
    default_message = "access to this account is not permitted"


class NotFoundError(AccountServiceError):
    kind = ErrorKind.not_found
    default_message = "account not found"


class EmailConflictError(AccountServiceError):
    kind = ErrorKind.email_conflict
    default_message = "email already in use"


class UnauthenticatedError(AccountServiceError):
    kind = ErrorKind.unauthenticated
    default_message = "authentication required"


class InvalidCursorError(AccountServiceError):
    kind = ErrorKind.invalid_cursor
    default_message = "invalid pagination cursor"


class MalformedError(AccountServiceError):
    kind = ErrorKind.malformed
    default_message = "malformed input"


class TokenMalformedError(MalformedError):
    """Raised when a token's structure, signature, issuer, or kind is invalid."""

    default_message = "malformed token"


class TokenExpiredError(AccountServiceError):
    kind = ErrorKind.token_expired
    default_message = "token has expired"


class InternalError(AccountServiceError):
    """Opaque failure; the message returned to callers never carries detail."""

    kind = ErrorKind.internal
    default_message = "internal server error"


class StorageError(InternalError):
    """Wraps unexpected database driver failures."""


class ConfigurationError(Exception):
    """Raised at startup when settings are missing or unsafe."""
