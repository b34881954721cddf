"""Bearer-token authorization gate for protected routes."""

from __future__ import annotations

from dataclasses import dataclass
import logging

from fastapi import Header, Request

from ..errors import AccountServiceError, UnauthenticatedError
from .tokens import TokenKind, TokenManager

logger = logging.getLogger(__name__)

BEARER_SCHEME = "bearer"


@dataclass(slots=True, frozen=True)
class Identity:
    """Authenticated caller attached to the request scope."""

    account_id: str
    email: str


def authenticate(authorization: str | None, tokens: TokenManager) -> Identity:
    """Resolve an ``Authorization`` header value into an :class:`Identity`.

    Only the ``Bearer`` scheme is accepted and only access tokens pass. Every
    failure is reported as :class:`UnauthenticatedError` so callers cannot tell
    an expired token from a forged one.
    """
    if not authorization:
        raise UnauthenticatedError("authorization header is required")

    scheme, _, token = authorization.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != BEARER_SCHEME or not token:
        raise UnauthenticatedError("bearer token is required")

    try:
        claims = tokens.validate(token, TokenKind.access)
    except AccountServiceError as exc:
        logger.info("rejected bearer token: %s", exc.code)
        raise UnauthenticatedError("invalid or expired token") from exc
    return Identity(account_id=claims.account_id, email=claims.email)


def get_token_manager(request: Request) -> TokenManager:
    """Resolve the `TokenManager` stored on the FastAPI application state."""
    tokens: TokenManager = request.app.state.token_manager
    return tokens


def require_identity(
    request: Request,
    authorization: str | None = Header(default=None),
) -> Identity:
    """FastAPI dependency that rejects the request before the handler runs."""
    identity = authenticate(authorization, get_token_manager(request))
    request.state.identity = identity
    return identity
