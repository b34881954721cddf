"""Issuing and validating the service's signed access and refresh tokens."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import time
from typing import Any, Callable
import uuid

import jwt

from ..config import Settings
from ..errors import TokenExpiredError, TokenMalformedError

ALGORITHM = "HS256"
REQUIRED_CLAIMS = ["iss", "sub", "email", "kind", "iat", "exp"]


class TokenKind(str, Enum):
    access = "access"
    refresh = "refresh"


@dataclass(slots=True, frozen=True)
class TokenClaims:
    """Claims recovered from a validated token."""

    account_id: str
    email: str
    kind: TokenKind
    issued_at: int
    expires_at: int
    issuer: str
    token_id: str | None = None


@dataclass(slots=True, frozen=True)
class TokenPair:
    """Access/refresh token pair returned after sign-in or refresh."""

    access_token: str
    access_expires_in: int
    refresh_token: str
    refresh_expires_in: int


class TokenManager:
    """Stateless HS256 token signer/verifier.

    The secret and lifetimes are fixed at construction; instances are safe to
    share across request threads.
    """

    def __init__(
        self,
        *,
        secret: str,
        issuer: str,
        access_ttl_seconds: int,
        refresh_ttl_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("token signing secret must not be empty")
        self._secret = secret
        self._issuer = issuer
        self._lifetimes = {
            TokenKind.access: access_ttl_seconds,
            TokenKind.refresh: refresh_ttl_seconds,
        }
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenManager":
        return cls(
            secret=settings.jwt_secret,
            issuer=settings.jwt_issuer,
            access_ttl_seconds=settings.access_ttl_seconds,
            refresh_ttl_seconds=settings.refresh_ttl_seconds,
        )

    def lifetime(self, kind: TokenKind) -> int:
        return self._lifetimes[kind]

    def issue(self, account_id: str, email: str, kind: TokenKind) -> str:
        """Create a signed token of ``kind`` for the given account.

        Parameters
        ----------
        account_id:
            Account identifier embedded in the ``sub`` claim.
        email:
            Account email at issuance time.
        kind:
            Selects the lifetime and is embedded so validation can enforce it.
        """
        now = int(self._clock())
        payload: dict[str, Any] = {
            "iss": self._issuer,
            "sub": account_id,
            "email": email,
            "kind": kind.value,
            "iat": now,
            "exp": now + self.lifetime(kind),
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def issue_pair(self, account_id: str, email: str) -> TokenPair:
        """Issue one access token and one refresh token bound to the same account."""
        return TokenPair(
            access_token=self.issue(account_id, email, TokenKind.access),
            access_expires_in=self.lifetime(TokenKind.access),
            refresh_token=self.issue(account_id, email, TokenKind.refresh),
            refresh_expires_in=self.lifetime(TokenKind.refresh),
        )

    def validate(self, token: str, kind: TokenKind = TokenKind.access) -> TokenClaims:
        """Verify ``token`` and return its claims.

        Signature, structure, issuer, and token kind are checked before expiry,
        which is evaluated against the manager's clock.

        Raises
        ------
        TokenMalformedError
            When the token cannot be trusted or is not of the requested kind.
        TokenExpiredError
            When the token is authentic but its lifetime has elapsed.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                issuer=self._issuer,
                options={
                    "require": REQUIRED_CLAIMS,
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.PyJWTError as exc:
            raise TokenMalformedError() from exc

        claims = self._to_claims(payload)
        if claims.kind is not kind:
            raise TokenMalformedError(f"expected a {kind.value} token")
        if claims.expires_at <= claims.issued_at:
            raise TokenMalformedError()
        if self._clock() >= claims.expires_at:
            raise TokenExpiredError()
        return claims

    def _to_claims(self, payload: dict[str, Any]) -> TokenClaims:
        try:
            return TokenClaims(
                account_id=str(payload["sub"]),
                email=str(payload["email"]),
                kind=TokenKind(payload["kind"]),
                issued_at=int(payload["iat"]),
                expires_at=int(payload["exp"]),
                issuer=str(payload["iss"]),
                token_id=payload.get("jti"),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise TokenMalformedError() from exc
