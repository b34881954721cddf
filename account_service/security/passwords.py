"""Password hashing and verification backed by bcrypt."""

from __future__ import annotations

from functools import cached_property
from typing import NoReturn

import bcrypt

from ..errors import InvalidCredentialError, MalformedError

# bcrypt only considers the first 72 bytes of its input.
MAX_PASSWORD_BYTES = 72
DEFAULT_ROUNDS = 12


class PasswordHasher:
    """Salted, cost-configurable one-way hashing of account passwords."""

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        self._rounds = rounds

    def hash(self, plaintext: str) -> str:
        """Return a bcrypt digest for ``plaintext`` using a fresh salt."""
        encoded = plaintext.encode("utf-8")
        if len(encoded) > MAX_PASSWORD_BYTES:
            raise MalformedError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
        return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self._rounds)).decode("utf-8")

    def verify(self, digest: str, plaintext: str) -> bool:
        """Check ``plaintext`` against ``digest`` in constant time.

        Raises
        ------
        InvalidCredentialError
            When the password does not match or the stored digest is unusable.
        """
        try:
            matched = bcrypt.checkpw(plaintext.encode("utf-8"), digest.encode("utf-8"))
        except (ValueError, TypeError) as exc:
            raise InvalidCredentialError() from exc
        if not matched:
            raise InvalidCredentialError()
        return True

    def reject(self, plaintext: str) -> NoReturn:
        """Run a full-cost comparison against a placeholder digest, then fail.

        Callers with no stored digest use this so that an unknown account takes
        as long to reject as a wrong password.
        """
        bcrypt.checkpw(plaintext.encode("utf-8")[:MAX_PASSWORD_BYTES], self._placeholder_digest)
        raise InvalidCredentialError()

    def needs_rehash(self, digest: str) -> bool:
        """Return ``True`` when ``digest`` was produced with a different cost factor."""
        parts = digest.split("$")
        if len(parts) < 4 or not parts[2].isdigit():
            return True
        return int(parts[2]) != self._rounds

    @cached_property
    def _placeholder_digest(self) -> bytes:
        return bcrypt.hashpw(b"placeholder-password", bcrypt.gensalt(rounds=self._rounds))
