"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class SignUpInput:
    """Validated inputs required to register an account."""

    email: str
    password: str


@dataclass(slots=True)
class UpdateAccountInput:
    """Partial self-service update; ``None`` means the field was not supplied."""

    email: str | None = None
    password: str | None = None


@dataclass(slots=True)
class AccountChanges:
    """Fields the directory should overwrite on an existing account."""

    email: str | None = None
    password_hash: str | None = None

    def is_empty(self) -> bool:
        return self.email is None and self.password_hash is None
