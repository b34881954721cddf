from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(slots=True)
class Account:
    """Aggregate root for a user identity."""

    account_id: str
    email: str
    password_hash: str = field(repr=False)
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    @property
    def is_live(self) -> bool:
        return self.deleted_at is None


def normalize_email(email: str) -> str:
    """Return the canonical form under which emails are stored and compared."""
    return email.strip().lower()
