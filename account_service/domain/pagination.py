"""Keyset pagination over accounts ordered by ``(created_at DESC, account_id DESC)``.

The secondary key on ``account_id`` makes the order total, so consecutive pages
never overlap or skip rows even when several accounts share a timestamp.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any
import uuid

from .account import Account
from ..errors import InvalidCursorError

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@dataclass(slots=True, frozen=True)
class PageAnchor:
    """Sort key of the last account on the previous page."""

    created_at: datetime
    account_id: str

    @classmethod
    def of(cls, account: Account) -> "PageAnchor":
        return cls(created_at=account.created_at, account_id=account.account_id)


@dataclass(slots=True)
class AccountPage:
    accounts: list[Account]
    limit: int
    next_cursor: str | None = None


def normalize_limit(raw: Any) -> int:
    """Coerce a requested page size, falling back to the default when unusable."""
    try:
        limit = int(raw)
    except (TypeError, ValueError):
        return DEFAULT_PAGE_SIZE
    if limit < 1 or limit > MAX_PAGE_SIZE:
        return DEFAULT_PAGE_SIZE
    return limit


def parse_cursor(raw: str | None) -> str | None:
    """Return the canonical account id encoded in ``raw`` or ``None`` when absent."""
    if raw is None or not raw.strip():
        return None
    try:
        return str(uuid.UUID(raw.strip()))
    except ValueError as exc:
        raise InvalidCursorError("invalid last_id format") from exc


def ordering_key(account: Account) -> tuple[datetime, str]:
    return account.created_at, account.account_id


def precedes_anchor(account: Account, anchor: PageAnchor) -> bool:
    """True when ``account`` sorts strictly after ``anchor`` in listing order."""
    if account.created_at < anchor.created_at:
        return True
    return account.created_at == anchor.created_at and account.account_id < anchor.account_id


def build_page(accounts: list[Account], limit: int) -> AccountPage:
    """Wrap a directory result, pointing the next cursor at its last account.

    A non-empty page always yields a cursor; when it happens to be the final
    page the follow-up request simply returns no accounts.
    """
    next_cursor = accounts[-1].account_id if accounts else None
    return AccountPage(accounts=accounts, limit=limit, next_cursor=next_cursor)
