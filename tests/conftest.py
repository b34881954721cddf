from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from threading import Lock
import uuid

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from account_service.api import routes
from account_service.api.errors import install_error_handlers
from account_service.domain.account import Account
from account_service.domain.contracts import AccountChanges
from account_service.domain.pagination import PageAnchor, ordering_key, precedes_anchor
from account_service.domain.service import AccountService
from account_service.errors import AlreadyExistsError, EmailConflictError, NotFoundError
from account_service.security.passwords import PasswordHasher
from account_service.security.tokens import TokenManager

TEST_SECRET = "test-secret-0123456789abcdef0123456789abcdef"
TEST_ISSUER = "user-management-test"
ACCESS_TTL = 900
REFRESH_TTL = 86400


class FakeClock:
    """Manually advanced replacement for ``time.time``."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRepository:
    """In-memory repository mimicking the Postgres directory's behaviour.

    Uniqueness of live emails is enforced on write like the partial unique
    index, and soft-deleted rows are hidden from every read.
    """

    def __init__(self) -> None:
        self._accounts: dict[str, Account] = {}
        self._lock = Lock()
        self._base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        self._seq = 0
        self.fixed_created_at: datetime | None = None
        self.writes = 0

    def _next_timestamp(self) -> datetime:
        if self.fixed_created_at is not None:
            return self.fixed_created_at
        self._seq += 1
        return self._base + timedelta(seconds=self._seq)

    def _live_owner(self, email: str) -> Account | None:
        for account in self._accounts.values():
            if account.is_live and account.email.lower() == email.lower():
                return account
        return None

    def create_account(self, *, email: str, password_hash: str) -> Account:
        with self._lock:
            if self._live_owner(email) is not None:
                raise AlreadyExistsError()
            now = self._next_timestamp()
            account = Account(
                account_id=str(uuid.uuid4()),
                email=email,
                password_hash=password_hash,
                created_at=now,
                updated_at=now,
            )
            self._accounts[account.account_id] = account
            self.writes += 1
            return replace(account)

    def find_by_id(self, account_id: str) -> Account | None:
        account = self._accounts.get(account_id)
        if account is None or not account.is_live:
            return None
        return replace(account)

    def find_by_email(self, email: str) -> Account | None:
        account = self._live_owner(email)
        return replace(account) if account else None

    def update_account(self, account_id: str, changes: AccountChanges) -> None:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None or not account.is_live:
                raise NotFoundError()
            if changes.email is not None:
                owner = self._live_owner(changes.email)
                if owner is not None and owner.account_id != account_id:
                    raise EmailConflictError()
                account.email = changes.email
            if changes.password_hash is not None:
                account.password_hash = changes.password_hash
            account.updated_at = account.updated_at + timedelta(microseconds=1)
            self.writes += 1

    def list_accounts(
        self,
        *,
        anchor: PageAnchor | None = None,
        email_filter: str | None = None,
        limit: int = 20,
    ) -> list[Account]:
        results = [account for account in self._accounts.values() if account.is_live]
        if email_filter:
            results = [a for a in results if email_filter.lower() in a.email.lower()]
        if anchor:
            results = [a for a in results if precedes_anchor(a, anchor)]
        results.sort(key=ordering_key, reverse=True)
        return [replace(account) for account in results[:limit]]

    def soft_delete(self, account_id: str) -> None:
        self._accounts[account_id].deleted_at = datetime.now(timezone.utc)

    def ping(self) -> None:
        return None


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def token_manager(clock: FakeClock) -> TokenManager:
    return TokenManager(
        secret=TEST_SECRET,
        issuer=TEST_ISSUER,
        access_ttl_seconds=ACCESS_TTL,
        refresh_ttl_seconds=REFRESH_TTL,
        clock=clock,
    )


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def service(repository: FakeRepository, hasher: PasswordHasher, token_manager: TokenManager) -> AccountService:
    return AccountService(repository, hasher, token_manager)


@pytest.fixture
def api_client(service: AccountService, token_manager: TokenManager):
    """Provide a FastAPI test client with isolated state."""
    app = FastAPI()
    app.include_router(routes.router)
    install_error_handlers(app)
    app.state.account_service = service
    app.state.token_manager = token_manager

    with TestClient(app) as client:
        yield client
