"""Account service orchestrating persistence, credential checks, and token issuance."""

from __future__ import annotations

import logging

from .account import Account, normalize_email
from .contracts import AccountChanges, SignUpInput, UpdateAccountInput
from .pagination import AccountPage, PageAnchor, build_page, normalize_limit, parse_cursor
from ..errors import (
    AccountServiceError,
    AlreadyExistsError,
    EmailConflictError,
    ForbiddenError,
    InvalidCredentialError,
    InvalidCursorError,
    NotFoundError,
    UnauthenticatedError,
)
from ..repository import AccountRepository
from ..security.gate import Identity
from ..security.passwords import PasswordHasher
from ..security.tokens import TokenKind, TokenManager, TokenPair

logger = logging.getLogger(__name__)


class AccountService:
    """Account workflows backed by the account directory.

    The service keeps no per-request state; every method reads what it needs
    from the directory and returns.
    """

    def __init__(
        self,
        repository: AccountRepository,
        hasher: PasswordHasher,
        tokens: TokenManager,
    ) -> None:
        """Store dependencies used to orchestrate persistence and token issuance."""
        self._repository = repository
        self._hasher = hasher
        self._tokens = tokens

    def sign_up(self, payload: SignUpInput) -> Account:
        """Register a new account. No token is issued."""
        email = normalize_email(payload.email)
        if self._repository.find_by_email(email) is not None:
            raise AlreadyExistsError()

        password_hash = self._hasher.hash(payload.password)
        account = self._repository.create_account(email=email, password_hash=password_hash)
        logger.info("account created", extra={"account_id": account.account_id})
        return account

    def sign_in(self, email: str, password: str) -> TokenPair:
        """Exchange credentials for an access/refresh token pair."""
        account = self._repository.find_by_email(normalize_email(email))
        if account is None:
            logger.warning("sign-in rejected: unknown email")
            self._hasher.reject(password)

        try:
            self._hasher.verify(account.password_hash, password)
        except InvalidCredentialError:
            logger.warning("sign-in rejected: password mismatch", extra={"account_id": account.account_id})
            raise

        if self._hasher.needs_rehash(account.password_hash):
            self._repository.update_account(
                account.account_id,
                AccountChanges(password_hash=self._hasher.hash(password)),
            )
            logger.info("password digest upgraded", extra={"account_id": account.account_id})

        logger.info("sign-in succeeded", extra={"account_id": account.account_id})
        return self._tokens.issue_pair(account.account_id, account.email)

    def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new token pair.

        The account must still be live; its current email is embedded in the new
        tokens. Without a revocation list the old refresh token stays valid
        until it expires. Any token that fails validation, including an access
        token, is rejected as unauthenticated.
        """
        try:
            claims = self._tokens.validate(refresh_token, TokenKind.refresh)
        except AccountServiceError as exc:
            logger.info("rejected refresh token: %s", exc.code)
            raise UnauthenticatedError("invalid or expired refresh token") from exc
        account = self._repository.find_by_id(claims.account_id)
        if account is None:
            raise InvalidCredentialError("account unavailable")
        return self._tokens.issue_pair(account.account_id, account.email)

    def get_account(self, identity: Identity, account_id: str) -> Account:
        """Return the caller's own account."""
        self._ensure_owner(identity, account_id)
        account = self._repository.find_by_id(account_id)
        if account is None:
            raise NotFoundError()
        return account

    def update_account(
        self, identity: Identity, account_id: str, payload: UpdateAccountInput
    ) -> Account:
        """Apply a partial update to the caller's own account.

        Only supplied fields change. When nothing differs from the stored record
        the record is returned without a write; otherwise it is re-read after the
        write so the caller sees the persisted state.
        """
        self._ensure_owner(identity, account_id)
        account = self._repository.find_by_id(account_id)
        if account is None:
            raise NotFoundError()

        changes = AccountChanges()
        if payload.email:
            email = normalize_email(payload.email)
            if email != account.email:
                owner = self._repository.find_by_email(email)
                if owner is not None and owner.account_id != account.account_id:
                    raise EmailConflictError()
                changes.email = email

        if payload.password:
            changes.password_hash = self._hasher.hash(payload.password)

        if changes.is_empty():
            return account

        self._repository.update_account(account_id, changes)
        updated = self._repository.find_by_id(account_id)
        if updated is None:
            raise NotFoundError()
        logger.info(
            "account updated",
            extra={
                "account_id": account_id,
                "fields": [name for name in ("email", "password_hash") if getattr(changes, name)],
            },
        )
        return updated

    def list_accounts(
        self,
        *,
        cursor: str | None = None,
        email_filter: str | None = None,
        limit: object = None,
    ) -> AccountPage:
        """Return one page of live accounts, newest first.

        Parameters
        ----------
        cursor:
            Id of the last account on the previous page, as returned in
            ``next_cursor``.
        email_filter:
            Optional case-insensitive substring the email must contain.
        limit:
            Requested page size; unusable values fall back to the default.
        """
        page_size = normalize_limit(limit)
        anchor: PageAnchor | None = None
        cursor_id = parse_cursor(cursor)
        if cursor_id is not None:
            last = self._repository.find_by_id(cursor_id)
            if last is None:
                raise InvalidCursorError("cursor does not reference an existing account")
            anchor = PageAnchor.of(last)

        needle = email_filter.strip() if email_filter else None
        accounts = self._repository.list_accounts(
            anchor=anchor,
            email_filter=needle or None,
            limit=page_size,
        )
        return build_page(accounts, page_size)

    def _ensure_owner(self, identity: Identity, account_id: str) -> None:
        if identity.account_id != account_id:
            logger.warning(
                "cross-account access denied",
                extra={"account_id": identity.account_id, "target_id": account_id},
            )
            raise ForbiddenError()
