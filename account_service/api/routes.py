"""HTTP route definitions for the account service."""

from __future__ import annotations

from datetime import datetime
import uuid

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, EmailStr, Field, field_validator

from ..domain.account import Account
from ..domain.contracts import SignUpInput, UpdateAccountInput
from ..domain.service import AccountService
from ..errors import MalformedError
from ..security.gate import Identity, require_identity
from ..security.passwords import MAX_PASSWORD_BYTES
from ..security.tokens import TokenPair

router = APIRouter(prefix="/api/v1")

MAX_EMAIL_LENGTH = 255
MIN_PASSWORD_LENGTH = 8


def _check_email_length(value: object) -> object:
    if isinstance(value, str) and len(value) > MAX_EMAIL_LENGTH:
        raise ValueError(f"email must be at most {MAX_EMAIL_LENGTH} characters")
    return value


def _check_password_bytes(value: str | None) -> str | None:
    if value is not None and len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
    return value


class CredentialsRequest(BaseModel):
    """Email/password pair accepted by sign-up and sign-in."""

    email: EmailStr
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_BYTES)

    @field_validator("email", mode="before")
    @classmethod
    def email_length(cls, value: object) -> object:
        return _check_email_length(value)

    @field_validator("password")
    @classmethod
    def password_bytes(cls, value: str | None) -> str | None:
        return _check_password_bytes(value)


class UpdateUserRequest(BaseModel):
    """Partial update; omitted fields are left untouched."""

    email: EmailStr | None = None
    password: str | None = Field(default=None, min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_BYTES)

    @field_validator("email", mode="before")
    @classmethod
    def email_length(cls, value: object) -> object:
        return _check_email_length(value)

    @field_validator("password")
    @classmethod
    def password_bytes(cls, value: str | None) -> str | None:
        return _check_password_bytes(value)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class UserResponse(BaseModel):
    """Serialised representation of an `Account`; the password hash never leaves."""

    id: str
    email: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, account: Account) -> "UserResponse":
        """Build a response model from the domain aggregate."""
        return cls(
            id=account.account_id,
            email=account.email,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )


class SignUpResponse(BaseModel):
    message: str
    account: UserResponse


class TokenResponse(BaseModel):
    """Token issuance response containing the bearer tokens and their lifetimes."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_expires_in: int

    @classmethod
    def from_pair(cls, pair: TokenPair) -> "TokenResponse":
        return cls(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_in=pair.access_expires_in,
            refresh_expires_in=pair.refresh_expires_in,
        )


class Pagination(BaseModel):
    limit: int
    next_cursor: str | None = None


class UserListResponse(BaseModel):
    """Envelope for a page of accounts."""

    users: list[UserResponse]
    pagination: Pagination


def get_service(request: Request) -> AccountService:
    """Resolve the `AccountService` stored on the FastAPI application state."""
    service: AccountService = request.app.state.account_service
    return service


def _parse_account_id(raw: str) -> str:
    try:
        return str(uuid.UUID(raw))
    except ValueError as exc:
        raise MalformedError("invalid user id format") from exc


@router.post("/auth/signup", response_model=SignUpResponse, status_code=status.HTTP_201_CREATED)
def sign_up(
    payload: CredentialsRequest,
    service: AccountService = Depends(get_service),
) -> SignUpResponse:
    """Register an account. The caller signs in separately to obtain tokens."""
    account = service.sign_up(SignUpInput(email=payload.email, password=payload.password))
    return SignUpResponse(message="user created successfully", account=UserResponse.from_domain(account))


@router.post("/auth/signin", response_model=TokenResponse)
def sign_in(
    payload: CredentialsRequest,
    service: AccountService = Depends(get_service),
) -> TokenResponse:
    """Exchange credentials for an access/refresh token pair."""
    return TokenResponse.from_pair(service.sign_in(payload.email, payload.password))


@router.post("/auth/refresh", response_model=TokenResponse)
def refresh(
    payload: RefreshRequest,
    service: AccountService = Depends(get_service),
) -> TokenResponse:
    return TokenResponse.from_pair(service.refresh(payload.refresh_token))


@router.get("/users", response_model=UserListResponse, dependencies=[Depends(require_identity)])
def list_users(
    last_id: str | None = Query(default=None),
    email: str | None = Query(default=None),
    limit: str | None = Query(default=None),
    service: AccountService = Depends(get_service),
) -> UserListResponse:
    """Return a page of accounts, newest first, optionally filtered by email."""
    page = service.list_accounts(cursor=last_id, email_filter=email, limit=limit)
    return UserListResponse(
        users=[UserResponse.from_domain(account) for account in page.accounts],
        pagination=Pagination(limit=page.limit, next_cursor=page.next_cursor),
    )


@router.get("/users/{account_id}", response_model=UserResponse)
def get_user(
    account_id: str,
    identity: Identity = Depends(require_identity),
    service: AccountService = Depends(get_service),
) -> UserResponse:
    """Retrieve the caller's own account."""
    account = service.get_account(identity, _parse_account_id(account_id))
    return UserResponse.from_domain(account)


@router.put("/users/{account_id}", response_model=UserResponse)
def update_user(
    account_id: str,
    payload: UpdateUserRequest,
    identity: Identity = Depends(require_identity),
    service: AccountService = Depends(get_service),
) -> UserResponse:
    """Update the caller's own email and/or password."""
    account = service.update_account(
        identity,
        _parse_account_id(account_id),
        UpdateAccountInput(email=payload.email, password=payload.password),
    )
    return UserResponse.from_domain(account)
