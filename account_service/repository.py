"""Database repository for account data."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator
import uuid

import psycopg
from psycopg import errors as pg_errors
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool

from .domain.account import Account
from .domain.contracts import AccountChanges
from .domain.pagination import PageAnchor
from .errors import AlreadyExistsError, EmailConflictError, NotFoundError, StorageError

ACCOUNT_COLUMNS = "account_id, email, password_hash, created_at, updated_at, deleted_at"
LIVE = "deleted_at IS NULL"


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so ``value`` is matched literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class AccountRepository:
    """Postgres-backed account directory.

    Soft-deleted rows are invisible to every lookup, and the partial unique
    index on ``lower(email)`` backs the service-side uniqueness checks.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    @contextmanager
    def _connection(self) -> Iterator[psycopg.Connection]:
        try:
            with self._pool.connection() as conn:
                yield conn
        except psycopg.Error as exc:
            raise StorageError(details={"operation": "database"}) from exc

    def ping(self) -> None:
        """Round-trip a trivial query; raises ``StorageError`` when unreachable."""
        with self._connection() as conn:
            conn.execute("SELECT 1")

    def create_account(self, *, email: str, password_hash: str) -> Account:
        """Insert a live account and return it."""
        account_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        with self._connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                try:
                    cur.execute(
                        f"""
                        INSERT INTO accounts (account_id, email, password_hash, created_at, updated_at)
                        VALUES (%s::uuid, %s, %s, %s, %s)
                        RETURNING {ACCOUNT_COLUMNS}
                        """,
                        (account_id, email, password_hash, now, now),
                    )
                except pg_errors.UniqueViolation as exc:
                    conn.rollback()
                    raise AlreadyExistsError() from exc
                record = cur.fetchone()
                conn.commit()
        return self._map_record(record)

    def find_by_id(self, account_id: str) -> Account | None:
        """Fetch a live account by identifier or return ``None``."""
        with self._connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"SELECT {ACCOUNT_COLUMNS} FROM accounts WHERE account_id = %s::uuid AND {LIVE}",
                    (account_id,),
                )
                row = cur.fetchone()
        return self._map_record(row) if row else None

    def find_by_email(self, email: str) -> Account | None:
        """Fetch the live account owning ``email`` (case-insensitive) or return ``None``."""
        with self._connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"SELECT {ACCOUNT_COLUMNS} FROM accounts WHERE lower(email) = lower(%s) AND {LIVE}",
                    (email,),
                )
                row = cur.fetchone()
        return self._map_record(row) if row else None

    def update_account(self, account_id: str, changes: AccountChanges) -> None:
        """Overwrite the supplied fields of a live account."""
        assignments = ["updated_at = %s"]
        params: list[Any] = [datetime.now(timezone.utc)]
        if changes.email is not None:
            assignments.append("email = %s")
            params.append(changes.email)
        if changes.password_hash is not None:
            assignments.append("password_hash = %s")
            params.append(changes.password_hash)
        params.append(account_id)

        with self._connection() as conn:
            with conn.cursor() as cur:
                try:
                    cur.execute(
                        f"UPDATE accounts SET {', '.join(assignments)} WHERE account_id = %s::uuid AND {LIVE}",
                        params,
                    )
                except pg_errors.UniqueViolation as exc:
                    conn.rollback()
                    raise EmailConflictError() from exc
                updated = cur.rowcount
                conn.commit()
        if updated == 0:
            raise NotFoundError()

    def list_accounts(
        self,
        *,
        anchor: PageAnchor | None = None,
        email_filter: str | None = None,
        limit: int = 20,
    ) -> list[Account]:
        """Return live accounts after ``anchor`` ordered newest first."""
        clauses = [LIVE]
        params: list[Any] = []

        if email_filter:
            clauses.append("email ILIKE %s ESCAPE '\\'")
            params.append(f"%{escape_like(email_filter)}%")
        if anchor:
            clauses.append("(created_at, account_id) < (%s, %s::uuid)")
            params.extend((anchor.created_at, anchor.account_id))

        where_sql = " AND ".join(clauses)
        query = f"""
            SELECT {ACCOUNT_COLUMNS}
            FROM accounts
            WHERE {where_sql}
            ORDER BY created_at DESC, account_id DESC
            LIMIT %s
        """
        params.append(limit)

        with self._connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query, params)
                rows = cur.fetchall()
        return [self._map_record(row) for row in rows]

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            account_id=str(row[0]),
            email=row[1],
            password_hash=row[2],
            created_at=row[3],
            updated_at=row[4],
            deleted_at=row[5],
        )
