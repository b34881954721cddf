"""Apply the SQL files under ``migrations/`` to the configured database.

Usage::

    python -m account_service.migrate            # apply pending migrations
    python -m account_service.migrate --status   # list applied/pending files
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

import psycopg

from .config import get_settings
from .logging_config import configure_logging

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

_BOOKKEEPING_SQL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    name       TEXT PRIMARY KEY,
    applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""


def discover_migrations(directory: Path = MIGRATIONS_DIR) -> list[Path]:
    """Return migration files sorted by their numeric prefix."""
    return sorted(directory.glob("*.sql"), key=lambda path: path.name)


def pending_migrations(migrations: list[Path], applied: set[str]) -> list[Path]:
    return [path for path in migrations if path.name not in applied]


def _applied_names(conn: psycopg.Connection) -> set[str]:
    conn.execute(_BOOKKEEPING_SQL)
    rows = conn.execute("SELECT name FROM schema_migrations").fetchall()
    return {row[0] for row in rows}


def apply_migrations(database_url: str, directory: Path = MIGRATIONS_DIR) -> list[str]:
    """Apply every pending migration, each in its own transaction."""
    applied_now: list[str] = []
    with psycopg.connect(database_url) as conn:
        applied = _applied_names(conn)
        conn.commit()
        for path in pending_migrations(discover_migrations(directory), applied):
            with conn.transaction():
                conn.execute(path.read_text(encoding="utf-8"))
                conn.execute("INSERT INTO schema_migrations (name) VALUES (%s)", (path.name,))
            logger.info("applied migration %s", path.name)
            applied_now.append(path.name)
    return applied_now


def migration_status(database_url: str, directory: Path = MIGRATIONS_DIR) -> list[tuple[str, bool]]:
    with psycopg.connect(database_url) as conn:
        applied = _applied_names(conn)
    return [(path.name, path.name in applied) for path in discover_migrations(directory)]


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--status", action="store_true", help="list migrations instead of applying them")
    parser.add_argument("--database-url", default=None, help="override POSTGRES_URL")
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings)
    database_url = args.database_url or settings.database_url

    if args.status:
        for name, done in migration_status(database_url):
            print(f"{'applied' if done else 'pending':<8} {name}")
        return 0

    applied = apply_migrations(database_url)
    if not applied:
        logger.info("database schema is up to date")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
