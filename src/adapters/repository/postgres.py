"""
PostgreSQL repository adapter - Implements AccountRepository protocol.

This module provides the PostgreSQL implementation of the domain's
account port using psycopg3 (async pool) with raw SQL, plus the shared
helpers and migration runner used by the other PostgreSQL adapters.

Atomicity:
- Every method commits one unit of work.
- Unique-index violations surface as the domain's AlreadyExists.
- apply_completion_stats() updates both account rows in a single
  transaction with in-place increments, so counters are never half
  applied and concurrent completions never overwrite each other.
"""

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

from psycopg import errors
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from src.domain.exceptions import AlreadyExists
from src.domain.models import Account, NewAccount, Role

logger = logging.getLogger(__name__)

_ACCOUNT_COLUMNS = """
    id, name, email, role, password_hash, external_id, is_email_verified,
    email_otp, email_otp_expires_at, completed_jobs, total_earnings,
    total_spent, created_at
"""


def as_uuid(value: str) -> uuid.UUID | None:
    """Parse an entity id; malformed ids are treated as absent."""
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def id_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _row_to_account(row: dict[str, Any]) -> Account:
    return Account(
        id=str(row["id"]),
        name=row["name"],
        email=row["email"],
        role=Role(row["role"]),
        password_hash=row["password_hash"],
        is_email_verified=row["is_email_verified"],
        external_id=row["external_id"],
        email_otp=row["email_otp"],
        email_otp_expires_at=row["email_otp_expires_at"],
        completed_jobs=row["completed_jobs"],
        total_earnings=Decimal(row["total_earnings"]),
        total_spent=Decimal(row["total_spent"]),
        created_at=row["created_at"],
    )


class PostgresAccountRepository:
    """
    Implements AccountRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries.
    """

    def __init__(self, pool: AsyncConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 AsyncConnectionPool for database connections
        """
        self._pool = pool

    async def get(self, account_id: str) -> Account | None:
        key = as_uuid(account_id)
        if key is None:
            return None
        return await self._fetch_one(f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE id = %s", key)

    async def get_by_email(self, email: str) -> Account | None:
        return await self._fetch_one(
            f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE email = %s", email
        )

    async def get_by_external_id(self, external_id: str) -> Account | None:
        return await self._fetch_one(
            f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE external_id = %s", external_id
        )

    async def create(self, account: NewAccount) -> Account:
        """
        Insert a new account.

        The UNIQUE constraint on email (and external_id) is the
        duplicate guard; no pre-check is made.

        Raises:
            AlreadyExists: If the email or external id is taken
        """
        sql = f"""
            INSERT INTO accounts (id, name, email, role, password_hash, external_id, is_email_verified)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING {_ACCOUNT_COLUMNS}
        """
        params = (
            uuid.uuid4(),
            account.name,
            account.email,
            account.role.value,
            account.password_hash,
            account.external_id,
            account.is_email_verified,
        )

        async with self._pool.connection() as conn:
            try:
                async with conn.cursor(row_factory=dict_row) as cursor:
                    await cursor.execute(sql, params)
                    row = await cursor.fetchone()
                await conn.commit()
            except errors.UniqueViolation:
                await conn.rollback()
                raise AlreadyExists(account.email) from None

        return _row_to_account(row)

    async def link_external_id(self, account_id: str, external_id: str) -> None:
        await self._execute(
            "UPDATE accounts SET external_id = %s WHERE id = %s AND external_id IS NULL",
            (external_id, as_uuid(account_id)),
        )

    async def set_verification_code(
        self, account_id: str, code: str, expires_at: datetime
    ) -> None:
        await self._execute(
            "UPDATE accounts SET email_otp = %s, email_otp_expires_at = %s WHERE id = %s",
            (code, expires_at, as_uuid(account_id)),
        )

    async def mark_verified(self, account_id: str) -> None:
        await self._execute(
            """
            UPDATE accounts
            SET is_email_verified = TRUE, email_otp = NULL, email_otp_expires_at = NULL
            WHERE id = %s
            """,
            (as_uuid(account_id),),
        )

    async def apply_completion_stats(
        self, worker_id: str, client_id: str, amount: Decimal
    ) -> None:
        """
        Credit a completed contract to both parties in one transaction.

        Raises:
            RuntimeError: If either account row is missing (transaction rolled back)
        """
        worker_sql = """
            UPDATE accounts
            SET completed_jobs = completed_jobs + 1,
                total_earnings = total_earnings + %s
            WHERE id = %s
        """
        client_sql = """
            UPDATE accounts
            SET total_spent = total_spent + %s
            WHERE id = %s
        """

        async with self._pool.connection() as conn:
            async with conn.transaction(), conn.cursor() as cursor:
                await cursor.execute(worker_sql, (amount, as_uuid(worker_id)))
                if cursor.rowcount != 1:
                    raise RuntimeError(f"Worker account {worker_id} not found")
                await cursor.execute(client_sql, (amount, as_uuid(client_id)))
                if cursor.rowcount != 1:
                    raise RuntimeError(f"Client account {client_id} not found")

    async def _fetch_one(self, sql: str, param: Any) -> Account | None:
        async with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            await cursor.execute(sql, (param,))
            row = await cursor.fetchone()
        return None if row is None else _row_to_account(row)

    async def _execute(self, sql: str, params: tuple) -> int:
        async with self._pool.connection() as conn, conn.cursor() as cursor:
            await cursor.execute(sql, params)
            await conn.commit()
            return cursor.rowcount


async def run_migrations(pool: AsyncConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 AsyncConnectionPool instance
    """
    # Structure: src/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning("Migrations directory not found: %s", migrations_dir)
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info("Running %d migration(s)", len(sql_files))

    for sql_file in sql_files:
        logger.info("Executing migration: %s", sql_file.name)
        try:
            sql_content = sql_file.read_text()

            async with pool.connection() as conn:
                await conn.execute(sql_content)
                await conn.commit()

            logger.info("Migration complete: %s", sql_file.name)
        except Exception as e:
            logger.error("Migration failed: %s - %s", sql_file.name, e)
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
