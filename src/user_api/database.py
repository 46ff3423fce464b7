"""Database connection pool and schema management."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from user_api.config import get_settings
from user_api.logging import get_logger

logger = get_logger("database")

# Executed in order; every statement is idempotent.
SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id BIGINT GENERATED BY DEFAULT AS IDENTITY PRIMARY KEY,
        first_name VARCHAR(255) NOT NULL,
        last_name VARCHAR(255) NOT NULL,
        phone_number VARCHAR(15),
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS email_addresses (
        id BIGINT GENERATED BY DEFAULT AS IDENTITY PRIMARY KEY,
        user_id BIGINT NOT NULL REFERENCES users (id) ON DELETE CASCADE,
        email VARCHAR(255) NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        CONSTRAINT email_addresses_email_unique UNIQUE (email)
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS email_addresses_user_id_index
        ON email_addresses (user_id)
    """,
    """
    CREATE TABLE IF NOT EXISTS email_jobs (
        id BIGINT GENERATED BY DEFAULT AS IDENTITY PRIMARY KEY,
        user_id BIGINT NOT NULL REFERENCES users (id) ON DELETE CASCADE,
        to_email VARCHAR(255) NOT NULL,
        subject VARCHAR(255) NOT NULL,
        body_text TEXT NOT NULL,
        body_html TEXT NOT NULL,
        status VARCHAR(16) NOT NULL DEFAULT 'pending',
        attempts INTEGER NOT NULL DEFAULT 0,
        last_error TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        sent_at TIMESTAMPTZ
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS email_jobs_pending_index
        ON email_jobs (id) WHERE status = 'pending'
    """,
)


class Database:
    """Database connection pool manager."""

    def __init__(self):
        self.pool: AsyncConnectionPool | None = None

    async def connect(self):
        """Create a connection pool.

        Connections run in autocommit mode so that each
        ``connection.transaction()`` block is a real BEGIN/COMMIT pair.
        """
        settings = get_settings()
        self.pool = AsyncConnectionPool(
            conninfo=settings.database_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            kwargs={"autocommit": True},
            open=False,
        )
        await self.pool.open()
        logger.info("database pool opened min=%d max=%d", settings.db_pool_min_size, settings.db_pool_max_size)

    async def disconnect(self):
        """Close the connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None

    @asynccontextmanager
    async def acquire(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Acquire a connection from the pool."""
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        async with self.pool.connection() as connection:
            connection.row_factory = dict_row
            yield connection


# Global database instance
db = Database()


async def get_db_connection() -> AsyncGenerator[psycopg.AsyncConnection, None]:
    """Dependency for FastAPI routes to get a database connection."""
    async with db.acquire() as connection:
        yield connection


async def create_tables(conn: psycopg.AsyncConnection) -> None:
    """Create the users, email_addresses and email_jobs tables if missing."""
    async with conn.transaction():
        async with conn.cursor() as cur:
            for statement in SCHEMA_STATEMENTS:
                await cur.execute(statement)
    logger.info("database schema ensured (%d statements)", len(SCHEMA_STATEMENTS))
