"""SQL access to users and their email addresses."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from contextlib import asynccontextmanager
from typing import Annotated, AsyncIterator

import psycopg
from fastapi import Depends
from psycopg import sql

from user_api.database import get_db_connection
from user_api.models import EmailAddress, User

_USER_COLUMNS = "id, first_name, last_name, phone_number, created_at, updated_at"
_EMAIL_COLUMNS = "id, user_id, email, created_at, updated_at"
_UPDATABLE_USER_COLUMNS = frozenset({"first_name", "last_name", "phone_number"})


class UserRepository:
    """Reads and writes users over a single pooled connection.

    Writes are only atomic inside :meth:`transaction`; the block commits when
    it exits normally and rolls back when any exception escapes it.
    """

    def __init__(self, conn: psycopg.AsyncConnection):
        self._conn = conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["UserRepository"]:
        async with self._conn.transaction():
            yield self

    async def list_users(self) -> list[User]:
        async with self._conn.cursor() as cur:
            await cur.execute(f"SELECT {_USER_COLUMNS} FROM users ORDER BY id")
            rows = await cur.fetchall()
        return await self._attach_emails(rows)

    async def get_user(self, user_id: int, *, for_update: bool = False) -> User | None:
        """Load one user with its addresses.

        ``for_update`` locks the user row until the surrounding transaction
        ends, serializing concurrent updates of the same user.
        """
        query = f"SELECT {_USER_COLUMNS} FROM users WHERE id = %s"
        if for_update:
            query += " FOR UPDATE"
        async with self._conn.cursor() as cur:
            await cur.execute(query, (user_id,))
            row = await cur.fetchone()
        if row is None:
            return None
        users = await self._attach_emails([row])
        return users[0]

    async def insert_user(self, first_name: str, last_name: str, phone_number: str | None) -> int:
        async with self._conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO users (first_name, last_name, phone_number)
                VALUES (%s, %s, %s)
                RETURNING id
                """,
                (first_name, last_name, phone_number),
            )
            row = await cur.fetchone()
        return row["id"]

    async def update_user(self, user_id: int, changes: Mapping[str, str | None]) -> None:
        unknown = set(changes) - _UPDATABLE_USER_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update user columns: {sorted(unknown)}")
        if not changes:
            return
        assignments = sql.SQL(", ").join(
            sql.SQL("{} = {}").format(sql.Identifier(column), sql.Placeholder()) for column in changes
        )
        query = sql.SQL("UPDATE users SET {}, updated_at = NOW() WHERE id = %s").format(assignments)
        async with self._conn.cursor() as cur:
            await cur.execute(query, (*changes.values(), user_id))

    async def delete_user(self, user_id: int) -> bool:
        async with self._conn.cursor() as cur:
            await cur.execute("DELETE FROM users WHERE id = %s", (user_id,))
            return cur.rowcount > 0

    async def insert_email(self, user_id: int, email: str) -> None:
        async with self._conn.cursor() as cur:
            await cur.execute(
                "INSERT INTO email_addresses (user_id, email) VALUES (%s, %s)",
                (user_id, email),
            )

    async def update_email(self, email_id: int, user_id: int, email: str) -> int:
        async with self._conn.cursor() as cur:
            await cur.execute(
                """
                UPDATE email_addresses
                SET email = %s, updated_at = NOW()
                WHERE id = %s AND user_id = %s
                """,
                (email, email_id, user_id),
            )
            return cur.rowcount

    async def delete_emails(self, user_id: int, email_ids: Iterable[int]) -> int:
        ids = list(email_ids)
        if not ids:
            return 0
        async with self._conn.cursor() as cur:
            await cur.execute(
                "DELETE FROM email_addresses WHERE user_id = %s AND id = ANY(%s)",
                (user_id, ids),
            )
            return cur.rowcount

    async def find_emails(self, emails: Iterable[str]) -> list[EmailAddress]:
        """Return every stored address, of any user, matching one of ``emails``."""
        values = list(emails)
        if not values:
            return []
        async with self._conn.cursor() as cur:
            await cur.execute(
                f"SELECT {_EMAIL_COLUMNS} FROM email_addresses WHERE email = ANY(%s) ORDER BY id",
                (values,),
            )
            rows = await cur.fetchall()
        return [EmailAddress.model_validate(row) for row in rows]

    async def _attach_emails(self, user_rows: list[dict]) -> list[User]:
        if not user_rows:
            return []
        async with self._conn.cursor() as cur:
            await cur.execute(
                f"SELECT {_EMAIL_COLUMNS} FROM email_addresses WHERE user_id = ANY(%s) ORDER BY id",
                ([row["id"] for row in user_rows],),
            )
            email_rows = await cur.fetchall()

        by_user: dict[int, list[EmailAddress]] = defaultdict(list)
        for row in email_rows:
            by_user[row["user_id"]].append(EmailAddress.model_validate(row))
        return [User.model_validate({**row, "email_addresses": by_user[row["id"]]}) for row in user_rows]


async def get_user_repository(
    conn: Annotated[psycopg.AsyncConnection, Depends(get_db_connection)],
) -> UserRepository:
    """Dependency providing a repository bound to the request's connection."""
    return UserRepository(conn)
