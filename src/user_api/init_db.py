"""Database initialization script."""

import asyncio

from user_api.config import get_settings
from user_api.database import create_tables, db
from user_api.logging import configure_logging


async def init_db() -> None:
    """Create all database tables."""
    await db.connect()
    try:
        async with db.acquire() as conn:
            await create_tables(conn)
    finally:
        await db.disconnect()


def main() -> None:
    configure_logging(get_settings().log_level)
    asyncio.run(init_db())


if __name__ == "__main__":
    main()
