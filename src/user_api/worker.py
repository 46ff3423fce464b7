"""Background process that delivers queued emails."""

from __future__ import annotations

import asyncio

from user_api.config import get_settings
from user_api.database import db
from user_api.logging import configure_logging, get_logger
from user_api.mailer import deliver_pending_emails

logger = get_logger("worker")


async def run_worker(*, once: bool = False) -> None:
    """Poll ``email_jobs`` and deliver pending messages until cancelled."""
    settings = get_settings()
    await db.connect()
    try:
        while True:
            async with db.acquire() as conn:
                sent = await deliver_pending_emails(conn, settings)
            if once:
                break
            if not sent:
                await asyncio.sleep(settings.mail_poll_interval_seconds)
    finally:
        await db.disconnect()


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("mail worker starting poll_interval=%ss", settings.mail_poll_interval_seconds)
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        logger.info("mail worker stopped")


if __name__ == "__main__":
    main()
