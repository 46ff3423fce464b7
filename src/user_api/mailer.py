"""Welcome email rendering, the durable mail queue and SMTP delivery."""

from __future__ import annotations

import html
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Annotated, Protocol

import aiosmtplib
import psycopg
from fastapi import Depends

from user_api.config import Settings, get_settings
from user_api.database import get_db_connection
from user_api.logging import get_logger
from user_api.models import User

logger = get_logger("mailer")

WELCOME_SUBJECT = "Welcome aboard!"


@dataclass(frozen=True)
class OutgoingEmail:
    to_email: str
    subject: str
    body_text: str
    body_html: str


class MailQueue(Protocol):
    """Port for queuing email for later asynchronous delivery."""

    async def enqueue(self, to_email: str, user: User) -> None:
        """Queue a welcome email for ``user`` addressed to ``to_email``."""
        ...


def create_welcome_email_text(user: User, settings: Settings) -> str:
    """Create plain text email body for the welcome message."""

    return f"""Hi {user.full_name},

Welcome to {settings.app_name}! Your account is ready.

This message was sent to every address registered for your account.

---
{settings.mail_from_name}
"""


def create_welcome_email_html(user: User, settings: Settings) -> str:
    """Create HTML email body for the welcome message."""

    name = html.escape(user.full_name)
    app_name = html.escape(settings.app_name)
    sender = html.escape(settings.mail_from_name)
    return f"""<!DOCTYPE html>
<html>
<head>
  <style>
    body {{ font-family: Arial, sans-serif; line-height: 1.6; }}
    .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
  </style>
</head>
<body>
  <div class="container">
    <h2>Welcome, {name}!</h2>
    <p>Welcome to {app_name}! Your account is ready.</p>
    <p><small>This message was sent to every address registered for your account.</small></p>
    <hr>
    <p><small>{sender}</small></p>
  </div>
</body>
</html>"""


def build_welcome_email(to_email: str, user: User, settings: Settings | None = None) -> OutgoingEmail:
    settings = settings or get_settings()
    return OutgoingEmail(
        to_email=to_email,
        subject=WELCOME_SUBJECT,
        body_text=create_welcome_email_text(user, settings),
        body_html=create_welcome_email_html(user, settings),
    )


class DatabaseMailQueue:
    """Queue backed by the ``email_jobs`` table.

    Each enqueue is its own committed insert; nothing is sent from the
    request that queues the message.
    """

    def __init__(self, conn: psycopg.AsyncConnection):
        self._conn = conn

    async def enqueue(self, to_email: str, user: User) -> None:
        message = build_welcome_email(to_email, user)
        async with self._conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO email_jobs (user_id, to_email, subject, body_text, body_html)
                VALUES (%s, %s, %s, %s, %s)
                """,
                (user.id, message.to_email, message.subject, message.body_text, message.body_html),
            )
        logger.info("Queued welcome email for user %s to %s", user.id, to_email)


async def get_mail_queue(
    conn: Annotated[psycopg.AsyncConnection, Depends(get_db_connection)],
) -> MailQueue:
    """Dependency providing the mail queue for the request."""
    return DatabaseMailQueue(conn)


async def send_email(message: OutgoingEmail, settings: Settings | None = None) -> None:
    """Send one message over SMTP; raises ``aiosmtplib.SMTPException`` on failure."""
    settings = settings or get_settings()

    mime = MIMEMultipart("alternative")
    mime["Subject"] = message.subject
    mime["From"] = f"{settings.mail_from_name} <{settings.mail_from_email}>"
    mime["To"] = message.to_email
    mime.attach(MIMEText(message.body_text, "plain"))
    mime.attach(MIMEText(message.body_html, "html"))

    if settings.smtp_username and settings.smtp_password:
        # Authenticated SMTP uses STARTTLS
        await aiosmtplib.send(
            mime,
            hostname=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=False,
            start_tls=True,
        )
    else:
        await aiosmtplib.send(mime, hostname=settings.smtp_host, port=settings.smtp_port)


async def deliver_pending_emails(conn: psycopg.AsyncConnection, settings: Settings | None = None) -> int:
    """Send up to ``mail_batch_size`` pending jobs and return how many were sent.

    Rows are claimed with ``SKIP LOCKED`` so several workers can drain the
    queue at once. A failed send bumps ``attempts``; once it reaches
    ``mail_max_attempts`` the job is marked ``failed``.
    """
    settings = settings or get_settings()
    sent = 0
    async with conn.transaction():
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT id, to_email, subject, body_text, body_html, attempts
                FROM email_jobs
                WHERE status = 'pending'
                ORDER BY id
                LIMIT %s
                FOR UPDATE SKIP LOCKED
                """,
                (settings.mail_batch_size,),
            )
            jobs = await cur.fetchall()

            for job in jobs:
                message = OutgoingEmail(job["to_email"], job["subject"], job["body_text"], job["body_html"])
                try:
                    await send_email(message, settings)
                except (aiosmtplib.SMTPException, OSError) as exc:
                    attempts = job["attempts"] + 1
                    status = "failed" if attempts >= settings.mail_max_attempts else "pending"
                    logger.error("Failed to send email job %s to %s: %s", job["id"], job["to_email"], exc)
                    await cur.execute(
                        "UPDATE email_jobs SET attempts = %s, status = %s, last_error = %s WHERE id = %s",
                        (attempts, status, str(exc), job["id"]),
                    )
                    continue

                await cur.execute(
                    "UPDATE email_jobs SET status = 'sent', attempts = attempts + 1, sent_at = NOW() WHERE id = %s",
                    (job["id"],),
                )
                sent += 1

    if sent:
        logger.info("Delivered %d queued emails", sent)
    return sent
