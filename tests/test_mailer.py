"""Welcome email rendering, queuing and SMTP hand-off."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone

import aiosmtplib
import pytest

from user_api import mailer
from user_api.config import Settings
from user_api.mailer import DatabaseMailQueue, OutgoingEmail, build_welcome_email, deliver_pending_emails, send_email
from user_api.models import User

NOW = datetime(2025, 6, 20, tzinfo=timezone.utc)


def _user() -> User:
    return User(id=3, first_name="Anna <b>", last_name="Nowak", created_at=NOW, updated_at=NOW)


class _RecordingCursor:
    def __init__(self, rows=()):
        self.executed: list[tuple[str, tuple]] = []
        self.rows = list(rows)

    async def execute(self, query, params=()):
        self.executed.append((query, params))

    async def fetchall(self):
        return self.rows


class _RecordingConnection:
    def __init__(self, rows=()):
        self.cursor_obj = _RecordingCursor(rows)
        self.transactions = 0

    @asynccontextmanager
    async def transaction(self):
        self.transactions += 1
        yield

    @asynccontextmanager
    async def cursor(self):
        yield self.cursor_obj


def test_welcome_email_greets_user_by_name() -> None:
    settings = Settings(app_name="Directory", mail_from_name="Directory Team")

    message = build_welcome_email("anna@example.com", _user(), settings)

    assert message.to_email == "anna@example.com"
    assert message.subject == mailer.WELCOME_SUBJECT
    assert "Hi Anna <b> Nowak," in message.body_text
    assert "Welcome to Directory!" in message.body_text
    assert "Anna &lt;b&gt; Nowak" in message.body_html
    assert "<b> Nowak" not in message.body_html


@pytest.mark.asyncio
async def test_database_queue_inserts_pending_job() -> None:
    conn = _RecordingConnection()

    await DatabaseMailQueue(conn).enqueue("anna@example.com", _user())

    [(query, params)] = conn.cursor_obj.executed
    assert "INSERT INTO email_jobs" in query
    assert params[0] == 3
    assert params[1] == "anna@example.com"
    assert params[2] == mailer.WELCOME_SUBJECT


@pytest.mark.asyncio
async def test_send_email_uses_starttls_with_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []

    async def fake_send(message, **kwargs):
        calls.append((message, kwargs))

    monkeypatch.setattr(mailer.aiosmtplib, "send", fake_send)
    settings = Settings(smtp_host="smtp.example.com", smtp_port=587, smtp_username="bot", smtp_password="secret")

    await send_email(OutgoingEmail("anna@example.com", "Hi", "text", "<p>html</p>"), settings)

    [(message, kwargs)] = calls
    assert message["To"] == "anna@example.com"
    assert kwargs["start_tls"] is True
    assert kwargs["username"] == "bot"


@pytest.mark.asyncio
async def test_send_email_without_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []

    async def fake_send(message, **kwargs):
        calls.append(kwargs)

    monkeypatch.setattr(mailer.aiosmtplib, "send", fake_send)
    settings = Settings(smtp_host="localhost", smtp_port=1025, smtp_username="", smtp_password="")

    await send_email(OutgoingEmail("anna@example.com", "Hi", "text", "<p>html</p>"), settings)

    assert calls == [{"hostname": "localhost", "port": 1025}]


def _job(job_id: int, attempts: int = 0) -> dict:
    return {
        "id": job_id,
        "to_email": f"user{job_id}@example.com",
        "subject": "Welcome aboard!",
        "body_text": "text",
        "body_html": "<p>html</p>",
        "attempts": attempts,
    }


@pytest.mark.asyncio
async def test_deliver_pending_emails_marks_sent_and_failed(monkeypatch: pytest.MonkeyPatch) -> None:
    outcomes = {
        "user1@example.com": None,
        "user2@example.com": aiosmtplib.SMTPException("mailbox busy"),
        "user3@example.com": OSError("connection refused"),
    }
    delivered = []

    async def fake_send_email(message, settings=None):
        error = outcomes[message.to_email]
        if error is not None:
            raise error
        delivered.append(message.to_email)

    monkeypatch.setattr(mailer, "send_email", fake_send_email)
    conn = _RecordingConnection(rows=[_job(1), _job(2), _job(3, attempts=2)])
    settings = Settings(mail_batch_size=10, mail_max_attempts=3)

    sent = await deliver_pending_emails(conn, settings)

    assert sent == 1
    assert delivered == ["user1@example.com"]
    assert conn.transactions == 1
    select, mark_sent, retry, give_up = conn.cursor_obj.executed
    assert "FOR UPDATE SKIP LOCKED" in select[0]
    assert select[1] == (10,)
    assert "status = 'sent'" in mark_sent[0]
    assert "sent_at = NOW()" in mark_sent[0]
    assert mark_sent[1] == (1,)
    assert retry[1] == (1, "pending", "mailbox busy", 2)
    assert give_up[1] == (3, "failed", "connection refused", 3)


@pytest.mark.asyncio
async def test_deliver_pending_emails_with_empty_queue(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fail_if_called(message, settings=None):
        raise AssertionError("nothing should be sent")

    monkeypatch.setattr(mailer, "send_email", fail_if_called)
    conn = _RecordingConnection()

    assert await deliver_pending_emails(conn, Settings()) == 0
    assert len(conn.cursor_obj.executed) == 1
