"""Shared fixtures: an in-memory store wired into the FastAPI app."""

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from fakes import FakeUserRepository, InMemoryStore, RecordingMailQueue
from user_api.mailer import get_mail_queue
from user_api.main import app
from user_api.repository import get_user_repository


@pytest.fixture()
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def repo(store: InMemoryStore) -> FakeUserRepository:
    return FakeUserRepository(store)


@pytest.fixture()
def mail_queue() -> RecordingMailQueue:
    return RecordingMailQueue()


@pytest_asyncio.fixture()
async def api_client(store: InMemoryStore, mail_queue: RecordingMailQueue) -> AsyncIterator[AsyncClient]:
    app.dependency_overrides[get_user_repository] = lambda: FakeUserRepository(store)
    app.dependency_overrides[get_mail_queue] = lambda: mail_queue
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            yield client
    finally:
        app.dependency_overrides.clear()
