"""Queue welcome emails for a user."""

from __future__ import annotations

from typing import Annotated, Union

import psycopg
from fastapi import Depends

from user_api.errors import Err, NotFoundError, Ok, OperationError, PersistenceError, PreconditionError, Result
from user_api.logging import get_logger
from user_api.mailer import MailQueue, get_mail_queue
from user_api.repository import UserRepository, get_user_repository

logger = get_logger("notifications")

DispatchError = Union[NotFoundError, PreconditionError, PersistenceError, OperationError]


class WelcomeEmailDispatcher:
    """Queue one welcome email per address the user owns.

    Jobs already queued stay queued when a later enqueue fails.
    """

    def __init__(self, repo: UserRepository, queue: MailQueue):
        self.repo = repo
        self.queue = queue

    async def send_welcome_email(self, user_id: int) -> Result[str, DispatchError]:
        try:
            user = await self.repo.get_user(user_id)
        except psycopg.Error as exc:
            logger.exception("Failed to load user %s", user_id)
            return Err(PersistenceError("Failed to load user.", str(exc)))
        if user is None:
            return Err(NotFoundError())
        if not user.email_addresses:
            return Err(PreconditionError("User has no email addresses."))

        try:
            for address in user.email_addresses:
                await self.queue.enqueue(address.email, user)
        except Exception as exc:
            logger.error("Error queuing welcome email for user %s: %s", user.id, exc)
            return Err(OperationError("An error occurred while queuing the email.", str(exc)))

        return Ok(f"Welcome email has been queued for user {user.full_name}.")


async def get_welcome_dispatcher(
    repo: Annotated[UserRepository, Depends(get_user_repository)],
    queue: Annotated[MailQueue, Depends(get_mail_queue)],
) -> WelcomeEmailDispatcher:
    return WelcomeEmailDispatcher(repo, queue)
