"""User record operations."""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated

import psycopg
from fastapi import Depends

from user_api.errors import Err, NotFoundError, Ok, PersistenceError, Result, UserError, ValidationError
from user_api.logging import get_logger
from user_api.models import User
from user_api.repository import UserRepository, get_user_repository
from user_api.services.reconciler import ReconciliationPlan, apply_plan, reconcile

if TYPE_CHECKING:
    from user_api.schemas import UserCreate, UserUpdate

logger = get_logger("users")


class _ValidationFailed(Exception):
    """Carries a validation error out of a transaction block so it rolls back."""

    def __init__(self, error: ValidationError):
        super().__init__("validation failed")
        self.error = error


class UserManager:
    """Create, read, update and delete users together with their addresses."""

    def __init__(self, repo: UserRepository):
        self.repo = repo

    async def list_users(self) -> Result[list[User], PersistenceError]:
        try:
            return Ok(await self.repo.list_users())
        except psycopg.Error as exc:
            logger.exception("Failed to list users")
            return Err(PersistenceError("Failed to list users.", str(exc)))

    async def get_user(self, user_id: int) -> Result[User, UserError]:
        try:
            user = await self.repo.get_user(user_id)
        except psycopg.Error as exc:
            logger.exception("Failed to load user %s", user_id)
            return Err(PersistenceError("Failed to load user.", str(exc)))
        if user is None:
            return Err(NotFoundError())
        return Ok(user)

    async def create_user(self, payload: "UserCreate") -> Result[User, PersistenceError]:
        """Insert the user and all of its addresses, or nothing at all."""
        plan = ReconciliationPlan(inserts=[entry.email for entry in payload.email_entries()])
        try:
            async with self.repo.transaction() as repo:
                user_id = await repo.insert_user(payload.first_name, payload.last_name, payload.phone_number)
                await apply_plan(repo, user_id, plan)
                user = await repo.get_user(user_id)
        except psycopg.Error as exc:
            logger.error("Failed to create user: %s", exc)
            return Err(PersistenceError("Failed to create user.", str(exc)))

        logger.info("Created user %s with %d email addresses", user_id, len(plan.inserts))
        return Ok(user)

    async def update_user(self, user_id: int, payload: "UserUpdate") -> Result[User, UserError]:
        """Update scalar fields and reconcile addresses in one transaction."""
        try:
            async with self.repo.transaction() as repo:
                user = await repo.get_user(user_id, for_update=True)
                if user is None:
                    return Err(NotFoundError())

                outcome = await reconcile(repo, user, payload.email_entries())
                if isinstance(outcome, Err):
                    raise _ValidationFailed(outcome.error)

                await repo.update_user(user_id, payload.scalar_changes())
                updated = await repo.get_user(user_id)
        except _ValidationFailed as failure:
            return Err(failure.error)
        except psycopg.Error as exc:
            logger.error("Failed to update user %s: %s", user_id, exc)
            return Err(PersistenceError("Failed to update user.", str(exc)))

        return Ok(updated)

    async def delete_user(self, user_id: int) -> Result[None, UserError]:
        """Delete the user; its addresses go with it through the cascade."""
        try:
            async with self.repo.transaction() as repo:
                deleted = await repo.delete_user(user_id)
        except psycopg.Error as exc:
            logger.error("Error deleting user %s: %s", user_id, exc)
            return Err(PersistenceError("Failed to delete user.", str(exc)))

        if not deleted:
            return Err(NotFoundError())
        logger.info("Deleted user %s", user_id)
        return Ok(None)


async def get_user_manager(
    repo: Annotated[UserRepository, Depends(get_user_repository)],
) -> UserManager:
    return UserManager(repo)
