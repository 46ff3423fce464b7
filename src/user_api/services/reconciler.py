"""Reconcile a user's stored email addresses with a requested set.

A request lists the addresses a user should own after the call. Entries that
carry an id refer to an address the user already owns and may change its
value; entries without one are new. Stored addresses the request does not
mention are removed. Validation runs before any write and reports every
offending entry by its position in the request, e.g. ``emails.2.email``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Union

from user_api.errors import Err, Ok, Result, ValidationError
from user_api.logging import get_logger
from user_api.models import EmailAddress, User

if TYPE_CHECKING:
    from user_api.repository import UserRepository

logger = get_logger("reconciler")

TAKEN_MESSAGE = "The email address '{email}' has already been taken."
INVALID_ID_MESSAGE = "The selected email address id is invalid."
DUPLICATE_ID_MESSAGE = "The email address id has already been used in this request."
DUPLICATE_EMAIL_MESSAGE = "The email field has a duplicate value."


@dataclass(frozen=True)
class ExistingEmail:
    """Keep (and possibly rename) an address the user already owns."""

    id: int
    email: str


@dataclass(frozen=True)
class NewEmail:
    """Add an address to the user."""

    email: str


EmailEntry = Union[ExistingEmail, NewEmail]


@dataclass(frozen=True)
class EmailUpdate:
    email_id: int
    old_email: str
    new_email: str


@dataclass
class ReconciliationPlan:
    inserts: list[str] = field(default_factory=list)
    updates: list[EmailUpdate] = field(default_factory=list)
    deletes: list[int] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.inserts or self.updates or self.deletes)


def plan_reconciliation(current: Sequence[EmailAddress], requested: Sequence[EmailEntry]) -> ReconciliationPlan:
    """Compute the writes that turn ``current`` into ``requested``.

    Existing entries must already have been checked for ownership; ids not
    present in ``current`` are ignored here. Updates whose value does not
    change are left out of the plan.
    """
    owned = {address.id: address for address in current}
    plan = ReconciliationPlan()
    kept: set[int] = set()

    for entry in requested:
        if isinstance(entry, NewEmail):
            plan.inserts.append(entry.email)
            continue
        stored = owned.get(entry.id)
        if stored is None:
            continue
        kept.add(entry.id)
        if stored.email != entry.email:
            plan.updates.append(EmailUpdate(email_id=entry.id, old_email=stored.email, new_email=entry.email))

    plan.deletes = [address.id for address in current if address.id not in kept]
    return plan


def check_request(
    current: Sequence[EmailAddress],
    requested: Sequence[EmailEntry],
    stored_matches: Sequence[EmailAddress],
) -> dict[str, list[str]]:
    """Collect validation errors for ``requested`` without touching the store.

    ``stored_matches`` holds every stored address, of any user, whose email
    equals one of the requested values.
    """
    owned_ids = {address.id for address in current}
    holders: dict[str, set[int]] = {}
    for address in stored_matches:
        holders.setdefault(address.email, set()).add(address.id)

    errors: dict[str, list[str]] = {}
    seen_ids: set[int] = set()
    seen_emails: set[str] = set()

    for index, entry in enumerate(requested):
        entry_id = entry.id if isinstance(entry, ExistingEmail) else None

        if entry_id is not None:
            if entry_id not in owned_ids:
                errors.setdefault(f"emails.{index}.id", []).append(INVALID_ID_MESSAGE)
            elif entry_id in seen_ids:
                errors.setdefault(f"emails.{index}.id", []).append(DUPLICATE_ID_MESSAGE)
            seen_ids.add(entry_id)

        if entry.email in seen_emails:
            errors.setdefault(f"emails.{index}.email", []).append(DUPLICATE_EMAIL_MESSAGE)
        seen_emails.add(entry.email)

        # Only the row this entry updates may already hold the value.
        if holders.get(entry.email, set()) - {entry_id}:
            errors.setdefault(f"emails.{index}.email", []).append(TAKEN_MESSAGE.format(email=entry.email))

    return errors


async def apply_plan(repo: "UserRepository", user_id: int, plan: ReconciliationPlan) -> None:
    """Write ``plan`` through ``repo``; the caller owns the transaction."""
    await repo.delete_emails(user_id, plan.deletes)
    for update in plan.updates:
        await repo.update_email(update.email_id, user_id, update.new_email)
    for email in plan.inserts:
        await repo.insert_email(user_id, email)


async def reconcile(
    repo: "UserRepository",
    user: User,
    requested: Sequence[EmailEntry],
) -> Result[ReconciliationPlan, ValidationError]:
    """Validate ``requested`` against the store and apply the resulting plan.

    Must run inside ``repo.transaction()`` so a later failure also undoes the
    writes made here. Returns ``Err`` without writing anything when any entry
    is invalid.
    """
    stored_matches = await repo.find_emails({entry.email for entry in requested})
    errors = check_request(user.email_addresses, requested, stored_matches)
    if errors:
        logger.info("email reconciliation rejected user_id=%s fields=%s", user.id, sorted(errors))
        return Err(ValidationError(errors=errors))

    plan = plan_reconciliation(user.email_addresses, requested)
    await apply_plan(repo, user.id, plan)
    logger.info(
        "email reconciliation applied user_id=%s inserted=%d updated=%d deleted=%d",
        user.id,
        len(plan.inserts),
        len(plan.updates),
        len(plan.deletes),
    )
    return Ok(plan)
