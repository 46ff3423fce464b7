"""Persisted records returned by the repository."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, computed_field


class EmailAddress(BaseModel):
    """One globally unique address owned by a user."""

    id: int
    user_id: int
    email: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class User(BaseModel):
    """A user row with its email addresses attached in insertion order."""

    id: int
    first_name: str
    last_name: str
    phone_number: str | None = None
    created_at: datetime
    updated_at: datetime
    email_addresses: list[EmailAddress] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
