"""Request and response payloads for the users API."""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints, field_validator

from user_api.models import User
from user_api.services.reconciler import EmailEntry, ExistingEmail, NewEmail

EMAIL_MAX_LENGTH = 255

Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]
PhoneNumber = Annotated[str, StringConstraints(strip_whitespace=True, max_length=15)]


class _EmailIn(BaseModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def email_length(cls, value: str) -> str:
        if len(value) > EMAIL_MAX_LENGTH:
            raise ValueError(f"The email may not be greater than {EMAIL_MAX_LENGTH} characters.")
        return value


class NewEmailIn(_EmailIn):
    """An address supplied when creating a user."""

    def to_entry(self) -> NewEmail:
        return NewEmail(email=self.email)


class EmailEntryIn(_EmailIn):
    """An address supplied when updating a user.

    Entries carrying an ``id`` refer to an existing address of that user;
    entries without one are new addresses.
    """

    id: int | None = Field(default=None, ge=1)

    def to_entry(self) -> EmailEntry:
        if self.id is None:
            return NewEmail(email=self.email)
        return ExistingEmail(id=self.id, email=self.email)


class UserFields(BaseModel):
    first_name: Name
    last_name: Name
    phone_number: PhoneNumber | None = None

    @field_validator("phone_number", mode="before")
    @classmethod
    def blank_phone_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class UserCreate(UserFields):
    """Payload for ``POST /users``."""

    emails: list[NewEmailIn] = Field(min_length=1)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "first_name": "Jan",
                "last_name": "Kowalski",
                "phone_number": "123456789",
                "emails": [{"email": "jan@example.com"}],
            }
        }
    )

    def email_entries(self) -> list[NewEmail]:
        return [item.to_entry() for item in self.emails]


class UserUpdate(UserFields):
    """Payload for ``PUT /users/{id}``."""

    emails: list[EmailEntryIn] = Field(min_length=1)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "first_name": "Jan",
                "last_name": "Kowalski",
                "emails": [{"id": 1, "email": "jan@example.com"}, {"email": "jan.k@example.com"}],
            }
        }
    )

    def email_entries(self) -> list[EmailEntry]:
        return [item.to_entry() for item in self.emails]

    def scalar_changes(self) -> dict[str, str | None]:
        """Return the scalar columns to write.

        ``phone_number`` is only included when the request body carried it,
        so omitting it keeps the stored value while an explicit null clears it.
        """
        changes: dict[str, str | None] = {
            "first_name": self.first_name,
            "last_name": self.last_name,
        }
        if "phone_number" in self.model_fields_set:
            changes["phone_number"] = self.phone_number
        return changes


class UserEnvelope(BaseModel):
    data: User


class UserListEnvelope(BaseModel):
    data: list[User]


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    message: str
    error: str | None = None


class ValidationErrorResponse(BaseModel):
    errors: dict[str, list[str]]
