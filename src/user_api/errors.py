"""Result and error types shared by the services and the HTTP layer.

Services never raise across their public boundary. Each operation returns
either :class:`Ok` wrapping the value or :class:`Err` wrapping one of the
error kinds below, and the HTTP layer turns the error kind into a response.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err(Generic[E]):
    error: E


Result = Union[Ok[T], Err[E]]


@dataclass(frozen=True)
class ServiceError:
    """Base for every error kind a service can report."""

    status_code = 500


@dataclass(frozen=True)
class ValidationError(ServiceError):
    """Malformed or conflicting input, keyed by dotted field path."""

    errors: dict[str, list[str]] = field(default_factory=dict)

    status_code = 422


@dataclass(frozen=True)
class NotFoundError(ServiceError):
    message: str = "User not found."

    status_code = 404


@dataclass(frozen=True)
class PreconditionError(ServiceError):
    """The operation does not apply to the current state of the resource."""

    message: str

    status_code = 400


@dataclass(frozen=True)
class PersistenceError(ServiceError):
    """The store failed while reading or writing."""

    message: str
    detail: str

    status_code = 500


@dataclass(frozen=True)
class OperationError(ServiceError):
    """A collaborator outside the store (the mail queue) failed."""

    message: str
    detail: str

    status_code = 500


UserError = Union[ValidationError, NotFoundError, PersistenceError]
