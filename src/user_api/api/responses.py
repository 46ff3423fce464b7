"""Translate service errors into JSON responses."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from fastapi import status
from fastapi.responses import JSONResponse

from user_api.errors import (
    NotFoundError,
    OperationError,
    PersistenceError,
    PreconditionError,
    ServiceError,
    ValidationError,
)


def error_response(error: ServiceError) -> JSONResponse:
    """Render an error kind with the status code and body clients expect."""

    if isinstance(error, ValidationError):
        body: dict[str, Any] = {"errors": error.errors}
    elif isinstance(error, (NotFoundError, PreconditionError)):
        body = {"message": error.message}
    elif isinstance(error, (PersistenceError, OperationError)):
        body = {"message": error.message, "error": error.detail}
    else:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": "Internal server error."},
        )
    return JSONResponse(status_code=error.status_code, content=body)


def validation_errors(details: Sequence[dict[str, Any]]) -> dict[str, list[str]]:
    """Group pydantic error details by dotted field path.

    The leading ``body`` segment FastAPI adds to body fields is dropped, so
    ``("body", "emails", 0, "email")`` becomes ``emails.0.email``.
    """

    grouped: dict[str, list[str]] = {}
    for detail in details:
        loc = list(detail.get("loc", ()))
        if len(loc) > 1 and loc[0] == "body":
            loc = loc[1:]
        key = ".".join(str(part) for part in loc) or "body"
        grouped.setdefault(key, []).append(detail.get("msg", "Invalid value."))
    return grouped


class ServiceErrorException(Exception):
    """Raised from dependencies to stop a request before the body is validated."""

    def __init__(self, error: ServiceError):
        super().__init__(type(error).__name__)
        self.error = error
