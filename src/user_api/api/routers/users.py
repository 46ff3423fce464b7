"""CRUD endpoints for users and the welcome email trigger."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Response, status
from fastapi.responses import JSONResponse

from user_api.api.responses import ServiceErrorException, error_response
from user_api.errors import Err
from user_api.schemas import (
    ErrorResponse,
    MessageResponse,
    UserCreate,
    UserEnvelope,
    UserListEnvelope,
    UserUpdate,
    ValidationErrorResponse,
)
from user_api.services.notifications import WelcomeEmailDispatcher, get_welcome_dispatcher
from user_api.services.users import UserManager, get_user_manager

router = APIRouter(prefix="/users", tags=["users"])

Manager = Annotated[UserManager, Depends(get_user_manager)]
UserId = Annotated[int, Path(ge=1, le=2**63 - 1, description="User identifier")]

_NOT_FOUND = {404: {"model": MessageResponse, "description": "User not found"}}
_INVALID = {422: {"model": ValidationErrorResponse, "description": "Invalid input"}}
_FAILED = {500: {"model": ErrorResponse, "description": "Store or queue failure"}}


async def require_existing_user(user_id: UserId, manager: Manager) -> None:
    """Answer 404 for an unknown user before the request body is validated."""

    result = await manager.get_user(user_id)
    if isinstance(result, Err):
        raise ServiceErrorException(result.error)


@router.get("", summary="List users", response_model=UserListEnvelope, responses=_FAILED)
async def list_users(manager: Manager) -> UserListEnvelope | JSONResponse:
    """Return every user with its email addresses."""

    result = await manager.list_users()
    if isinstance(result, Err):
        return error_response(result.error)
    return UserListEnvelope(data=result.value)


@router.post(
    "",
    summary="Create a user",
    status_code=status.HTTP_201_CREATED,
    response_model=UserEnvelope,
    responses={**_INVALID, **_FAILED},
)
async def create_user(payload: UserCreate, manager: Manager) -> UserEnvelope | JSONResponse:
    """Create a user together with its initial email addresses."""

    result = await manager.create_user(payload)
    if isinstance(result, Err):
        return error_response(result.error)
    return UserEnvelope(data=result.value)


@router.get("/{user_id}", summary="Show a user", response_model=UserEnvelope, responses={**_NOT_FOUND, **_FAILED})
async def show_user(user_id: UserId, manager: Manager) -> UserEnvelope | JSONResponse:
    result = await manager.get_user(user_id)
    if isinstance(result, Err):
        return error_response(result.error)
    return UserEnvelope(data=result.value)


@router.put(
    "/{user_id}",
    summary="Update a user",
    response_model=UserEnvelope,
    responses={**_NOT_FOUND, **_INVALID, **_FAILED},
    dependencies=[Depends(require_existing_user)],
)
async def update_user(user_id: UserId, payload: UserUpdate, manager: Manager) -> UserEnvelope | JSONResponse:
    """Replace the user's fields and reconcile its email addresses.

    Entries with an ``id`` keep (and may rename) that address, entries
    without one are added, and addresses left out of the list are removed.
    """

    result = await manager.update_user(user_id, payload)
    if isinstance(result, Err):
        return error_response(result.error)
    return UserEnvelope(data=result.value)


@router.delete(
    "/{user_id}",
    summary="Delete a user",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    responses={**_NOT_FOUND, **_FAILED},
)
async def delete_user(user_id: UserId, manager: Manager) -> Response:
    result = await manager.delete_user(user_id)
    if isinstance(result, Err):
        return error_response(result.error)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{user_id}/send-welcome-email",
    summary="Queue welcome email",
    response_model=MessageResponse,
    responses={
        400: {"model": MessageResponse, "description": "User has no email addresses"},
        **_NOT_FOUND,
        **_FAILED,
    },
)
async def send_welcome_email(
    user_id: UserId,
    dispatcher: Annotated[WelcomeEmailDispatcher, Depends(get_welcome_dispatcher)],
) -> MessageResponse | JSONResponse:
    """Queue a welcome email to every address of the user."""

    result = await dispatcher.send_welcome_email(user_id)
    if isinstance(result, Err):
        return error_response(result.error)
    return MessageResponse(message=result.value)
