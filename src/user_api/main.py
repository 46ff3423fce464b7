"""Application entrypoint."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from user_api.api.responses import ServiceErrorException, error_response, validation_errors
from user_api.api.routers import health, users
from user_api.config import get_settings
from user_api.database import db
from user_api.logging import configure_logging, get_logger
from user_api.middleware import RequestLoggingMiddleware

logger = get_logger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle events."""
    # Startup
    await db.connect()
    yield
    # Shutdown
    await db.disconnect()


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request validation failures as ``{"errors": {field: [messages]}}``."""

    errors = validation_errors(exc.errors())
    logger.info("request.invalid path=%s fields=%s", request.url.path, sorted(errors))
    return JSONResponse(status_code=422, content={"errors": errors})


async def service_error_handler(request: Request, exc: ServiceErrorException) -> JSONResponse:
    return error_response(exc.error)


def create_application() -> FastAPI:
    """Build and configure a FastAPI instance."""

    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(ServiceErrorException, service_error_handler)
    app.include_router(health.router)
    app.include_router(users.router)
    return app


app = create_application()
