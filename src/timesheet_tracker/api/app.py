"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from timesheet_tracker import __version__
from timesheet_tracker.api.routes import (
    admin_router,
    approvals_router,
    auth_router,
    health_router,
    timesheets_router,
)
from timesheet_tracker.config import get_settings
from timesheet_tracker.database import create_engine, create_session_factory
from timesheet_tracker.exceptions import (
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    StoreFailureError,
    TimesheetError,
    ValidationFailedError,
)
from timesheet_tracker.logging_config import configure_logging
from timesheet_tracker.services.state_machine import InvalidTransitionError

logger = logging.getLogger(__name__)

HTTP_422_UNPROCESSABLE = 422

STATUS_CODES: dict[type[TimesheetError], int] = {
    ValidationFailedError: HTTP_422_UNPROCESSABLE,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    ConflictError: status.HTTP_409_CONFLICT,
    AuthenticationError: status.HTTP_401_UNAUTHORIZED,
    StoreFailureError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_code_for(exc: TimesheetError) -> int:
    for exc_type in type(exc).__mro__:
        if exc_type in STATUS_CODES:
            return STATUS_CODES[exc_type]
    return status.HTTP_400_BAD_REQUEST


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    engine = None
    if getattr(app.state, "session_factory", None) is None:
        engine = create_engine(get_settings().database_url)
        app.state.session_factory = create_session_factory(engine)
    yield
    # Shutdown
    if engine is not None:
        await engine.dispose()


def create_app(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    A session factory may be injected (tests); otherwise one is built from
    ``DATABASE_URL`` at startup.
    """
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Timesheet Tracker API",
        description="Timesheet entry, approval and administration",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.session_factory = session_factory

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(TimesheetError)
    async def timesheet_error_handler(request: Request, exc: TimesheetError) -> JSONResponse:
        """Map application errors onto HTTP responses."""
        code = status_code_for(exc)
        headers = {"WWW-Authenticate": "Bearer"} if code == status.HTTP_401_UNAUTHORIZED else None
        return JSONResponse(status_code=code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Reshape request validation errors into the VALIDATION_FAILED body."""
        fields = [
            {
                "field": ".".join(str(part) for part in err["loc"] if part != "body") or "body",
                "message": err["msg"],
            }
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=HTTP_422_UNPROCESSABLE,
            content={"detail": "Validation failed", "code": "VALIDATION_FAILED", "fields": fields},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(auth_router, prefix="/api")
    app.include_router(timesheets_router, prefix="/api")
    app.include_router(approvals_router, prefix="/api")
    app.include_router(admin_router, prefix="/api")

    return app


# Default app instance for uvicorn
app = create_app()
