# src/clubrank/main.py

"""Main FastAPI application for ClubRank."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .api import club, jobs, match, player
from .config import get_settings
from .db.session import engine
from .exceptions import (
    AuthorizationError,
    ClubRankError,
    InvalidTransitionError,
    RatingEngineError,
    ResourceNotFoundError,
    ValidationError,
)
from .middleware.logging import RequestLoggingMiddleware

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan context manager for startup and shutdown events."""
    # Startup: apply the configured level to every clubrank logger
    logging.getLogger("clubrank").setLevel(get_settings().log_level)
    yield
    # Shutdown: Dispose of database connections gracefully
    await engine.dispose()


app = FastAPI(title="ClubRank API", lifespan=lifespan)

# Add middleware (order matters - first added = outermost)
app.add_middleware(RequestLoggingMiddleware)


# =============================================================================
# Global Exception Handlers
# =============================================================================


def _error_response(status_code: int, exc: ClubRankError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error_type": type(exc).__name__},
    )


@app.exception_handler(ResourceNotFoundError)
async def resource_not_found_handler(
    request: Request, exc: ResourceNotFoundError
) -> JSONResponse:
    """Handle all resource not found errors -> 404."""
    logger.warning("Resource not found: %s", exc.message, extra=exc.details)
    return _error_response(404, exc)


@app.exception_handler(ValidationError)
async def validation_error_handler(
    request: Request, exc: ValidationError
) -> JSONResponse:
    """Handle all validation errors -> 422."""
    logger.warning("Validation error: %s", exc.message, extra=exc.details)
    return _error_response(422, exc)


@app.exception_handler(AuthorizationError)
async def authorization_error_handler(
    request: Request, exc: AuthorizationError
) -> JSONResponse:
    """Handle permission errors -> 403."""
    logger.warning("Forbidden: %s", exc.message, extra=exc.details)
    return _error_response(403, exc)


@app.exception_handler(InvalidTransitionError)
async def invalid_transition_handler(
    request: Request, exc: InvalidTransitionError
) -> JSONResponse:
    """Handle workflow conflicts -> 409."""
    logger.info("Rejected transition: %s", exc.message, extra=exc.details)
    return _error_response(409, exc)


@app.exception_handler(RatingEngineError)
async def rating_engine_error_handler(
    request: Request, exc: RatingEngineError
) -> JSONResponse:
    """Handle rating engine errors -> 500."""
    logger.error(
        "Rating engine error: %s", exc.message, extra=exc.details, exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Rating calculation failed",
            "error_type": type(exc).__name__,
        },
    )


@app.exception_handler(ClubRankError)
async def clubrank_error_handler(request: Request, exc: ClubRankError) -> JSONResponse:
    """Catch-all for any other ClubRank errors -> 500."""
    logger.error("ClubRank error: %s", exc.message, extra=exc.details, exc_info=True)
    return _error_response(500, exc)


@app.exception_handler(IntegrityError)
async def integrity_error_handler(
    request: Request, exc: IntegrityError
) -> JSONResponse:
    """Handle database integrity constraint violations."""
    error_msg = str(exc.orig) if exc.orig else str(exc)
    logger.warning("Database integrity error: %s", error_msg)

    # Unique constraint violations -> 409 Conflict
    if "UNIQUE constraint failed" in error_msg or "duplicate key" in error_msg:
        return JSONResponse(
            status_code=409,
            content={"detail": "Resource already exists with given unique field(s)"},
        )

    # Foreign key violations -> 400 Bad Request
    fk_error = "FOREIGN KEY constraint failed" in error_msg
    if fk_error or "violates foreign key" in error_msg:
        return JSONResponse(
            status_code=400,
            content={"detail": "Referenced resource does not exist"},
        )

    return JSONResponse(
        status_code=400,
        content={"detail": "Database constraint violation"},
    )


@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_error_handler(
    request: Request, exc: SQLAlchemyError
) -> JSONResponse:
    """Catch-all for other SQLAlchemy database errors."""
    logger.error("Database error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "An internal database error occurred"},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions."""
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "An internal server error occurred"},
    )


# Include routers into the main application
app.include_router(player.router)
app.include_router(club.router)
app.include_router(match.router)
app.include_router(jobs.router)


@app.get("/", tags=["Root"])
async def read_root() -> dict[str, str]:
    """Provides a welcome message."""
    return {"message": "Welcome to the ClubRank API"}


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint for monitoring."""
    return {"status": "healthy"}
