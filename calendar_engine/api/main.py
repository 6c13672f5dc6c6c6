"""Main API application for the calendar engine.

This module defines the FastAPI application that exposes an in-memory
calendar manager over HTTP, and maps engine errors to HTTP status codes.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from calendar_engine.api.calendar_endpoints import router as calendar_router
from calendar_engine.api.event_endpoints import router as event_router
from calendar_engine.config import get_settings
from calendar_engine.core.errors import (
    CalendarError,
    CalendarNotFoundError,
    ConflictingEventError,
    DuplicateCalendarError,
    EventNotFoundError,
    InvalidCalendarNameError,
    InvalidEventError,
    InvalidTimezoneError,
)


# Configure logging
logging.basicConfig(
    level=get_settings().log_level,
    format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}',
    datefmt="%Y-%m-%dT%H:%M:%S%z"
)
logger = logging.getLogger(__name__)


# Create FastAPI app
app = FastAPI(
    title="Calendar Engine API",
    description="API for managing calendars, recurring events and availability",
    version="1.0.0"
)


STATUS_BY_ERROR = (
    (CalendarNotFoundError, 404),
    (EventNotFoundError, 404),
    (DuplicateCalendarError, 409),
    (ConflictingEventError, 409),
    (InvalidTimezoneError, 422),
    (InvalidEventError, 422),
    (InvalidCalendarNameError, 422),
)


def status_for(error: CalendarError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return 400


@app.exception_handler(CalendarError)
async def calendar_error_handler(request: Request, exc: CalendarError):
    """Translate engine errors into JSON error responses."""
    status_code = status_for(exc)
    logger.warning(f"{request.method} {request.url.path} failed with {type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


# Include routers
app.include_router(calendar_router)
app.include_router(event_router)
