"""API endpoints for calendar lifecycle.

This module defines the endpoints for creating, listing, activating,
renaming, re-zoning and removing calendars.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from calendar_engine.core.calendar import Calendar
from calendar_engine.core.calendar_service import CalendarManager

# Configure module logger
logger = logging.getLogger(__name__)


# Pydantic models for API request/response
class CalendarInput(BaseModel):
    """Model for calendar creation requests."""
    name: str = Field(..., description="Unique calendar name")
    timezone: Optional[str] = Field(None, description="IANA timezone, e.g. America/New_York")


class CalendarUpdateInput(BaseModel):
    """Model for calendar edit requests."""
    new_name: Optional[str] = None
    timezone: Optional[str] = None


class CalendarOutput(BaseModel):
    """Model for a calendar in API responses."""
    name: str
    timezone: str
    active: bool
    event_count: int
    recurring_event_count: int


class CalendarListOutput(BaseModel):
    """Model for the calendar listing."""
    active: Optional[str]
    calendars: List[CalendarOutput]


_manager = CalendarManager()


# Dependency to get services
def get_calendar_manager() -> CalendarManager:
    """Get the in-memory calendar manager instance."""
    return _manager


def to_calendar_output(calendar: Calendar, manager: CalendarManager) -> CalendarOutput:
    return CalendarOutput(
        name=calendar.name,
        timezone=calendar.timezone,
        active=calendar.name == manager.registry.active_calendar_name,
        event_count=len(calendar),
        recurring_event_count=len(calendar.get_all_recurring_events()),
    )


# Create router
router = APIRouter(prefix="/api/calendars", tags=["calendars"])


@router.post("", response_model=CalendarOutput, status_code=201)
async def create_calendar(
    calendar_input: CalendarInput,
    manager: CalendarManager = Depends(get_calendar_manager),
):
    """Create a calendar.

    The first calendar created becomes the active calendar.
    """
    calendar = manager.create_calendar(calendar_input.name, calendar_input.timezone)
    return to_calendar_output(calendar, manager)


@router.get("", response_model=CalendarListOutput)
async def list_calendars(manager: CalendarManager = Depends(get_calendar_manager)):
    """List all calendars and the active calendar name."""
    return CalendarListOutput(
        active=manager.registry.active_calendar_name,
        calendars=[to_calendar_output(calendar, manager) for calendar in manager.registry],
    )


@router.get("/{name}", response_model=CalendarOutput)
async def get_calendar(name: str, manager: CalendarManager = Depends(get_calendar_manager)):
    return to_calendar_output(manager.get_calendar(name), manager)


@router.put("/{name}/active", response_model=CalendarOutput)
async def use_calendar(name: str, manager: CalendarManager = Depends(get_calendar_manager)):
    """Make a calendar the active calendar."""
    calendar = manager.set_active_calendar(name)
    return to_calendar_output(calendar, manager)


@router.patch("/{name}", response_model=CalendarOutput)
async def edit_calendar(
    name: str,
    update: CalendarUpdateInput,
    manager: CalendarManager = Depends(get_calendar_manager),
):
    """Rename a calendar and/or change its timezone.

    The new name and timezone are both validated before either is applied, so
    an invalid request changes nothing.
    """
    calendar = manager.edit_calendar(name, new_name=update.new_name, timezone=update.timezone)
    return to_calendar_output(calendar, manager)


@router.delete("/{name}", status_code=204)
async def remove_calendar(name: str, manager: CalendarManager = Depends(get_calendar_manager)):
    manager.remove_calendar(name)
