"""API endpoints for events.

This module defines the endpoints for adding single and recurring events to a
calendar, querying by date or range, checking availability, editing,
deleting and copying events. All date-times in requests and responses are
civil times in the calendar's own timezone.
"""

import logging
import uuid
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from calendar_engine.api.calendar_endpoints import get_calendar_manager
from calendar_engine.core.calendar import Calendar
from calendar_engine.core.calendar_service import CalendarManager
from calendar_engine.core.models import ConflictPolicy, Event
from calendar_engine.core.recurrence import RecurringEvent

# Configure module logger
logger = logging.getLogger(__name__)


# Pydantic models for API request/response
class EventInput(BaseModel):
    """Model for single event input in API requests."""
    subject: str
    start: datetime
    end: Optional[datetime] = Field(None, description="Required unless all_day is set")
    all_day: bool = False
    description: Optional[str] = None
    location: Optional[str] = None
    is_public: bool = True
    policy: ConflictPolicy = ConflictPolicy.STRICT


class RecurringEventInput(BaseModel):
    """Model for recurring event input in API requests."""
    subject: str
    start: datetime
    end: Optional[datetime] = Field(None, description="Required unless all_day is set")
    weekdays: str = Field(..., description="Weekday codes, e.g. MWF or TR")
    occurrences: Optional[int] = None
    until: Optional[date] = None
    all_day: bool = False
    description: Optional[str] = None
    location: Optional[str] = None
    is_public: bool = True
    policy: ConflictPolicy = ConflictPolicy.STRICT


class EventOutput(BaseModel):
    """Model for event output in API responses."""
    id: uuid.UUID
    subject: str
    start: datetime
    end: datetime
    description: str
    location: str
    is_public: bool
    all_day: bool
    series_id: Optional[uuid.UUID] = None


class AddResult(BaseModel):
    """Model for the outcome of an add or update request."""
    added: bool
    events: List[EventOutput]


class EditScope(str, Enum):
    """Which events an edit request applies to."""
    SINGLE = "single"
    FROM = "from"
    ALL = "all"


class EditInput(BaseModel):
    """Model for property edit requests."""
    subject: str
    property: str
    value: str
    scope: EditScope = EditScope.SINGLE
    start: Optional[datetime] = Field(None, description="Required for single and from scopes")


class EditOutput(BaseModel):
    edited: int


class CopyEventInput(BaseModel):
    """Model for copying one event to another calendar."""
    subject: str
    start: datetime
    target_calendar: str
    target_start: datetime
    policy: ConflictPolicy = ConflictPolicy.STRICT


class CopyRangeInput(BaseModel):
    """Model for copying every event on a date or in a date range."""
    start_day: date
    end_day: Optional[date] = None
    target_calendar: str
    target_start_day: date


class CopyOutput(BaseModel):
    copied: int


class BusyOutput(BaseModel):
    at: datetime
    busy: bool


def to_event_output(calendar: Calendar, event: Event) -> EventOutput:
    """Express a stored event in the calendar's local time."""
    local = calendar.to_local(event)
    return EventOutput(
        id=local.id,
        subject=local.subject,
        start=local.start,
        end=local.end,
        description=local.description,
        location=local.location,
        is_public=local.is_public,
        all_day=local.all_day,
        series_id=local.series_id,
    )


def build_event(event_input: EventInput) -> Event:
    if event_input.all_day:
        return Event.all_day_event(
            event_input.subject,
            event_input.start.date(),
            description=event_input.description,
            location=event_input.location,
            is_public=event_input.is_public,
        )
    if event_input.end is None:
        raise HTTPException(status_code=422, detail="End time is required for timed events")
    return Event(
        subject=event_input.subject,
        start=event_input.start,
        end=event_input.end,
        description=event_input.description,
        location=event_input.location,
        is_public=event_input.is_public,
    )


def build_recurring_event(event_input: RecurringEventInput) -> RecurringEvent:
    if event_input.all_day:
        return RecurringEvent.all_day_series(
            event_input.subject,
            event_input.start.date(),
            event_input.weekdays,
            occurrences=event_input.occurrences,
            until=event_input.until,
            description=event_input.description,
            location=event_input.location,
            is_public=event_input.is_public,
        )
    if event_input.end is None:
        raise HTTPException(status_code=422, detail="End time is required for timed events")
    return RecurringEvent(
        subject=event_input.subject,
        start=event_input.start,
        end=event_input.end,
        weekdays=event_input.weekdays,
        occurrences=event_input.occurrences,
        until=event_input.until,
        description=event_input.description,
        location=event_input.location,
        is_public=event_input.is_public,
    )


# Create router
router = APIRouter(prefix="/api/calendars/{name}", tags=["events"])


@router.post("/events", response_model=AddResult, status_code=201)
async def add_event(
    name: str,
    event_input: EventInput,
    manager: CalendarManager = Depends(get_calendar_manager),
):
    """Add a single event to a calendar.

    Args:
        name: Calendar name
        event_input: The event, in the calendar's local time
        manager: Calendar manager

    Returns:
        Whether the event was stored, and the stored event

    Raises:
        ConflictingEventError: If the event overlaps and the policy is strict
    """
    calendar = manager.get_calendar(name)
    event = build_event(event_input)
    added = calendar.add_event(event, event_input.policy)
    events = [to_event_output(calendar, calendar.get_event(event.id))] if added else []
    return AddResult(added=added, events=events)


@router.post("/recurring-events", response_model=AddResult, status_code=201)
async def add_recurring_event(
    name: str,
    event_input: RecurringEventInput,
    manager: CalendarManager = Depends(get_calendar_manager),
):
    """Add a recurring series; either every occurrence is stored or none is."""
    calendar = manager.get_calendar(name)
    rule = build_recurring_event(event_input)
    added = calendar.add_recurring_event(rule, event_input.policy)

    events = []
    if added:
        events = [to_event_output(calendar, event) for event in calendar.get_all_events()
                  if event.series_id == rule.series_id]
    logger.info(f"Recurring event '{rule.subject}' added={added} with {len(events)} occurrences")
    return AddResult(added=added, events=events)


@router.get("/events", response_model=List[EventOutput])
async def list_events(
    name: str,
    day: Optional[date] = Query(None, alias="date"),
    start: Optional[date] = None,
    end: Optional[date] = None,
    manager: CalendarManager = Depends(get_calendar_manager),
):
    """List events on a local date, in a local date range, or all events.

    Raises:
        HTTPException: If the range is incomplete or reversed
    """
    calendar = manager.get_calendar(name)
    if day is not None:
        events = calendar.get_events_on_date(day)
    elif start is not None or end is not None:
        if start is None or end is None:
            raise HTTPException(status_code=400, detail="Both start and end are required")
        try:
            events = calendar.get_events_in_range(start, end)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    else:
        events = calendar.get_all_events()
    return [to_event_output(calendar, event) for event in events]


@router.get("/busy", response_model=BusyOutput)
async def check_busy(
    name: str,
    at: datetime,
    manager: CalendarManager = Depends(get_calendar_manager),
):
    calendar = manager.get_calendar(name)
    return BusyOutput(at=at, busy=calendar.is_busy(at))


@router.get("/events/{event_id}", response_model=EventOutput)
async def get_event(
    name: str,
    event_id: uuid.UUID,
    manager: CalendarManager = Depends(get_calendar_manager),
):
    calendar = manager.get_calendar(name)
    return to_event_output(calendar, calendar.get_event(event_id))


@router.put("/events/{event_id}", response_model=AddResult)
async def update_event(
    name: str,
    event_id: uuid.UUID,
    event_input: EventInput,
    manager: CalendarManager = Depends(get_calendar_manager),
):
    """Replace a stored event, keeping its identifier.

    The original event is restored if the replacement conflicts.
    """
    calendar = manager.get_calendar(name)
    replacement = build_event(event_input)
    updated = calendar.update_event(event_id, replacement, event_input.policy)
    return AddResult(added=updated, events=[to_event_output(calendar, calendar.get_event(event_id))])


@router.delete("/events/{event_id}", status_code=204)
async def delete_event(
    name: str,
    event_id: uuid.UUID,
    manager: CalendarManager = Depends(get_calendar_manager),
):
    manager.get_calendar(name).delete_event(event_id)


@router.delete("/series/{series_id}", response_model=EditOutput)
async def delete_series(
    name: str,
    series_id: uuid.UUID,
    manager: CalendarManager = Depends(get_calendar_manager),
):
    """Delete a recurring series and all of its stored occurrences."""
    removed = manager.get_calendar(name).delete_series(series_id)
    return EditOutput(edited=removed)


@router.post("/events/edit", response_model=EditOutput)
async def edit_events(
    name: str,
    edit: EditInput,
    manager: CalendarManager = Depends(get_calendar_manager),
):
    """Edit one property of one event, of events from a start time on, or of all events.

    Unknown properties and rejected values edit nothing and report zero.
    """
    calendar = manager.get_calendar(name)
    if edit.scope is EditScope.ALL:
        return EditOutput(edited=calendar.edit_all_events(edit.subject, edit.property, edit.value))

    if edit.start is None:
        raise HTTPException(status_code=422, detail="Start time is required for this scope")
    if edit.scope is EditScope.FROM:
        count = calendar.edit_events_from_date(edit.subject, edit.start, edit.property, edit.value)
        return EditOutput(edited=count)

    edited = calendar.edit_single_event(edit.subject, edit.start, edit.property, edit.value)
    return EditOutput(edited=1 if edited else 0)


@router.post("/events/copy", response_model=CopyOutput)
async def copy_event(
    name: str,
    copy_input: CopyEventInput,
    manager: CalendarManager = Depends(get_calendar_manager),
):
    """Copy one event into another calendar at a new local start time."""
    copied = manager.copy_event(
        copy_input.subject,
        copy_input.start,
        copy_input.target_calendar,
        copy_input.target_start,
        source_calendar=name,
        policy=copy_input.policy,
    )
    return CopyOutput(copied=1 if copied else 0)


@router.post("/events/copy-range", response_model=CopyOutput)
async def copy_events(
    name: str,
    copy_input: CopyRangeInput,
    manager: CalendarManager = Depends(get_calendar_manager),
):
    """Copy every event on a date, or in a date range, into another calendar.

    Copies that would conflict in the target calendar are skipped.
    """
    if copy_input.end_day is None:
        copied = manager.copy_events_on_date(
            copy_input.start_day, copy_input.target_calendar, copy_input.target_start_day,
            source_calendar=name,
        )
    else:
        try:
            copied = manager.copy_events_in_range(
                copy_input.start_day, copy_input.end_day,
                copy_input.target_calendar, copy_input.target_start_day,
                source_calendar=name,
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    return CopyOutput(copied=copied)
