"""Domain models for the calendar engine.

This module contains the value types shared by the calendar aggregate: the
``Event`` entity, the weekday and conflict-policy enumerations, and the closed
set of event properties that may be edited by name.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import FrozenSet, Iterable, Optional

from calendar_engine.core.errors import InvalidEventError

# Configure module logger
logger = logging.getLogger(__name__)

ALL_DAY_START = time(0, 0, 0)
ALL_DAY_END = time(23, 59, 59)


class Weekday(Enum):
    """Days of the week, valued like ``date.weekday()``."""
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @property
    def code(self) -> str:
        """Single-letter code: M T W R F S U."""
        return _WEEKDAY_CODES_BY_DAY[self]

    @classmethod
    def of(cls, day: date) -> "Weekday":
        """Return the weekday a date falls on."""
        return cls(day.weekday())

    @classmethod
    def parse_codes(cls, codes: str) -> FrozenSet["Weekday"]:
        """Parse a weekday string such as "MWF".

        Args:
            codes: Letters from M (Monday), T (Tuesday), W (Wednesday),
                R (Thursday), F (Friday), S (Saturday), U (Sunday).
                Case-insensitive.

        Returns:
            The set of weekdays named by the string.

        Raises:
            InvalidEventError: If the string is empty or has an unknown letter.
        """
        if not codes or not codes.strip():
            raise InvalidEventError("Weekdays string cannot be empty")

        days = set()
        for char in codes.strip().upper():
            if char not in _WEEKDAYS_BY_CODE:
                raise InvalidEventError(f"Invalid weekday character: {char}")
            days.add(_WEEKDAYS_BY_CODE[char])
        return frozenset(days)


_WEEKDAYS_BY_CODE = {
    "M": Weekday.MONDAY,
    "T": Weekday.TUESDAY,
    "W": Weekday.WEDNESDAY,
    "R": Weekday.THURSDAY,
    "F": Weekday.FRIDAY,
    "S": Weekday.SATURDAY,
    "U": Weekday.SUNDAY,
}
_WEEKDAY_CODES_BY_DAY = {day: code for code, day in _WEEKDAYS_BY_CODE.items()}


class ConflictPolicy(Enum):
    """How an admission reacts when the new interval overlaps a stored one.

    STRICT raises ``ConflictingEventError``; DECLINE returns False; both leave
    the calendar untouched. ALLOW admits the event regardless of overlap.
    """
    STRICT = "strict"
    DECLINE = "decline"
    ALLOW = "allow"


class EventProperty(str, Enum):
    """Event properties that can be edited by name."""
    SUBJECT = "subject"
    DESCRIPTION = "description"
    LOCATION = "location"
    START = "start"
    END = "end"
    VISIBILITY = "visibility"

    @classmethod
    def parse(cls, name) -> Optional["EventProperty"]:
        """Resolve a property name or alias.

        Returns:
            The matching property, or None if the name is not recognized.
        """
        if isinstance(name, EventProperty):
            return name
        if not isinstance(name, str):
            return None
        return _PROPERTY_ALIASES.get(name.strip().lower())


_PROPERTY_ALIASES = {
    "subject": EventProperty.SUBJECT,
    "name": EventProperty.SUBJECT,
    "description": EventProperty.DESCRIPTION,
    "location": EventProperty.LOCATION,
    "start": EventProperty.START,
    "starttime": EventProperty.START,
    "startdatetime": EventProperty.START,
    "end": EventProperty.END,
    "endtime": EventProperty.END,
    "enddatetime": EventProperty.END,
    "visibility": EventProperty.VISIBILITY,
    "public": EventProperty.VISIBILITY,
    "ispublic": EventProperty.VISIBILITY,
}


@dataclass(frozen=True)
class Event:
    """One scheduled interval.

    Events are immutable values. A calendar "edits" an event by storing a
    validated copy under the same identifier, see ``with_changes``.

    Attributes:
        subject: Title of the event; must not be blank.
        start: Start date-time. Canonical UTC once stored in a calendar.
        end: End date-time, strictly after ``start``.
        description: Free-form description.
        location: Free-form location.
        is_public: Visibility flag.
        all_day: Whether the event covers a whole local day.
        id: Unique identifier, generated unless given explicitly.
        series_id: Identifier of the recurring series this event belongs to.
    """
    subject: str
    start: datetime
    end: datetime
    description: str = ""
    location: str = ""
    is_public: bool = True
    all_day: bool = False
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    series_id: Optional[uuid.UUID] = None

    def __post_init__(self):
        """Validate the event upon initialization.

        Raises:
            InvalidEventError: If the subject is blank, a time is missing, or
                the end is not after the start.
        """
        if not isinstance(self.subject, str) or not self.subject.strip():
            raise InvalidEventError("Event subject cannot be empty")
        if not isinstance(self.start, datetime) or not isinstance(self.end, datetime):
            raise InvalidEventError("Event start and end must be date-times")
        if self.end <= self.start:
            raise InvalidEventError("Start time must be before end time")
        if self.id is None:
            raise InvalidEventError("Event ID cannot be None")

        # We need to use object.__setattr__ because the dataclass is frozen
        if self.description is None:
            object.__setattr__(self, "description", "")
        if self.location is None:
            object.__setattr__(self, "location", "")

    @classmethod
    def all_day_event(
        cls,
        subject: str,
        day: date,
        description: str = "",
        location: str = "",
        is_public: bool = True,
    ) -> "Event":
        """Create an event covering ``day`` from 00:00:00 to 23:59:59."""
        return cls(
            subject=subject,
            start=datetime.combine(day, ALL_DAY_START),
            end=datetime.combine(day, ALL_DAY_END),
            description=description,
            location=location,
            is_public=is_public,
            all_day=True,
        )

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps_with(self, other: "Event") -> bool:
        """Check if this event's interval overlaps another's.

        Intervals are half-open, so an event ending exactly when another
        starts does not overlap it.
        """
        return self.start < other.end and other.start < self.end

    def contains(self, moment: datetime) -> bool:
        """Check if a moment falls within ``[start, end)``."""
        return self.start <= moment < self.end

    def with_changes(self, **changes) -> "Event":
        """Return a validated copy with some fields replaced.

        The identifier is kept unless it is explicitly overridden.
        """
        return replace(self, **changes)

    def with_times(self, start: datetime, end: datetime) -> "Event":
        return replace(self, start=start, end=end)

    def copy_as_new(self, start: datetime, end: datetime) -> "Event":
        """Create an independent event with a fresh identifier and no series."""
        return Event(
            subject=self.subject,
            start=start,
            end=end,
            description=self.description,
            location=self.location,
            is_public=self.is_public,
            all_day=self.all_day,
        )


def sort_events(events: Iterable[Event]) -> list:
    """Sort events by start time, then subject, for stable output."""
    return sorted(events, key=lambda event: (event.start, event.subject, str(event.id)))
