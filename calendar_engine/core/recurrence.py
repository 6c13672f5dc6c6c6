"""Recurring event rules and occurrence generation.

A ``RecurringEvent`` is a template (subject, time-of-day, duration, weekdays)
plus a termination rule. Occurrences are produced by walking forward one day
at a time from the template's start date and keeping the days whose weekday
belongs to the rule.

Every materialized occurrence gets a freshly minted identifier and shares the
rule's series identifier. A calendar remembers which identifier it stored for
each occurrence date.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import FrozenSet, Iterator, List, Optional

from calendar_engine.config import get_settings
from calendar_engine.core.errors import InvalidEventError
from calendar_engine.core.models import ALL_DAY_END, ALL_DAY_START, Event, Weekday

# Configure module logger
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecurringEvent:
    """A recurrence rule and generator of concrete occurrences.

    The template times are civil times in the owning calendar's zone; weekday
    matching is therefore a local-calendar notion.

    Attributes:
        subject: Subject inherited by every occurrence.
        start: Start of the first occurrence; defines the time of day.
        end: End of the first occurrence; defines the duration.
        weekdays: Days of the week the event repeats on. A string of weekday
            codes such as "MWF" is accepted and parsed.
        occurrences: Maximum number of occurrences.
        until: Inclusive last date on which an occurrence may fall.
        description: Description inherited by every occurrence.
        location: Location inherited by every occurrence.
        is_public: Visibility inherited by every occurrence.
        all_day: Whether each occurrence covers a whole day.
        series_id: Identifier shared by every occurrence of the series.
    """
    subject: str
    start: datetime
    end: datetime
    weekdays: FrozenSet[Weekday]
    occurrences: Optional[int] = None
    until: Optional[date] = None
    description: str = ""
    location: str = ""
    is_public: bool = True
    all_day: bool = False
    series_id: uuid.UUID = field(default_factory=uuid.uuid4)

    def __post_init__(self):
        """Validate the rule and settle its termination mode.

        Raises:
            InvalidEventError: If the template or termination rule is invalid.
        """
        if not isinstance(self.subject, str) or not self.subject.strip():
            raise InvalidEventError("Event subject cannot be empty")
        if not isinstance(self.start, datetime) or not isinstance(self.end, datetime):
            raise InvalidEventError("Recurring event start and end must be date-times")
        if self.end <= self.start:
            raise InvalidEventError("Start time must be before end time")

        # We need to use object.__setattr__ because the dataclass is frozen
        weekdays = self.weekdays
        if isinstance(weekdays, str):
            weekdays = Weekday.parse_codes(weekdays)
        weekdays = frozenset(weekdays or ())
        if not weekdays:
            raise InvalidEventError("Recurring event must have at least one repeat day")
        if not all(isinstance(day, Weekday) for day in weekdays):
            raise InvalidEventError("Repeat days must be Weekday values")
        object.__setattr__(self, "weekdays", weekdays)

        if self.occurrences is not None and self.until is not None:
            raise InvalidEventError("Cannot specify both occurrences and an end date")
        if self.occurrences is None and self.until is None:
            default_count = get_settings().default_occurrences
            logger.debug(
                f"No termination rule for '{self.subject}', "
                f"defaulting to {default_count} occurrences"
            )
            object.__setattr__(self, "occurrences", default_count)
        if self.occurrences is not None and self.occurrences <= 0:
            raise InvalidEventError("Number of occurrences must be positive")
        if self.until is not None and self.until < self.start.date():
            raise InvalidEventError("End date must not be before the start date")

        if self.description is None:
            object.__setattr__(self, "description", "")
        if self.location is None:
            object.__setattr__(self, "location", "")

    @classmethod
    def all_day_series(
        cls,
        subject: str,
        first_day: date,
        weekdays,
        occurrences: Optional[int] = None,
        until: Optional[date] = None,
        description: str = "",
        location: str = "",
        is_public: bool = True,
    ) -> "RecurringEvent":
        """Create a series whose occurrences each span 00:00:00 to 23:59:59."""
        return cls(
            subject=subject,
            start=datetime.combine(first_day, ALL_DAY_START),
            end=datetime.combine(first_day, ALL_DAY_END),
            weekdays=weekdays,
            occurrences=occurrences,
            until=until,
            description=description,
            location=location,
            is_public=is_public,
            all_day=True,
        )

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def start_date(self) -> date:
        return self.start.date()

    @property
    def start_time(self) -> time:
        return self.start.time()

    @property
    def end_time(self) -> time:
        return self.end.time()

    def _occurrence_dates(self) -> Iterator[date]:
        """Walk forward day by day, yielding each occurrence date in order."""
        current = self.start_date
        count = 0
        while self.occurrences is None or count < self.occurrences:
            if self.until is not None and current > self.until:
                return
            if Weekday.of(current) in self.weekdays:
                yield current
                count += 1
            current += timedelta(days=1)

    def _build_occurrence(self, day: date) -> Event:
        start = datetime.combine(day, self.start_time)
        return Event(
            subject=self.subject,
            start=start,
            end=start + self.duration,
            description=self.description,
            location=self.location,
            is_public=self.is_public,
            all_day=self.all_day,
            series_id=self.series_id,
        )

    def get_all_occurrences(self) -> List[Event]:
        """Materialize every occurrence of the series, in date order.

        Each call mints new occurrence identifiers.
        """
        return [self._build_occurrence(day) for day in self._occurrence_dates()]

    def get_occurrence_dates_between(self, from_date: date, to_date: date) -> List[date]:
        """Dates of the occurrences falling within an inclusive date window.

        The occurrence-count limit still counts from the first occurrence of
        the series, not from ``from_date``.

        Raises:
            ValueError: If ``from_date`` is after ``to_date``.
        """
        if from_date > to_date:
            raise ValueError("Start date cannot be after end date")

        result = []
        for day in self._occurrence_dates():
            if day > to_date:
                break
            if day >= from_date:
                result.append(day)
        return result

    def get_occurrences_between(self, from_date: date, to_date: date) -> List[Event]:
        """Materialize the occurrences falling within an inclusive date window."""
        return [self._build_occurrence(day)
                for day in self.get_occurrence_dates_between(from_date, to_date)]

    def occurs_on(self, day: date) -> bool:
        """Check whether the series has an occurrence on ``day``."""
        if Weekday.of(day) not in self.weekdays or day < self.start_date:
            return False
        for occurrence_day in self._occurrence_dates():
            if occurrence_day >= day:
                return occurrence_day == day
        return False
