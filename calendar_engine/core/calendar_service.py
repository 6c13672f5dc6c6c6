"""Calendar manager: the entry point used by command handlers and the API.

This module provides a façade over the calendar registry and a shared timezone
converter. It covers calendar lifecycle (create, rename, re-zone, remove,
activate) and copying events between calendars.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional, TypeVar

from calendar_engine.config import EngineSettings, get_settings
from calendar_engine.core.calendar import Calendar
from calendar_engine.core.errors import DuplicateCalendarError, InvalidTimezoneError
from calendar_engine.core.models import ConflictPolicy, Event
from calendar_engine.core.registry import CalendarRegistry
from calendar_engine.core.timezone_converter import TimezoneConverter

# Configure module logger
logger = logging.getLogger(__name__)

T = TypeVar("T")


class CalendarManager:
    """Service for managing calendars.

    This service resolves calendars by name through its registry and owns the
    timezone converter shared by every calendar it creates.
    """

    def __init__(
        self,
        converter: Optional[TimezoneConverter] = None,
        settings: Optional[EngineSettings] = None,
    ):
        """Initialize the manager with an empty registry.

        Args:
            converter: Optional converter shared by all calendars. If not
                provided, a default converter is created.
            settings: Optional engine settings. If not provided, the
                process-wide settings are used.
        """
        self.converter = converter or TimezoneConverter()
        self.settings = settings or get_settings()
        self.registry = CalendarRegistry(converter=self.converter, settings=self.settings)

    # ------------------------------------------------------------------
    # Calendar lifecycle
    # ------------------------------------------------------------------

    def create_calendar(self, name: str, timezone: Optional[str] = None) -> Calendar:
        """Create a calendar.

        Args:
            name: Name for the new calendar.
            timezone: IANA zone; the configured default zone if omitted.

        Returns:
            The new calendar.

        Raises:
            InvalidTimezoneError: If the timezone is unknown.
            DuplicateCalendarError: If the name is taken.
            InvalidCalendarNameError: If the name is malformed.
        """
        timezone = timezone or self.settings.default_timezone
        if not self.converter.is_valid_timezone(timezone):
            raise InvalidTimezoneError(f"Invalid timezone: {timezone}")
        return self.registry.register_calendar(name, timezone)

    def get_calendar(self, name: str) -> Calendar:
        return self.registry.get_calendar(name)

    def get_active_calendar(self) -> Calendar:
        return self.registry.get_active_calendar()

    def set_active_calendar(self, name: str) -> Calendar:
        return self.registry.set_active_calendar(name)

    def has_calendar(self, name: str) -> bool:
        return self.registry.has_calendar(name)

    def calendar_names(self) -> List[str]:
        return self.registry.calendar_names()

    def remove_calendar(self, name: str) -> Calendar:
        return self.registry.remove_calendar(name)

    def rename_calendar(self, old_name: str, new_name: str) -> Calendar:
        return self.registry.rename_calendar(old_name, new_name)

    def edit_calendar_timezone(self, name: str, timezone: str) -> Calendar:
        """Change a calendar's zone, keeping its events' local wall-clock times.

        Raises:
            InvalidTimezoneError: If the timezone is unknown.
            CalendarNotFoundError: If the calendar does not exist.
        """
        if not self.converter.is_valid_timezone(timezone):
            raise InvalidTimezoneError(f"Invalid timezone: {timezone}")
        calendar = self.registry.get_calendar(name)
        calendar.set_timezone(timezone)
        return calendar

    def edit_calendar(
        self, name: str, new_name: Optional[str] = None, timezone: Optional[str] = None
    ) -> Calendar:
        """Rename a calendar and/or change its zone as one change.

        Both the new name and the new zone are validated before either is
        applied, so a failed request leaves the calendar untouched.

        Raises:
            CalendarNotFoundError: If the calendar does not exist.
            InvalidTimezoneError: If the timezone is unknown.
            InvalidCalendarNameError: If the new name is malformed.
            DuplicateCalendarError: If the new name is taken by another calendar.
        """
        calendar = self.registry.get_calendar(name)
        if timezone is not None and not self.converter.is_valid_timezone(timezone):
            raise InvalidTimezoneError(f"Invalid timezone: {timezone}")
        if new_name is not None:
            new_name = self.registry.normalize_name(new_name)
            if new_name != name and self.registry.has_calendar(new_name):
                raise DuplicateCalendarError(f"Calendar with name '{new_name}' already exists")

        if timezone is not None:
            calendar.set_timezone(timezone)
        if new_name is not None:
            calendar = self.registry.rename_calendar(name, new_name)
        return calendar

    def execute_on_calendar(self, name: str, operation: Callable[[Calendar], T]) -> T:
        """Resolve a calendar by name and run an operation against it."""
        return operation(self.registry.get_calendar(name))

    def _resolve_source(self, source_calendar: Optional[str]) -> Calendar:
        if source_calendar is None:
            return self.registry.get_active_calendar()
        return self.registry.get_calendar(source_calendar)

    # ------------------------------------------------------------------
    # Copying between calendars
    # ------------------------------------------------------------------

    def copy_event(
        self,
        subject: str,
        start: datetime,
        target_calendar: str,
        target_start: datetime,
        source_calendar: Optional[str] = None,
        policy: ConflictPolicy = ConflictPolicy.STRICT,
    ) -> bool:
        """Copy one event to another calendar at a new start time.

        Args:
            subject: Subject of the event to copy.
            start: Local start time of the event in the source calendar.
            target_calendar: Name of the calendar to copy into.
            target_start: Start time of the copy, local to the target calendar.
            source_calendar: Calendar to copy from; the active one if omitted.
            policy: Conflict policy applied in the target calendar.

        Returns:
            True if the copy was stored.

        Raises:
            CalendarNotFoundError: If either calendar does not exist.
            EventNotFoundError: If the source event does not exist.
            ConflictingEventError: If the copy conflicts and the policy is STRICT.
        """
        source = self._resolve_source(source_calendar)
        target = self.registry.get_calendar(target_calendar)
        event = source.find_event(subject, start)

        copy = event.copy_as_new(target_start, target_start + event.duration)
        logger.info(f"Copying '{subject}' from '{source.name}' to '{target.name}'")
        return target.add_event(copy, policy)

    def copy_events_on_date(
        self,
        day: date,
        target_calendar: str,
        target_day: date,
        source_calendar: Optional[str] = None,
    ) -> int:
        """Copy every event on a date to another calendar and date.

        Returns:
            The number of events copied. Copies that would conflict are skipped.
        """
        source = self._resolve_source(source_calendar)
        target = self.registry.get_calendar(target_calendar)
        return self._copy_shifted(source.get_events_on_date(day), source, target, target_day - day)

    def copy_events_in_range(
        self,
        start_day: date,
        end_day: date,
        target_calendar: str,
        target_start_day: date,
        source_calendar: Optional[str] = None,
    ) -> int:
        """Copy every event in a date range, shifted so the range starts on ``target_start_day``.

        Returns:
            The number of events copied. Copies that would conflict are skipped.
        """
        source = self._resolve_source(source_calendar)
        target = self.registry.get_calendar(target_calendar)
        events = source.get_events_in_range(start_day, end_day)
        return self._copy_shifted(events, source, target, target_start_day - start_day)

    def _copy_shifted(
        self, events: List[Event], source: Calendar, target: Calendar, offset: timedelta
    ) -> int:
        """Copy canonical events, shifted by whole days, into the target calendar.

        The shift is applied to the source's local times, and the result is
        re-expressed in the target's zone, so each copy keeps its instant.
        """
        if not events:
            logger.info(f"No events to copy from '{source.name}'")
            return 0

        to_target = self.converter.get_converter(source.timezone, target.timezone)
        copied = 0
        for event in events:
            local = source.to_local(event)
            copy = event.copy_as_new(to_target(local.start + offset), to_target(local.end + offset))
            if target.add_event(copy, ConflictPolicy.DECLINE):
                copied += 1
            else:
                logger.warning(f"Skipped copying '{event.subject}' into '{target.name}' (conflict)")

        logger.info(f"Copied {copied} of {len(events)} events to calendar '{target.name}'")
        return copied
