"""Registry of named calendars and the active-calendar pointer."""

import logging
import re
from typing import Dict, Iterator, List, Optional

from calendar_engine.config import EngineSettings
from calendar_engine.core.calendar import Calendar
from calendar_engine.core.errors import (
    CalendarNotFoundError, DuplicateCalendarError, InvalidCalendarNameError
)
from calendar_engine.core.timezone_converter import TimezoneConverter

# Configure module logger
logger = logging.getLogger(__name__)

NAME_PATTERN = re.compile(r"\w+")


class CalendarRegistry:
    """Name-indexed directory of calendars.

    Names are case-sensitive and unique within one registry. The first
    calendar registered becomes active; the active name always refers to a
    registered calendar or is None when the registry is empty.
    """

    def __init__(
        self,
        converter: Optional[TimezoneConverter] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self._converter = converter or TimezoneConverter()
        self._settings = settings
        self._calendars: Dict[str, Calendar] = {}
        self._active_calendar_name: Optional[str] = None

    def __len__(self) -> int:
        return len(self._calendars)

    def __iter__(self) -> Iterator[Calendar]:
        return iter(list(self._calendars.values()))

    def __contains__(self, name) -> bool:
        return name in self._calendars

    @staticmethod
    def normalize_name(name: Optional[str]) -> str:
        """Validate a calendar name and strip surrounding whitespace and quotes.

        Raises:
            InvalidCalendarNameError: If the name is empty or has characters other than
                letters, digits and underscores.
        """
        if name is None:
            raise InvalidCalendarNameError("Calendar name cannot be None")
        normalized = name.strip()
        if len(normalized) >= 2 and normalized[0] == normalized[-1] and normalized[0] in "\"'":
            normalized = normalized[1:-1]
        if not normalized:
            raise InvalidCalendarNameError("Calendar name cannot be empty")
        if not NAME_PATTERN.fullmatch(normalized):
            raise InvalidCalendarNameError(f"Invalid calendar name: {name}")
        return normalized

    def register_calendar(self, name: str, timezone: str) -> Calendar:
        """Create and register a new calendar.

        Args:
            name: The calendar name.
            timezone: IANA identifier of the calendar's zone.

        Returns:
            The new Calendar.

        Raises:
            InvalidCalendarNameError: If the name is malformed.
            DuplicateCalendarError: If the name is taken.
            InvalidTimezoneError: If the timezone is unknown.
        """
        name = self.normalize_name(name)
        if name in self._calendars:
            raise DuplicateCalendarError(f"Calendar with name '{name}' already exists")

        calendar = Calendar(name, timezone, converter=self._converter, settings=self._settings)
        self._calendars[name] = calendar

        if self._active_calendar_name is None:
            self._active_calendar_name = name
        logger.info(f"Registered calendar '{name}' ({timezone})")
        return calendar

    def get_calendar(self, name: str) -> Calendar:
        """Raises CalendarNotFoundError if no calendar has the name."""
        calendar = self._calendars.get(name)
        if calendar is None:
            raise CalendarNotFoundError(f"Calendar not found: {name}")
        return calendar

    def has_calendar(self, name: str) -> bool:
        return name in self._calendars

    def calendar_names(self) -> List[str]:
        return list(self._calendars)

    def remove_calendar(self, name: str) -> Calendar:
        """Remove a calendar, moving the active pointer if it pointed at it.

        The first remaining calendar (in registration order) becomes active,
        or nothing is active once the registry is empty.

        Raises:
            CalendarNotFoundError: If no calendar has the name.
        """
        calendar = self.get_calendar(name)
        del self._calendars[name]

        if name == self._active_calendar_name:
            self._active_calendar_name = next(iter(self._calendars), None)
            logger.info(f"Active calendar is now {self._active_calendar_name!r}")
        logger.info(f"Removed calendar '{name}'")
        return calendar

    @property
    def active_calendar_name(self) -> Optional[str]:
        return self._active_calendar_name

    def get_active_calendar(self) -> Calendar:
        """Raises CalendarNotFoundError if no calendar is active."""
        if self._active_calendar_name is None:
            raise CalendarNotFoundError("No active calendar set")
        return self.get_calendar(self._active_calendar_name)

    def set_active_calendar(self, name: str) -> Calendar:
        calendar = self.get_calendar(name)
        self._active_calendar_name = name
        logger.info(f"Using calendar '{name}'")
        return calendar

    def rename_calendar(self, old_name: str, new_name: str) -> Calendar:
        """Relabel a calendar, keeping the same object and its events.

        Raises:
            CalendarNotFoundError: If ``old_name`` is not registered.
            DuplicateCalendarError: If ``new_name`` is already taken.
            InvalidCalendarNameError: If ``new_name`` is malformed.
        """
        calendar = self.get_calendar(old_name)
        new_name = self.normalize_name(new_name)
        if new_name == old_name:
            return calendar
        if new_name in self._calendars:
            raise DuplicateCalendarError(f"Calendar with name '{new_name}' already exists")

        # Rebuild the dict so the calendar keeps its registration position
        self._calendars = {
            (new_name if name == old_name else name): value
            for name, value in self._calendars.items()
        }
        calendar.name = new_name

        if self._active_calendar_name == old_name:
            self._active_calendar_name = new_name
        logger.info(f"Renamed calendar '{old_name}' to '{new_name}'")
        return calendar
