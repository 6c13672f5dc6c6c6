"""Timezone conversion between civil date-times.

All conversions go through pytz so that IANA rules (including daylight saving
transitions) are applied. Inputs and outputs are naive civil date-times; an
aware input is taken at face value and its own offset wins over the source
zone argument.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

import pytz

from calendar_engine.config import CANONICAL_TIMEZONE
from calendar_engine.core.errors import InvalidTimezoneError

# Configure module logger
logger = logging.getLogger(__name__)


class TimezoneConverter:
    """Stateless converter of civil date-times between IANA zones."""

    @staticmethod
    def is_valid_timezone(name: Optional[str]) -> bool:
        """Check whether a string names a known IANA timezone.

        Args:
            name: The timezone identifier to check, e.g. "America/New_York".

        Returns:
            True if pytz recognizes the identifier, False otherwise.
        """
        if not isinstance(name, str) or not name.strip():
            return False
        try:
            pytz.timezone(name)
        except pytz.exceptions.UnknownTimeZoneError:
            return False
        return True

    def get_zone(self, name: str) -> pytz.BaseTzInfo:
        """Resolve a timezone identifier.

        Raises:
            InvalidTimezoneError: If the identifier is unknown.
        """
        if not self.is_valid_timezone(name):
            raise InvalidTimezoneError(f"Unknown timezone: {name}")
        return pytz.timezone(name)

    def convert(self, value: datetime, from_zone: str, to_zone: str) -> datetime:
        """Convert a civil date-time from one zone to another.

        Args:
            value: The date-time to convert. Naive values are read as wall-clock
                time in ``from_zone``.
            from_zone: IANA identifier of the source zone.
            to_zone: IANA identifier of the target zone.

        Returns:
            A naive date-time holding the wall-clock reading in ``to_zone``.

        Raises:
            InvalidTimezoneError: If either zone identifier is unknown.
        """
        source = self.get_zone(from_zone)
        target = self.get_zone(to_zone)

        # Ensure the value is timezone-aware
        if value.tzinfo is None:
            aware = source.localize(value)
        else:
            aware = value

        converted = aware.astimezone(target)
        return converted.replace(tzinfo=None)

    def to_utc(self, value: datetime, from_zone: str) -> datetime:
        """Convert a civil date-time in ``from_zone`` to naive canonical UTC."""
        if value.tzinfo is not None:
            self.get_zone(from_zone)
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return self.convert(value, from_zone, CANONICAL_TIMEZONE)

    def from_utc(self, value: datetime, to_zone: str) -> datetime:
        """Convert a naive canonical UTC date-time to wall-clock time in ``to_zone``."""
        return self.convert(value, CANONICAL_TIMEZONE, to_zone)

    def get_converter(self, from_zone: str, to_zone: str) -> Callable[[datetime], datetime]:
        """Bind a pair of zones into a single-argument conversion function.

        Both zones are validated up front so the returned function cannot fail
        on an unknown identifier later.
        """
        self.get_zone(from_zone)
        self.get_zone(to_zone)
        return lambda value: self.convert(value, from_zone, to_zone)
