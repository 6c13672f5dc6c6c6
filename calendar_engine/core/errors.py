"""Error kinds raised by the calendar engine.

Every failure the engine can report is a subclass of ``CalendarError`` so that
callers (the command parser, the HTTP layer) can catch the whole family in one
place and still react to the specific kind.
"""


class CalendarError(Exception):
    """Base exception for all calendar engine errors."""
    pass


class DuplicateCalendarError(CalendarError):
    """Exception raised when a calendar name is already taken."""
    pass


class InvalidTimezoneError(CalendarError):
    """Exception raised when a timezone identifier is not a known IANA zone."""
    pass


class CalendarNotFoundError(CalendarError):
    """Exception raised when a calendar (or the active calendar) does not exist."""
    pass


class EventNotFoundError(CalendarError):
    """Exception raised when an event lookup or update finds no event."""
    pass


class ConflictingEventError(CalendarError):
    """Exception raised when an event overlaps an existing one under a strict policy."""
    pass


class InvalidEventError(CalendarError, ValueError):
    """Exception raised for malformed event input.

    Covers empty subjects, end times not after start times, malformed
    recurrence rules and unsupported edit properties.
    """
    pass


class InvalidCalendarNameError(CalendarError, ValueError):
    """Exception raised when a calendar name is empty or malformed."""
    pass
