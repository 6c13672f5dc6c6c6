"""Calendar aggregate: event storage, conflict detection and queries.

A ``Calendar`` owns one IANA timezone and two collections: the stored events
(single events plus every materialized occurrence of a recurring series) and
the recurrence rules themselves. Callers speak calendar-local civil time; the
calendar converts to canonical UTC on the way in and stores only the converted
values. Recurrence rules keep their template in local time, because "every
Monday" is a local-calendar notion.

Because storage is canonical while "what is on date D" is a local question,
date queries look at a widened canonical window and re-admit events by a set
of boundary rules, see ``get_events_on_date``.
"""

import logging
import uuid
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from calendar_engine.config import EngineSettings, get_settings
from calendar_engine.core.errors import (
    ConflictingEventError, EventNotFoundError, InvalidEventError, InvalidTimezoneError
)
from calendar_engine.core.models import (
    ConflictPolicy, Event, EventProperty, sort_events
)
from calendar_engine.core.overlap_engine import ConflictDetector
from calendar_engine.core.recurrence import RecurringEvent
from calendar_engine.core.timezone_converter import TimezoneConverter

# Configure module logger
logger = logging.getLogger(__name__)

PropertyMutator = Callable[[Event, Any], Event]

ONE_DAY = timedelta(days=1)
_PUBLIC_VALUES = {"public", "true", "yes"}
_PRIVATE_VALUES = {"private", "false", "no"}


class Calendar:
    """A named calendar holding single and recurring events in one timezone.

    Attributes:
        name: Calendar name, unique within its registry.
    """

    def __init__(
        self,
        name: str,
        timezone: str,
        converter: Optional[TimezoneConverter] = None,
        settings: Optional[EngineSettings] = None,
    ):
        """Initialize an empty calendar.

        Args:
            name: The calendar name.
            timezone: IANA identifier of the calendar's local zone.
            converter: Shared timezone converter; a new one is created if omitted.
            settings: Engine settings; the process-wide settings if omitted.

        Raises:
            InvalidTimezoneError: If the timezone is not a known IANA zone.
        """
        self._converter = converter or TimezoneConverter()
        if not self._converter.is_valid_timezone(timezone):
            raise InvalidTimezoneError(f"Unknown timezone: {timezone}")

        self.name = name
        self._timezone = timezone
        self._settings = settings or get_settings()
        self._detector = ConflictDetector()

        # Both dicts double as the collection and the lookup index
        self._events: Dict[uuid.UUID, Event] = {}
        self._recurring_events: Dict[uuid.UUID, RecurringEvent] = {}
        # series id -> local occurrence date -> stored occurrence id
        self._occurrence_index: Dict[uuid.UUID, Dict[date, uuid.UUID]] = {}

        self._property_mutators: Dict[EventProperty, PropertyMutator] = {}
        self._initialize_property_mutators()

    def __repr__(self) -> str:
        return f"Calendar(name={self.name!r}, timezone={self._timezone!r}, events={len(self._events)})"

    def __str__(self) -> str:
        return self.name

    def __len__(self) -> int:
        return len(self._events)

    # ------------------------------------------------------------------
    # Timezone handling
    # ------------------------------------------------------------------

    @property
    def timezone(self) -> str:
        return self._timezone

    def set_timezone(self, timezone: str) -> None:
        """Change the calendar's zone, keeping every event's local wall-clock time.

        Stored canonical values are re-projected: each time is read in the old
        zone and re-anchored in the new one. Recurrence rules are already local
        and stay as they are. All new values are computed before any is stored,
        so a failure leaves the calendar unchanged.

        Raises:
            InvalidTimezoneError: If the new zone is not a known IANA zone.
        """
        if not self._converter.is_valid_timezone(timezone):
            raise InvalidTimezoneError(f"Unknown timezone: {timezone}")
        if timezone == self._timezone:
            return

        old_timezone = self._timezone
        reprojected = {}
        for event_id, event in self._events.items():
            local_start = self._converter.from_utc(event.start, old_timezone)
            local_end = self._converter.from_utc(event.end, old_timezone)
            reprojected[event_id] = event.with_times(
                self._converter.to_utc(local_start, timezone),
                self._converter.to_utc(local_end, timezone),
            )

        self._events = reprojected
        self._timezone = timezone
        logger.info(f"Calendar '{self.name}' timezone changed from {old_timezone} to {timezone}")

    def to_canonical(self, event: Event) -> Event:
        """Convert an event expressed in local time to canonical UTC."""
        return event.with_times(
            self._converter.to_utc(event.start, self._timezone),
            self._converter.to_utc(event.end, self._timezone),
        )

    def to_local(self, event: Event) -> Event:
        """Return a view of a stored event expressed in the calendar's local time."""
        return event.with_times(
            self._converter.from_utc(event.start, self._timezone),
            self._converter.from_utc(event.end, self._timezone),
        )

    def _canonical_moment(self, moment: datetime) -> datetime:
        return self._converter.to_utc(moment, self._timezone)

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def _resolve_conflicts(self, candidate: Event, conflicts: List, policy: ConflictPolicy) -> bool:
        """Apply a conflict policy to the conflicts found for a candidate.

        Returns:
            True if the candidate may be admitted.

        Raises:
            ConflictingEventError: If there are conflicts and the policy is STRICT.
        """
        if not conflicts:
            return True
        if policy is ConflictPolicy.ALLOW:
            logger.info(f"Admitting '{candidate.subject}' despite {len(conflicts)} conflict(s)")
            return True

        message = f"Event '{candidate.subject}' conflicts with an existing event"
        logger.warning(f"{message} in calendar '{self.name}'")
        if policy is ConflictPolicy.STRICT:
            raise ConflictingEventError(message)
        return False

    @staticmethod
    def _coerce_policy(policy) -> ConflictPolicy:
        if isinstance(policy, ConflictPolicy):
            return policy
        try:
            return ConflictPolicy(policy)
        except ValueError:
            raise InvalidEventError(f"Unknown conflict policy: {policy}")

    def add_event(self, event: Event, policy: ConflictPolicy = ConflictPolicy.STRICT) -> bool:
        """Admit a single event given in the calendar's local time.

        Args:
            event: The event to add; its times are read in the calendar's zone.
            policy: What to do if the event overlaps a stored one.

        Returns:
            True if the event was stored, False if it was declined.

        Raises:
            ConflictingEventError: If it overlaps and the policy is STRICT.
            InvalidEventError: If the event is missing or already stored.
        """
        if event is None:
            raise InvalidEventError("Event cannot be None")
        policy = self._coerce_policy(policy)
        if event.id in self._events:
            raise InvalidEventError(f"Event {event.id} is already in calendar '{self.name}'")

        canonical = self.to_canonical(event)
        conflicts = self._detector.find_conflicts(canonical, self._events.values())
        if not self._resolve_conflicts(canonical, conflicts, policy):
            return False

        self._events[canonical.id] = canonical
        logger.info(
            f"Added event '{canonical.subject}' ({canonical.start.isoformat()} UTC) "
            f"to calendar '{self.name}'"
        )
        return True

    def add_recurring_event(
        self, recurring_event: RecurringEvent, policy: ConflictPolicy = ConflictPolicy.STRICT
    ) -> bool:
        """Admit a recurring series and all of its occurrences, or none of them.

        Every occurrence is converted to canonical time and checked against the
        stored events and against the other occurrences before anything is
        stored.

        Returns:
            True if the series was stored, False if it was declined.

        Raises:
            ConflictingEventError: If any occurrence overlaps and the policy is STRICT.
            InvalidEventError: If the rule is missing or already stored.
        """
        if recurring_event is None:
            raise InvalidEventError("Recurring event cannot be None")
        policy = self._coerce_policy(policy)
        if recurring_event.series_id in self._recurring_events:
            raise InvalidEventError(
                f"Series {recurring_event.series_id} is already in calendar '{self.name}'"
            )

        local_occurrences = recurring_event.get_all_occurrences()
        occurrences = [self.to_canonical(occurrence) for occurrence in local_occurrences]
        conflicts = self._detector.find_batch_conflicts(occurrences, self._events.values())
        if conflicts and not self._resolve_conflicts(conflicts[0][0], conflicts, policy):
            return False

        self._recurring_events[recurring_event.series_id] = recurring_event
        self._occurrence_index[recurring_event.series_id] = {
            occurrence.start.date(): occurrence.id for occurrence in local_occurrences
        }
        for occurrence in occurrences:
            self._events[occurrence.id] = occurrence

        days = "".join(day.code for day in sorted(recurring_event.weekdays, key=lambda day: day.value))
        logger.info(
            f"Added recurring event '{recurring_event.subject}' ({days}) with "
            f"{len(occurrences)} occurrences to calendar '{self.name}'"
        )
        return True

    def update_event(
        self,
        event_id: uuid.UUID,
        replacement: Event,
        policy: ConflictPolicy = ConflictPolicy.STRICT,
    ) -> bool:
        """Replace a stored event, keeping its identifier.

        The replacement is given in local time. The original is taken out of
        the calendar while the replacement is checked against the remaining
        events, and put back untouched if the replacement conflicts.

        Returns:
            True if the replacement was stored, False if it was declined.

        Raises:
            EventNotFoundError: If no event has the identifier.
            ConflictingEventError: If the replacement conflicts and the policy is STRICT.
        """
        policy = self._coerce_policy(policy)
        original = self._events.get(event_id)
        if original is None:
            raise EventNotFoundError(f"Event not found: {event_id}")
        if replacement is None:
            raise InvalidEventError("Replacement event cannot be None")

        candidate = self.to_canonical(replacement).with_changes(
            id=event_id, series_id=original.series_id
        )

        # Tentatively remove the original so it cannot conflict with itself
        del self._events[event_id]
        try:
            conflicts = self._detector.find_conflicts(candidate, self._events.values())
            admitted = self._resolve_conflicts(candidate, conflicts, policy)
        except ConflictingEventError:
            self._events[event_id] = original
            raise

        if not admitted:
            self._events[event_id] = original
            return False

        self._events[event_id] = candidate
        logger.info(f"Updated event {event_id} ('{candidate.subject}') in calendar '{self.name}'")
        return True

    def delete_event(self, event_id: uuid.UUID) -> Event:
        """Remove a stored event.

        Returns:
            The removed event (in canonical time).

        Raises:
            EventNotFoundError: If no event has the identifier.
        """
        event = self._events.pop(event_id, None)
        if event is None:
            raise EventNotFoundError(f"Event not found: {event_id}")
        logger.info(f"Deleted event {event_id} ('{event.subject}') from calendar '{self.name}'")
        return event

    def delete_series(self, series_id: uuid.UUID) -> int:
        """Remove a recurrence rule and every stored occurrence of it.

        Returns:
            The number of occurrences removed.

        Raises:
            EventNotFoundError: If neither the rule nor any occurrence exists.
        """
        members = [event_id for event_id, event in self._events.items()
                   if event.series_id == series_id]
        rule = self._recurring_events.pop(series_id, None)
        self._occurrence_index.pop(series_id, None)
        if rule is None and not members:
            raise EventNotFoundError(f"Recurring series not found: {series_id}")

        for event_id in members:
            del self._events[event_id]
        logger.info(f"Deleted series {series_id} ({len(members)} occurrences) from '{self.name}'")
        return len(members)

    # ------------------------------------------------------------------
    # Property edits
    # ------------------------------------------------------------------

    def _initialize_property_mutators(self) -> None:
        self._register_mutator(
            EventProperty.SUBJECT, lambda event, value: event.with_changes(subject=str(value))
        )
        self._register_mutator(
            EventProperty.DESCRIPTION,
            lambda event, value: event.with_changes(description=value or ""),
        )
        self._register_mutator(
            EventProperty.LOCATION,
            lambda event, value: event.with_changes(location=value or ""),
        )
        self._register_mutator(EventProperty.START, self._mutate_start)
        self._register_mutator(EventProperty.END, self._mutate_end)
        self._register_mutator(EventProperty.VISIBILITY, self._mutate_visibility)

    def _register_mutator(self, prop: EventProperty, mutator: PropertyMutator) -> None:
        if not isinstance(prop, EventProperty):
            raise InvalidEventError(f"Unsupported event property: {prop}")
        self._property_mutators[prop] = mutator

    def _resolve_local_time(self, current: datetime, value) -> datetime:
        """Turn an edit value into a canonical date-time.

        ``value`` is local time: a datetime, a time (keeping the current local
        date), an ISO date-time string or an "HH:MM" string.
        """
        local_current = self._converter.from_utc(current, self._timezone)
        if isinstance(value, datetime):
            local_value = value
        elif isinstance(value, time):
            local_value = datetime.combine(local_current.date(), value)
        elif isinstance(value, str) and "T" in value:
            local_value = datetime.fromisoformat(value.strip())
        elif isinstance(value, str):
            local_value = datetime.combine(local_current.date(), time.fromisoformat(value.strip()))
        else:
            raise TypeError(f"Unsupported time value: {value!r}")
        return self._converter.to_utc(local_value, self._timezone)

    def _mutate_start(self, event: Event, value) -> Event:
        return event.with_changes(start=self._resolve_local_time(event.start, value))

    def _mutate_end(self, event: Event, value) -> Event:
        return event.with_changes(end=self._resolve_local_time(event.end, value))

    @staticmethod
    def _mutate_visibility(event: Event, value) -> Event:
        if isinstance(value, bool):
            return event.with_changes(is_public=value)
        normalized = str(value).strip().lower()
        if normalized in _PUBLIC_VALUES:
            return event.with_changes(is_public=True)
        if normalized in _PRIVATE_VALUES:
            return event.with_changes(is_public=False)
        raise InvalidEventError(f"Invalid visibility value: {value}")

    def _update_event_property(self, event: Event, prop: EventProperty, value) -> bool:
        """Apply one property mutation to a stored event.

        Returns:
            True if the event was changed; False if the value was rejected or a
            time change would overlap another stored event.
        """
        mutator = self._property_mutators[prop]
        try:
            updated = mutator(event, value)
        except (ValueError, TypeError) as e:
            logger.warning(f"Could not set {prop.value} of '{event.subject}' to {value!r}: {e}")
            return False

        if prop in (EventProperty.START, EventProperty.END):
            if self._detector.has_conflict(updated, self._events.values()):
                logger.warning(f"Moving '{event.subject}' would conflict with an existing event")
                return False

        self._events[event.id] = updated
        logger.debug(f"Set {prop.value} of event {event.id} to {value!r}")
        return True

    def _lookup_property(self, property_name) -> Optional[EventProperty]:
        prop = EventProperty.parse(property_name)
        if prop is None or prop not in self._property_mutators:
            logger.warning(f"Unsupported event property: {property_name}")
            return None
        return prop

    def edit_single_event(self, subject: str, start: datetime, property_name, new_value) -> bool:
        """Edit one property of the event with this subject and local start time.

        Returns:
            True if the event was found and changed. Unknown properties, missing
            events and rejected values all return False.
        """
        prop = self._lookup_property(property_name)
        if prop is None:
            return False
        try:
            event = self.find_event(subject, start)
        except EventNotFoundError:
            logger.warning(f"No event '{subject}' starting at {start} in '{self.name}'")
            return False
        return self._update_event_property(event, prop, new_value)

    def edit_events_from_date(
        self, subject: str, from_start: datetime, property_name, new_value
    ) -> int:
        """Edit every event with this subject starting at or after a local time.

        Returns:
            The number of events changed.
        """
        prop = self._lookup_property(property_name)
        if prop is None:
            return 0
        threshold = self._canonical_moment(from_start)
        matching = [event for event in sort_events(self._events.values())
                    if event.subject == subject and event.start >= threshold]
        return self._edit_matching(matching, prop, new_value)

    def edit_all_events(self, subject: str, property_name, new_value) -> int:
        """Edit every event with this subject.

        Returns:
            The number of events changed.
        """
        prop = self._lookup_property(property_name)
        if prop is None:
            return 0
        matching = [event for event in sort_events(self._events.values())
                    if event.subject == subject]
        return self._edit_matching(matching, prop, new_value)

    def _edit_matching(self, matching: List[Event], prop: EventProperty, new_value) -> int:
        count = 0
        for event in matching:
            if self._update_event_property(self._events[event.id], prop, new_value):
                count += 1
        logger.info(f"Edited {prop.value} on {count} of {len(matching)} matching event(s)")
        return count

    # ------------------------------------------------------------------
    # Lookups and queries
    # ------------------------------------------------------------------

    def get_event(self, event_id: uuid.UUID) -> Event:
        """Return a stored event by identifier.

        Raises:
            EventNotFoundError: If no event has the identifier.
        """
        event = self._events.get(event_id)
        if event is None:
            raise EventNotFoundError(f"Event not found: {event_id}")
        return event

    def get_occurrence(self, series_id: uuid.UUID, day: date) -> Event:
        """Return the stored occurrence a series placed on a local date.

        The occurrence is found even if it has since been edited or moved.

        Raises:
            EventNotFoundError: If the series has no stored occurrence for ``day``.
        """
        event_id = self._occurrence_index.get(series_id, {}).get(day)
        event = self._events.get(event_id) if event_id is not None else None
        if event is None:
            raise EventNotFoundError(f"No occurrence of series {series_id} on {day}")
        return event

    def find_event(self, subject: str, start: datetime) -> Event:
        """Find the event with a subject and a local start time.

        Raises:
            EventNotFoundError: If no stored event matches.
        """
        if subject is None or start is None:
            raise InvalidEventError("Subject and start date/time cannot be None")
        canonical_start = self._canonical_moment(start)
        for event in self._events.values():
            if event.subject == subject and event.start == canonical_start:
                return event
        raise EventNotFoundError(f"Event not found: {subject} at {start}")

    def get_all_events(self) -> List[Event]:
        """All stored events, including materialized occurrences, in canonical time."""
        return sort_events(self._events.values())

    def get_all_recurring_events(self) -> List[RecurringEvent]:
        return sorted(self._recurring_events.values(), key=lambda rule: rule.start)

    def get_filtered_events(self, predicate: Callable[[Event], bool]) -> List[Event]:
        return sort_events(event for event in self._events.values() if predicate(event))

    def _local_day_span(self, event: Event):
        """First and last local dates an event occupies (end exclusive)."""
        local = self.to_local(event)
        last_moment = local.end - timedelta(microseconds=1)
        return local.start.date(), last_moment.date()

    def _candidates(self, first_day: date, last_day: date) -> Iterable[Event]:
        """Stored events whose canonical dates touch the widened window."""
        window_start = first_day - ONE_DAY
        window_end = last_day + ONE_DAY
        return (event for event in self._events.values()
                if event.start.date() <= window_end and event.end.date() >= window_start)

    def _belongs_to_date(self, event: Event, day: date) -> bool:
        """Decide whether a canonical event is reported for a local date.

        Re-admission rules, in canonical terms unless noted:
        1. the event starts or ends on ``day``; this also covers events ending
           on ``day`` before the early-hour cutoff and events starting at
           midnight of ``day``;
        2. the event spans across ``day``;
        3. the event starts on the next day before the early-hour cutoff;
        4. the event's local interval touches ``day``.
        """
        start_day = event.start.date()
        end_day = event.end.date()
        if start_day == day or end_day == day:
            return True
        if start_day < day < end_day:
            return True
        if start_day == day + ONE_DAY and event.start.hour < self._settings.early_hour_cutoff:
            return True
        local_first, local_last = self._local_day_span(event)
        return local_first <= day <= local_last

    def _overlaps_date_range(self, event: Event, start_day: date, end_day: date) -> bool:
        """The per-date rules of ``_belongs_to_date`` applied to every date in a range."""
        event_start_day = event.start.date()
        event_end_day = event.end.date()
        if event_start_day <= end_day and event_end_day >= start_day:
            return True
        if (event_start_day == end_day + ONE_DAY
                and event.start.hour < self._settings.early_hour_cutoff):
            return True
        local_first, local_last = self._local_day_span(event)
        return local_first <= end_day and local_last >= start_day

    def _stored_occurrence(self, series_id: uuid.UUID, day: date) -> Optional[Event]:
        event_id = self._occurrence_index.get(series_id, {}).get(day)
        return self._events.get(event_id) if event_id is not None else None

    def _stored_occurrences_on(self, day: date) -> Dict[uuid.UUID, Event]:
        """Stored occurrences the recurrence rules place on a local date.

        An occurrence that was moved is only kept if it still lands on ``day``.
        """
        found = {}
        for rule in self._recurring_events.values():
            if not rule.occurs_on(day):
                continue
            stored = self._stored_occurrence(rule.series_id, day)
            if stored is not None and self._belongs_to_date(stored, day):
                found[stored.id] = stored
        return found

    def _stored_occurrences_between(self, start_day: date, end_day: date) -> Dict[uuid.UUID, Event]:
        """Stored occurrences whose series date falls in a local date window."""
        found = {}
        for rule in self._recurring_events.values():
            for day in rule.get_occurrence_dates_between(start_day, end_day):
                stored = self._stored_occurrence(rule.series_id, day)
                if stored is not None and self._overlaps_date_range(stored, start_day, end_day):
                    found[stored.id] = stored
        return found

    def get_events_on_date(self, day: date) -> List[Event]:
        """Events that occur on a local calendar date.

        Candidates are drawn from a canonical window one day wider on each
        side, re-admitted by ``_belongs_to_date``, merged with the occurrences
        the recurrence rules place on ``day``, and de-duplicated by identifier.

        Returns:
            Matching stored events in canonical time, sorted by start.
        """
        if day is None:
            raise ValueError("Date cannot be None")

        found = {event.id: event for event in self._candidates(day, day)
                 if self._belongs_to_date(event, day)}
        found.update(self._stored_occurrences_on(day))
        return sort_events(found.values())

    def get_events_in_range(self, start_day: date, end_day: date) -> List[Event]:
        """Events that occur on any local date in an inclusive range.

        Equivalent to the de-duplicated union of ``get_events_on_date`` over
        every date in the range.

        Raises:
            ValueError: If ``start_day`` is after ``end_day``.
        """
        if start_day is None or end_day is None:
            raise ValueError("Dates cannot be None")
        if start_day > end_day:
            raise ValueError("Start date cannot be after end date")

        found = {event.id: event for event in self._candidates(start_day, end_day)
                 if self._overlaps_date_range(event, start_day, end_day)}
        found.update(self._stored_occurrences_between(start_day, end_day))
        return sort_events(found.values())

    def is_busy(self, moment: datetime) -> bool:
        """Check whether any stored event occupies a moment.

        Naive moments are local time; aware moments are converted directly.
        Events occupy ``[start, end)``. Every occurrence of a recurring event
        is stored, so an edited or moved occurrence is checked where it now is.
        """
        if moment is None:
            raise ValueError("DateTime cannot be None")

        canonical = self._canonical_moment(moment)
        return any(event.contains(canonical) for event in self._events.values())
