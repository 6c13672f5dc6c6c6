"""Unit tests for date queries, range queries and availability checks.

Events are stored in UTC while date questions are asked in the calendar's own
zone, so these tests place events near local and canonical midnights in zones
on both sides of UTC.
"""

from datetime import date, datetime, timedelta

import pytest
import pytz

from calendar_engine.config import EngineSettings
from calendar_engine.core.calendar import Calendar
from calendar_engine.core.models import Event
from calendar_engine.core.recurrence import RecurringEvent


def local_event(subject: str, start: datetime, minutes: int = 60) -> Event:
    return Event(subject, start, start + timedelta(minutes=minutes))


def subjects(events):
    return [event.subject for event in events]


class TestDateQueries:
    """Test suite for Calendar.get_events_on_date and get_events_in_range."""

    def setup_method(self):
        """Set up test fixtures before each test method."""
        self.settings = EngineSettings()

    def test_late_event_west_of_utc(self):
        """Test that a local evening event is found on its local date.

        18:30-19:15 at UTC-5 is stored as 23:30 to 00:15 the next day in UTC.
        """
        calendar = Calendar("Home", "Etc/GMT+5", settings=self.settings)
        event = local_event("Dinner", datetime(2024, 6, 3, 18, 30), minutes=45)
        calendar.add_event(event)

        stored = calendar.get_event(event.id)
        assert stored.start == datetime(2024, 6, 3, 23, 30)
        assert stored.end == datetime(2024, 6, 4, 0, 15)

        assert subjects(calendar.get_events_on_date(date(2024, 6, 3))) == ["Dinner"]

    def test_event_local_date_east_of_utc(self):
        """Test that an event whose UTC date is the day before is found locally."""
        calendar = Calendar("Tokyo", "Asia/Tokyo", settings=self.settings)
        # 07:00-08:00 JST is 22:00-23:00 UTC on the previous day
        calendar.add_event(local_event("Breakfast", datetime(2024, 6, 4, 7, 0)))

        assert subjects(calendar.get_events_on_date(date(2024, 6, 4))) == ["Breakfast"]

    def test_early_hour_next_day_event(self):
        """Test that a late local event stored early on the next UTC day is reported."""
        calendar = Calendar("Work", "America/New_York", settings=self.settings)
        # 23:00 EDT is 03:00 UTC on the next day
        calendar.add_event(local_event("Deploy", datetime(2024, 6, 3, 23, 0), minutes=30))

        assert subjects(calendar.get_events_on_date(date(2024, 6, 3))) == ["Deploy"]

    def test_unrelated_dates_excluded(self):
        calendar = Calendar("Work", "America/New_York", settings=self.settings)
        calendar.add_event(local_event("Standup", datetime(2024, 6, 3, 9, 0)))
        calendar.add_event(local_event("Retro", datetime(2024, 6, 5, 12, 0)))

        assert subjects(calendar.get_events_on_date(date(2024, 6, 3))) == ["Standup"]
        assert subjects(calendar.get_events_on_date(date(2024, 6, 5))) == ["Retro"]
        assert calendar.get_events_on_date(date(2024, 6, 10)) == []

    def test_multi_day_event_reported_on_every_day(self):
        calendar = Calendar("Work", "America/New_York", settings=self.settings)
        calendar.add_event(Event("Offsite", datetime(2024, 6, 3, 9, 0), datetime(2024, 6, 6, 17, 0)))

        for day in (3, 4, 5, 6):
            assert subjects(calendar.get_events_on_date(date(2024, 6, day))) == ["Offsite"]

    def test_all_day_event(self):
        calendar = Calendar("Work", "America/New_York", settings=self.settings)
        calendar.add_event(Event.all_day_event("Holiday", date(2024, 7, 4)))

        assert subjects(calendar.get_events_on_date(date(2024, 7, 4))) == ["Holiday"]

    def test_date_query_is_idempotent(self):
        """Test that repeated queries return the same events without duplicates."""
        calendar = Calendar("Work", "America/New_York", settings=self.settings)
        rule = RecurringEvent("Gym", datetime(2024, 6, 3, 7, 0), datetime(2024, 6, 3, 8, 0),
                              weekdays="MWF", occurrences=3)
        calendar.add_recurring_event(rule)
        calendar.add_event(local_event("Standup", datetime(2024, 6, 5, 9, 0)))

        first = calendar.get_events_on_date(date(2024, 6, 5))
        second = calendar.get_events_on_date(date(2024, 6, 5))

        assert first == second
        assert subjects(first) == ["Gym", "Standup"]
        assert len({event.id for event in first}) == len(first)

    def test_recurring_occurrences_by_date(self):
        calendar = Calendar("Work", "America/New_York", settings=self.settings)
        rule = RecurringEvent("Gym", datetime(2024, 6, 3, 7, 0), datetime(2024, 6, 3, 8, 0),
                              weekdays="MWF", occurrences=3)
        calendar.add_recurring_event(rule)

        assert subjects(calendar.get_events_on_date(date(2024, 6, 7))) == ["Gym"]
        assert calendar.get_events_on_date(date(2024, 6, 4)) == []
        assert calendar.get_events_on_date(date(2024, 6, 10)) == []

    def test_deleted_occurrence_not_reported(self):
        calendar = Calendar("Work", "America/New_York", settings=self.settings)
        rule = RecurringEvent("Gym", datetime(2024, 6, 3, 7, 0), datetime(2024, 6, 3, 8, 0),
                              weekdays="MWF", occurrences=3)
        calendar.add_recurring_event(rule)
        calendar.delete_event(calendar.get_occurrence(rule.series_id, date(2024, 6, 5)).id)

        assert calendar.get_events_on_date(date(2024, 6, 5)) == []

    def test_range_query(self):
        calendar = Calendar("Work", "America/New_York", settings=self.settings)
        calendar.add_event(local_event("Mon", datetime(2024, 6, 3, 9, 0)))
        calendar.add_event(local_event("Wed", datetime(2024, 6, 5, 9, 0)))
        calendar.add_event(local_event("Fri", datetime(2024, 6, 7, 9, 0)))

        assert subjects(calendar.get_events_in_range(date(2024, 6, 4), date(2024, 6, 6))) == ["Wed"]
        assert subjects(calendar.get_events_in_range(date(2024, 6, 3), date(2024, 6, 7))) == [
            "Mon", "Wed", "Fri"
        ]

    @pytest.mark.parametrize("zone", ["America/New_York", "Etc/GMT+5", "Asia/Tokyo", "UTC"])
    def test_range_equals_union_of_dates(self, zone):
        """Test that a range query matches the de-duplicated union of its date queries."""
        calendar = Calendar("Mixed", zone, settings=self.settings)
        for start in (
            datetime(2024, 6, 3, 0, 30),
            datetime(2024, 6, 3, 18, 30),
            datetime(2024, 6, 4, 7, 0),
            datetime(2024, 6, 4, 23, 0),
            datetime(2024, 6, 5, 12, 0),
        ):
            calendar.add_event(local_event(f"At {start:%d %H%M}", start, minutes=45))
        calendar.add_recurring_event(
            RecurringEvent("Gym", datetime(2024, 6, 3, 6, 0), datetime(2024, 6, 3, 6, 30),
                           weekdays="MTWRF", occurrences=5)
        )

        start_day, end_day = date(2024, 6, 3), date(2024, 6, 4)
        union = {event.id for event in calendar.get_events_on_date(start_day)}
        union |= {event.id for event in calendar.get_events_on_date(end_day)}

        in_range = calendar.get_events_in_range(start_day, end_day)
        assert {event.id for event in in_range} == union
        assert len(in_range) == len(union)

    def test_reversed_range_rejected(self):
        calendar = Calendar("Work", "America/New_York", settings=self.settings)
        with pytest.raises(ValueError, match="Start date cannot be after end date"):
            calendar.get_events_in_range(date(2024, 6, 5), date(2024, 6, 3))

    def test_early_hour_cutoff_is_configurable(self):
        """Test that a zero cutoff disables the next-day early-hour rule."""
        calendar = Calendar("Utc", "UTC", settings=EngineSettings(early_hour_cutoff=0))
        calendar.add_event(local_event("Early", datetime(2024, 6, 4, 2, 0)))

        assert calendar.get_events_on_date(date(2024, 6, 3)) == []

        default_calendar = Calendar("Utc", "UTC", settings=EngineSettings())
        default_calendar.add_event(local_event("Early", datetime(2024, 6, 4, 2, 0)))

        assert subjects(default_calendar.get_events_on_date(date(2024, 6, 3))) == ["Early"]

    def test_filtered_events(self):
        calendar = Calendar("Work", "America/New_York", settings=self.settings)
        calendar.add_event(local_event("Standup", datetime(2024, 6, 3, 9, 0)))
        calendar.add_event(local_event("Review", datetime(2024, 6, 3, 11, 0)))

        result = calendar.get_filtered_events(lambda event: event.subject.startswith("R"))
        assert subjects(result) == ["Review"]


class TestIsBusy:
    """Test suite for Calendar.is_busy."""

    def setup_method(self):
        """Set up test fixtures before each test method."""
        self.calendar = Calendar("Work", "America/New_York", settings=EngineSettings())
        self.calendar.add_event(local_event("Standup", datetime(2024, 6, 3, 9, 0), minutes=30))
        self.rule = RecurringEvent("Gym", datetime(2024, 6, 3, 7, 0), datetime(2024, 6, 3, 8, 0),
                                   weekdays="MWF", occurrences=3)
        self.calendar.add_recurring_event(self.rule)

    def test_busy_during_event(self):
        assert self.calendar.is_busy(datetime(2024, 6, 3, 9, 0))
        assert self.calendar.is_busy(datetime(2024, 6, 3, 9, 29))

    def test_free_at_event_end(self):
        assert not self.calendar.is_busy(datetime(2024, 6, 3, 9, 30))
        assert not self.calendar.is_busy(datetime(2024, 6, 3, 8, 59))

    def test_busy_during_recurring_occurrence(self):
        assert self.calendar.is_busy(datetime(2024, 6, 5, 7, 30))
        # Tuesday is not a Gym day
        assert not self.calendar.is_busy(datetime(2024, 6, 4, 7, 30))
        # The series ended after three occurrences
        assert not self.calendar.is_busy(datetime(2024, 6, 10, 7, 30))

    def test_free_after_occurrence_deleted(self):
        self.calendar.delete_event(self.calendar.get_occurrence(self.rule.series_id, date(2024, 6, 5)).id)
        assert not self.calendar.is_busy(datetime(2024, 6, 5, 7, 30))

    def test_aware_moment(self):
        moment = pytz.utc.localize(datetime(2024, 6, 3, 13, 15))
        assert self.calendar.is_busy(moment)

    def test_none_moment_rejected(self):
        with pytest.raises(ValueError):
            self.calendar.is_busy(None)

    def test_moved_occurrence_frees_its_old_slot(self):
        occurrence = self.calendar.get_occurrence(self.rule.series_id, date(2024, 6, 3))
        moved = local_event("Gym", datetime(2024, 6, 4, 12, 0))
        assert self.calendar.update_event(occurrence.id, moved)

        assert not self.calendar.is_busy(datetime(2024, 6, 3, 7, 30))
        assert self.calendar.is_busy(datetime(2024, 6, 4, 12, 30))
        # The other occurrences are untouched
        assert self.calendar.is_busy(datetime(2024, 6, 5, 7, 30))

    def test_edited_occurrence_busy_at_new_time(self):
        assert self.calendar.edit_single_event("Gym", datetime(2024, 6, 5, 7, 0), "start", "06:30")

        assert self.calendar.is_busy(datetime(2024, 6, 5, 6, 45))
        assert not self.calendar.is_busy(datetime(2024, 6, 5, 6, 15))


class TestMovedOccurrences:
    """Test suite for date and range queries over edited recurring occurrences."""

    def setup_method(self):
        """Set up test fixtures before each test method."""
        self.settings = EngineSettings()

    def weekly_gym(self, zone: str, occurrences: int = 1):
        calendar = Calendar("Gym", zone, settings=self.settings)
        rule = RecurringEvent("Gym", datetime(2024, 6, 3, 7, 0), datetime(2024, 6, 3, 8, 0),
                              weekdays="MW", occurrences=occurrences)
        calendar.add_recurring_event(rule)
        return calendar, rule

    def test_updated_occurrence_reported_on_new_date_only(self):
        calendar, rule = self.weekly_gym("America/New_York")
        occurrence = calendar.get_occurrence(rule.series_id, date(2024, 6, 3))
        assert calendar.update_event(occurrence.id, local_event("Gym", datetime(2024, 6, 4, 12, 0)))

        assert calendar.get_events_on_date(date(2024, 6, 3)) == []
        assert subjects(calendar.get_events_on_date(date(2024, 6, 4))) == ["Gym"]
        assert calendar.get_events_in_range(date(2024, 6, 1), date(2024, 6, 3)) == []
        assert subjects(calendar.get_events_in_range(date(2024, 6, 3), date(2024, 6, 4))) == ["Gym"]

    def test_edited_occurrence_reported_on_new_date_only(self):
        calendar, rule = self.weekly_gym("America/New_York")
        # Move the end first so the interval stays valid after each edit
        assert calendar.edit_single_event("Gym", datetime(2024, 6, 3, 7, 0), "end", "2024-06-04T13:00:00")
        assert calendar.edit_single_event("Gym", datetime(2024, 6, 3, 7, 0), "start", "2024-06-04T12:00:00")

        assert calendar.get_events_on_date(date(2024, 6, 3)) == []
        assert subjects(calendar.get_events_on_date(date(2024, 6, 4))) == ["Gym"]
        assert calendar.get_events_in_range(date(2024, 6, 3), date(2024, 6, 3)) == []

    def test_occurrence_moved_within_its_date_reported_once(self):
        calendar, rule = self.weekly_gym("America/New_York")
        assert calendar.edit_single_event("Gym", datetime(2024, 6, 3, 7, 0), "start", "06:00")

        result = calendar.get_events_on_date(date(2024, 6, 3))
        assert len(result) == 1
        assert calendar.to_local(result[0]).start == datetime(2024, 6, 3, 6, 0)

    @pytest.mark.parametrize("zone", ["America/New_York", "Etc/GMT+5", "Asia/Tokyo", "UTC"])
    def test_moved_occurrence_across_zones(self, zone):
        """Test that a moved occurrence leaves its old date in every zone.

        15:00 local keeps the moved occurrence clear of the canonical
        early-hour rule even at UTC+9.
        """
        calendar, rule = self.weekly_gym(zone, occurrences=2)
        occurrence = calendar.get_occurrence(rule.series_id, date(2024, 6, 3))
        assert calendar.update_event(occurrence.id, local_event("Gym", datetime(2024, 6, 4, 15, 0)))

        assert occurrence.id not in {event.id for event in calendar.get_events_on_date(date(2024, 6, 3))}
        assert occurrence.id in {event.id for event in calendar.get_events_on_date(date(2024, 6, 4))}
        assert len(calendar.get_events_on_date(date(2024, 6, 5))) == 1

        start_day, end_day = date(2024, 6, 2), date(2024, 6, 6)
        union = set()
        day = start_day
        while day <= end_day:
            union |= {event.id for event in calendar.get_events_on_date(day)}
            day += timedelta(days=1)

        in_range = calendar.get_events_in_range(start_day, end_day)
        assert {event.id for event in in_range} == union
        assert len(in_range) == 2

        assert occurrence.id not in {
            event.id for event in calendar.get_events_in_range(date(2024, 6, 2), date(2024, 6, 3))
        }
