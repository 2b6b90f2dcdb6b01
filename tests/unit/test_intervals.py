"""
Unit tests for half-open interval arithmetic.

Tests day windows, overlap minutes (floor once, clamp) and day enumeration.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from smilequest.modules.shared.intervals import (
    TimeInterval,
    date_range_back,
    day_window,
    ensure_utc,
    overlap_minutes,
)

pytestmark = pytest.mark.unit

DAY = date(2025, 3, 9)


def at(hour, minute=0, second=0, day=DAY):
    return datetime(day.year, day.month, day.day, hour, minute, second, tzinfo=timezone.utc)


class TestDayWindow:
    def test_window_is_one_full_day(self):
        """A day window runs from midnight to the next midnight."""
        window = day_window(DAY)

        assert window.start == at(0)
        assert window.end == at(0, day=date(2025, 3, 10))
        assert window.duration == timedelta(days=1)

    def test_adjacent_windows_share_no_instant(self):
        """Neighbouring day windows do not overlap."""
        first = day_window(DAY)
        second = day_window(DAY + timedelta(days=1))

        assert first.intersection(second) is None


class TestOverlapMinutes:
    def test_two_sessions_in_one_day(self):
        """00:00-10:00 and 14:00-23:00 wear 1140 minutes."""
        sessions = [TimeInterval(at(0), at(10)), TimeInterval(at(14), at(23))]

        assert overlap_minutes(sessions, day_window(DAY)) == 1140

    def test_session_across_midnight_splits_between_days(self):
        """A session over midnight counts on both days."""
        session = TimeInterval(at(22), at(2, day=DAY + timedelta(days=1)))

        assert overlap_minutes([session], day_window(DAY)) == 120
        assert overlap_minutes([session], day_window(DAY + timedelta(days=1))) == 120

    def test_partial_minutes_are_floored_once_over_the_sum(self):
        """Three 20-second slivers add up to one minute."""
        sessions = [
            TimeInterval(at(1, 0, 0), at(1, 0, 20)),
            TimeInterval(at(2, 0, 0), at(2, 0, 20)),
            TimeInterval(at(3, 0, 0), at(3, 0, 20)),
        ]

        assert overlap_minutes(sessions, day_window(DAY)) == 1

    def test_result_is_clamped_to_a_full_day(self):
        """Overlapping sessions never exceed 1440 minutes."""
        whole_day = TimeInterval(at(0), at(0, day=DAY + timedelta(days=1)))

        assert overlap_minutes([whole_day, whole_day], day_window(DAY)) == 1440

    def test_no_sessions_is_zero(self):
        """No sessions means no wear."""
        assert overlap_minutes([], day_window(DAY)) == 0

    def test_session_on_another_day_is_zero(self):
        """Sessions outside the window contribute nothing."""
        session = TimeInterval(at(8, day=DAY - timedelta(days=2)), at(9, day=DAY - timedelta(days=2)))

        assert overlap_minutes([session], day_window(DAY)) == 0


class TestTimeInterval:
    def test_end_before_start_is_rejected(self):
        """An interval cannot end before it starts."""
        with pytest.raises(ValueError):
            TimeInterval(at(10), at(9))

    def test_naive_datetimes_are_treated_as_utc(self):
        """Naive datetimes are read as UTC."""
        interval = TimeInterval(datetime(2025, 3, 9, 8), datetime(2025, 3, 9, 9))

        assert interval.start.tzinfo is not None
        assert interval.start == at(8)

    def test_interval_ending_at_midnight_does_not_touch_next_day(self):
        """An end exactly at midnight belongs to the earlier day."""
        interval = TimeInterval(at(20), at(0, day=DAY + timedelta(days=1)))

        assert list(interval.days()) == [DAY]

    def test_days_lists_every_touched_day(self):
        """Every calendar day the interval touches is listed."""
        interval = TimeInterval(at(23), at(1, day=DAY + timedelta(days=2)))

        assert list(interval.days()) == [DAY, DAY + timedelta(days=1), DAY + timedelta(days=2)]


def test_ensure_utc_converts_other_offsets():
    """Aware datetimes in other offsets convert to UTC."""
    plus_two = timezone(timedelta(hours=2))

    assert ensure_utc(datetime(2025, 3, 9, 10, tzinfo=plus_two)) == at(8)


def test_date_range_back_is_oldest_first():
    """Trailing date ranges are ordered oldest first."""
    days = date_range_back(DAY, 7)

    assert len(days) == 7
    assert days[0] == DAY - timedelta(days=6)
    assert days[-1] == DAY
