"""
Unit tests for DailyAggregator.

Tests wear-minute computation from sessions, idempotent upserts, caregiver
check-in precedence and the day-completed event.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from smilequest.database.models import DailyCompliance
from smilequest.modules.shared.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

pytestmark = pytest.mark.unit

YESTERDAY = date(2025, 3, 9)
TODAY = date(2025, 3, 10)


def at(day, hour, minute=0):
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


async def seed_split_day(seed, day=YESTERDAY):
    """Wearing 00:00-10:00 and 14:00-23:00 with pauses in between."""
    await seed.wear_session("al-1", "wearing", at(day, 0), at(day, 10))
    await seed.wear_session("al-1", "paused", at(day, 10), at(day, 14))
    await seed.wear_session("al-1", "wearing", at(day, 14), at(day, 23))
    await seed.wear_session("al-1", "paused", at(day, 23), at(day + timedelta(days=1), 0))


class TestUpsertDaily:
    async def test_split_day_is_compliant(self, container, seeded, ctx):
        """Two sessions totalling 1140 minutes make an OK day."""
        # Arrange
        await seed_split_day(seeded)

        # Act
        result = await container.aggregator.upsert_daily(ctx, YESTERDAY)

        # Assert
        assert result.record.wear_minutes == 1140
        assert result.record.target_minutes == 1320
        assert result.record.target_percent == 80
        assert result.record.is_day_ok is True
        assert result.record.source == "session"
        assert result.became_ok is True

    async def test_upsert_is_idempotent(self, container, seeded, ctx):
        """Recomputing a day keeps one row with the same minutes."""
        await seed_split_day(seeded)

        first = await container.aggregator.upsert_daily(ctx, YESTERDAY)
        second = await container.aggregator.upsert_daily(ctx, YESTERDAY)

        assert second.record.id == first.record.id
        assert second.record.wear_minutes == first.record.wear_minutes
        assert second.was_ok is True
        assert second.became_ok is False
        assert await seeded.count(DailyCompliance, DailyCompliance.aligner_id == "al-1") == 1

    async def test_open_session_counts_until_now(self, container, seeded, ctx):
        """An open wearing session counts up to the current time."""
        await seeded.wear_session("al-1", "wearing", at(TODAY, 0))

        result = await container.aggregator.upsert_daily(ctx, TODAY)

        # Clock is frozen at 12:00
        assert result.record.wear_minutes == 720
        assert result.record.is_day_ok is False

    async def test_paused_sessions_do_not_count(self, container, seeded, ctx):
        """Paused time is not wear time."""
        await seeded.wear_session("al-1", "paused", at(YESTERDAY, 0), at(YESTERDAY, 23))

        result = await container.aggregator.upsert_daily(ctx, YESTERDAY)

        assert result.record.wear_minutes == 0
        assert result.record.is_day_ok is False

    async def test_day_without_sessions_gets_a_zero_row(self, container, seeded, ctx):
        """A day with no sessions still gets a zero row."""
        result = await container.aggregator.upsert_daily(ctx, YESTERDAY)

        assert result.record.wear_minutes == 0
        assert result.was_ok is False
        assert result.is_ok is False

    async def test_default_percent_without_phase(self, container, seeded):
        """Aligners without a phase use the default target percent."""
        async with container.db.get_session() as session:
            other = await container.directory.get_aligner(session, "al-other")

        result = await container.aggregator.upsert_daily(other, YESTERDAY)

        assert result.record.target_percent == 80

    async def test_day_completed_emitted_once(self, container, seeded, ctx, published):
        """wear.day_completed fires only on the first OK transition."""
        completed = published("wear.day_completed")
        await seed_split_day(seeded)

        await container.aggregator.upsert_daily(ctx, YESTERDAY)
        await container.aggregator.upsert_daily(ctx, YESTERDAY)

        assert len(completed) == 1
        assert completed[0]["aligner_id"] == "al-1"
        assert completed[0]["date"] == YESTERDAY.isoformat()


class TestCheckin:
    async def test_yes_records_threshold_minutes(self, container, seeded):
        """A yes check-in records exactly the threshold."""
        result = await container.aggregator.checkin("p-1", "al-1", "parent-9", YESTERDAY, True)

        assert result.record.wear_minutes == 1056
        assert result.record.is_day_ok is True
        assert result.record.source == "parent_checkin"
        assert result.record.reported_by_user_id == "parent-9"

    async def test_no_records_zero_minutes(self, container, seeded):
        """A no check-in records zero minutes."""
        result = await container.aggregator.checkin("p-1", "al-1", "parent-9", YESTERDAY, False)

        assert result.record.wear_minutes == 0
        assert result.record.is_day_ok is False

    async def test_checkin_survives_session_recompute(self, container, seeded, ctx):
        """Session recomputes never overwrite a caregiver row."""
        # Arrange
        await container.aggregator.checkin("p-1", "al-1", "parent-9", YESTERDAY, True)
        await seeded.wear_session("al-1", "wearing", at(YESTERDAY, 0), at(YESTERDAY, 1))

        # Act
        result = await container.aggregator.upsert_daily(ctx, YESTERDAY)

        # Assert
        assert result.record.source == "parent_checkin"
        assert result.record.wear_minutes == 1056
        assert result.record.is_day_ok is True

    async def test_checkin_overrides_session_row(self, container, seeded, ctx):
        """A check-in replaces a session-derived row."""
        await seed_split_day(seeded)
        await container.aggregator.upsert_daily(ctx, YESTERDAY)

        result = await container.aggregator.checkin("p-1", "al-1", "parent-9", YESTERDAY, False)

        assert result.record.source == "parent_checkin"
        assert result.record.is_day_ok is False
        assert result.was_ok is True

    async def test_later_checkin_replaces_earlier(self, container, seeded):
        """The latest check-in for a day wins."""
        await container.aggregator.checkin("p-1", "al-1", "parent-9", YESTERDAY, False)

        result = await container.aggregator.checkin("p-1", "al-1", "parent-9", YESTERDAY, True)

        assert result.record.is_day_ok is True
        assert await seeded.count(DailyCompliance, DailyCompliance.aligner_id == "al-1") == 1

    async def test_date_defaults_to_today(self, container, seeded):
        """Check-in without a date targets today."""
        result = await container.aggregator.checkin("p-1", "al-1", None, None, True)

        assert result.record.date == TODAY

    async def test_future_date_is_rejected(self, container, seeded):
        """Check-ins for future days fail on the date field."""
        with pytest.raises(ValidationError) as exc_info:
            await container.aggregator.checkin("p-1", "al-1", None, TODAY + timedelta(days=1), True)

        assert exc_info.value.field == "date"

    async def test_other_patients_aligner_is_denied(self, container, seeded):
        """Checking in another patient's aligner is forbidden."""
        with pytest.raises(PermissionDeniedError):
            await container.aggregator.checkin("p-1", "al-other", None, YESTERDAY, True)

    async def test_unknown_aligner(self, container, seeded):
        """Unknown aligners are not found."""
        with pytest.raises(NotFoundError):
            await container.aggregator.checkin("p-1", "al-missing", None, YESTERDAY, True)

    async def test_checkin_event(self, container, seeded, published):
        """wear.checkin is published for every check-in."""
        checkins = published("wear.checkin")

        await container.aggregator.checkin("p-1", "al-1", "parent-9", YESTERDAY, True)

        assert checkins == [
            {
                "patient_id": "p-1",
                "aligner_id": "al-1",
                "date": YESTERDAY.isoformat(),
                "wore_aligner": True,
                "actor_id": "parent-9",
            }
        ]
