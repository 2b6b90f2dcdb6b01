"""
Unit tests for SessionTracker.

Tests pause/resume transitions, idempotency, the single-open-session
invariant under concurrent calls, and recomputation of earlier days.
"""

import asyncio
from datetime import date, datetime, timezone

import pytest

from smilequest.database.models import WearSession
from smilequest.modules.shared.exceptions import NotFoundError, PermissionDeniedError

pytestmark = pytest.mark.unit


def at(day, hour, minute=0):
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


async def open_sessions(seed, aligner_id="al-1"):
    return await seed.all(
        WearSession, WearSession.aligner_id == aligner_id, WearSession.ended_at.is_(None)
    )


class TestTransitions:
    async def test_pause_on_untracked_aligner_opens_paused_session(self, container, seeded):
        """Pausing an untracked aligner opens a paused session."""
        transition = await container.tracker.pause("p-1", "al-1", "kid-1")

        assert transition.changed is True
        assert transition.state == "paused"
        assert transition.closed_session is None
        current = await open_sessions(seeded)
        assert len(current) == 1
        assert current[0].state == "paused"
        assert current[0].created_by_user_id == "kid-1"

    async def test_pause_closes_wearing_session(self, container, seeded, clock):
        """Pausing closes the wearing session at the current time."""
        # Arrange
        await container.tracker.resume("p-1", "al-1")
        clock.advance(hours=1)

        # Act
        transition = await container.tracker.pause("p-1", "al-1")

        # Assert
        assert transition.closed_session.state == "wearing"
        assert transition.closed_session.ended_at is not None
        assert await seeded.count(WearSession, WearSession.aligner_id == "al-1") == 2
        assert [s.state for s in await open_sessions(seeded)] == ["paused"]

    async def test_repeated_pause_is_a_no_op(self, container, seeded, clock):
        """A second pause leaves the open session untouched."""
        await container.tracker.pause("p-1", "al-1")
        clock.advance(minutes=5)

        transition = await container.tracker.pause("p-1", "al-1")

        assert transition.changed is False
        assert transition.daily == []
        assert await seeded.count(WearSession, WearSession.aligner_id == "al-1") == 1

    async def test_transition_recomputes_today(self, container, seeded, clock):
        """Every transition refreshes today's compliance row."""
        await seeded.wear_session("al-1", "wearing", at(date(2025, 3, 10), 0))

        transition = await container.tracker.pause("p-1", "al-1")

        assert transition.today.record.date == date(2025, 3, 10)
        assert transition.today.record.wear_minutes == 720

    async def test_pause_after_midnight_recomputes_previous_day(self, container, seeded, clock):
        """Closing a session that began yesterday recomputes yesterday too."""
        # Arrange
        await seeded.wear_session("al-1", "wearing", at(date(2025, 3, 9), 20))
        clock.set(at(date(2025, 3, 10), 2))

        # Act
        transition = await container.tracker.pause("p-1", "al-1")

        # Assert
        by_day = {upsert.record.date: upsert.record.wear_minutes for upsert in transition.daily}
        assert by_day == {date(2025, 3, 9): 240, date(2025, 3, 10): 120}

    async def test_events_published(self, container, seeded, clock, published):
        """Pause and resume publish their wear events."""
        paused = published("wear.paused")
        resumed = published("wear.resumed")

        await container.tracker.pause("p-1", "al-1", "kid-1")
        clock.advance(minutes=30)
        await container.tracker.resume("p-1", "al-1", "kid-1")
        await container.tracker.resume("p-1", "al-1", "kid-1")

        assert len(paused) == 1
        assert len(resumed) == 1
        assert resumed[0]["actor_id"] == "kid-1"

    async def test_ownership_is_checked(self, container, seeded):
        """Foreign and unknown aligners are refused."""
        with pytest.raises(PermissionDeniedError):
            await container.tracker.pause("p-1", "al-other")
        with pytest.raises(NotFoundError):
            await container.tracker.resume("p-1", "al-missing")


class TestConcurrency:
    async def test_single_open_session_under_concurrent_toggles(self, container, seeded):
        """Interleaved toggles leave exactly one open session."""
        # Act
        await asyncio.gather(
            *[
                (container.tracker.pause if i % 2 == 0 else container.tracker.resume)("p-1", "al-1")
                for i in range(8)
            ]
        )

        # Assert
        assert len(await open_sessions(seeded)) == 1

    async def test_concurrent_identical_pauses_open_one_session(self, container, seeded):
        """Parallel pauses change state only once."""
        results = await asyncio.gather(*[container.tracker.pause("p-1", "al-1") for _ in range(5)])

        assert sum(1 for result in results if result.changed) == 1
        assert await seeded.count(WearSession, WearSession.aligner_id == "al-1") == 1


class TestLifecycleHelpers:
    async def test_initial_wearing_session_is_idempotent(self, container, seeded):
        """The initial wearing session is opened only once."""
        first = await container.tracker.ensure_initial_wearing_session("al-1", "clinician-1")
        second = await container.tracker.ensure_initial_wearing_session("al-1", "clinician-1")

        assert first.id == second.id
        assert first.state == "wearing"

    async def test_current_state(self, container, seeded):
        """State is None until a session is opened."""
        assert await container.tracker.get_current_state("al-1") is None

        await container.tracker.pause("p-1", "al-1")

        assert await container.tracker.get_current_state("al-1") == "paused"

    async def test_close_open_session_without_successor(self, container, seeded):
        """Closing without a successor leaves no open session."""
        await container.tracker.resume("p-1", "al-1")

        async with container.locks.aligner("al-1"):
            closed = await container.tracker.close_open_session_unlocked("al-1")

        assert closed is not None
        assert await open_sessions(seeded) == []

    async def test_days_touched_is_bounded_by_lookback(self, container, seeded, config_manager):
        """Days touched by a long session stop at the lookback window."""
        config_manager.set("wear.streak_lookback_days", 3)
        closed = WearSession(
            patient_id="p-1",
            aligner_id="al-1",
            state="wearing",
            started_at=at(date(2025, 3, 1), 8),
            ended_at=at(date(2025, 3, 10), 8),
        )

        days = container.tracker.days_touched(closed, date(2025, 3, 10))

        assert days == [date(2025, 3, 8), date(2025, 3, 9), date(2025, 3, 10)]
