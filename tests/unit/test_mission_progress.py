"""
Unit tests for MissionProgressService.

Tests completion rules per criteria, exactly-once awards (sequential and
concurrent), lifecycle transitions and per-mission failure isolation.
"""

import asyncio
from datetime import date, timedelta

import pytest
from sqlalchemy.dialects import postgresql

from smilequest.database.models import MissionInstance, PatientPoints, PointsTransaction
from smilequest.modules.missions.progress_service import MissionInstanceRepository
from smilequest.modules.shared.exceptions import NotFoundError

pytestmark = pytest.mark.unit

YESTERDAY = date(2025, 3, 9)


async def reload(seed, mission_id):
    rows = await seed.all(MissionInstance, MissionInstance.id == mission_id)
    return rows[0]


async def mission_transactions(seed):
    return await seed.all(
        PointsTransaction,
        PointsTransaction.patient_id == "p-1",
        PointsTransaction.source == "mission",
    )


class TestDailyWearMission:
    async def test_ok_day_completes_and_awards(self, container, seeded):
        """An OK day completes a daily wear mission and pays the reward."""
        # Arrange
        mission = await seeded.mission("daily-wear")
        await seeded.daily("al-1", YESTERDAY, 1140)

        # Act
        awards = await container.missions.update_usage_missions("p-1", "al-1", YESTERDAY)

        # Assert
        assert [award.mission_id for award in awards] == [mission.id]
        stored = await reload(seeded, mission.id)
        assert stored.status == "completed"
        assert stored.points_earned == 75
        assert stored.completed_at is not None
        balance = (await seeded.all(PatientPoints, PatientPoints.patient_id == "p-1"))[0]
        assert (balance.coins, balance.xp) == (75, 37)

    async def test_not_ok_day_leaves_mission_open(self, container, seeded):
        """A short day leaves the mission open."""
        mission = await seeded.mission("daily-wear")
        await seeded.daily("al-1", YESTERDAY, 600)

        awards = await container.missions.update_usage_missions("p-1", "al-1", YESTERDAY)

        assert awards == []
        assert (await reload(seeded, mission.id)).status == "available"

    async def test_no_daily_row_is_a_no_op(self, container, seeded):
        """Without a compliance row nothing changes."""
        await seeded.mission("daily-wear")

        assert await container.missions.update_usage_missions("p-1", "al-1", YESTERDAY) == []

    async def test_reevaluation_never_awards_twice(self, container, seeded):
        """Re-evaluating a completed day never pays again."""
        await seeded.mission("daily-wear")
        await seeded.daily("al-1", YESTERDAY, 1140)

        await container.missions.update_usage_missions("p-1", "al-1", YESTERDAY)
        second = await container.missions.update_usage_missions("p-1", "al-1", YESTERDAY)

        assert second == []
        assert len(await mission_transactions(seeded)) == 1

    async def test_concurrent_evaluations_award_once(self, container, seeded):
        """Parallel evaluations pay once."""
        await seeded.mission("daily-wear")
        await seeded.daily("al-1", YESTERDAY, 1140)

        results = await asyncio.gather(
            *[container.missions.update_usage_missions("p-1", "al-1", YESTERDAY) for _ in range(4)]
        )

        assert sum(len(awards) for awards in results) == 1
        assert len(await mission_transactions(seeded)) == 1

    async def test_completion_events(self, container, seeded, published):
        """Completion publishes mission.completed with the reward."""
        completed = published("mission.completed")
        awarded = published("points.awarded")
        await seeded.mission("daily-wear")
        await seeded.daily("al-1", YESTERDAY, 1140)

        await container.missions.update_usage_missions("p-1", "al-1", YESTERDAY)

        assert completed[0]["coins"] == 75
        assert awarded[0]["source"] == "mission"

    async def test_other_categories_are_ignored(self, container, seeded):
        """Non-usage missions are left to their own hooks."""
        mission = await seeded.mission("brush-teeth", category="hygiene")
        await seeded.daily("al-1", YESTERDAY, 1140)

        await container.missions.update_usage_missions("p-1", "al-1", YESTERDAY)

        assert (await reload(seeded, mission.id)).status == "available"

    async def test_checkin_drives_missions(self, container, seeded):
        """A compliant check-in re-evaluates usage missions without a direct call."""
        mission = await seeded.mission("daily-wear")
        await seeded.daily("al-1", YESTERDAY, 1140)

        await container.aggregator.checkin("p-1", "al-1", "parent-1", YESTERDAY, True)

        assert (await reload(seeded, mission.id)).status == "completed"


class TestStreakMission:
    async def test_partial_streak_is_in_progress(self, container, seeded):
        """A streak short of target records progress."""
        mission = await seeded.mission("three-day-streak", criteria="days_streak", target_value=3)
        await seeded.daily("al-1", YESTERDAY - timedelta(days=1), 1200)
        await seeded.daily("al-1", YESTERDAY, 1200)

        await container.missions.update_usage_missions("p-1", "al-1", YESTERDAY)

        stored = await reload(seeded, mission.id)
        assert stored.status == "in_progress"
        assert stored.progress == 2

    async def test_streak_at_target_completes(self, container, seeded):
        """A streak at target completes the mission."""
        mission = await seeded.mission(
            "three-day-streak", criteria="days_streak", target_value=3, base_points=100, bonus_points=0
        )
        for offset in range(3):
            await seeded.daily("al-1", YESTERDAY - timedelta(days=offset), 1200)

        awards = await container.missions.update_usage_missions("p-1", "al-1", YESTERDAY)

        stored = await reload(seeded, mission.id)
        assert stored.status == "completed"
        assert stored.progress == 3
        assert (awards[0].coins, awards[0].xp) == (100, 50)

    async def test_milestone_counts_from_treatment_start(self, container, seeded):
        """Streak missions never count days before treatment start."""
        # Treatment started 2025-02-01; the scan never looks before it.
        mission = await seeded.mission(
            "first-week", category="milestones", frequency="once", criteria="days_streak", target_value=3
        )
        await seeded.daily("al-1", date(2025, 1, 31), 1200)
        await seeded.daily("al-1", date(2025, 2, 1), 1200)

        await container.missions.update_usage_missions("p-1", "al-1", date(2025, 2, 1))

        stored = await reload(seeded, mission.id)
        assert stored.progress == 1
        assert stored.status == "in_progress"


class TestCountedEvents:
    async def test_events_count_to_completion(self, container, seeded):
        """Each event counts one toward a counted mission."""
        await seeded.mission("photo-check", category="hygiene", criteria="total_count", target_value=2)

        first = await container.missions.record_mission_event("p-1", "photo-check")
        second = await container.missions.record_mission_event("p-1", "photo-check")

        assert (first["status"], first["progress"], first["points_awarded"]) == ("in_progress", 1, 0)
        assert (second["status"], second["progress"], second["points_awarded"]) == ("completed", 2, 75)

    async def test_completed_mission_is_not_found(self, container, seeded):
        """Events for a completed mission find nothing open."""
        await seeded.mission("photo-check", category="hygiene", criteria="total_count", target_value=1)
        await container.missions.record_mission_event("p-1", "photo-check")

        with pytest.raises(NotFoundError):
            await container.missions.record_mission_event("p-1", "photo-check")


class TestTreatmentProgressMission:
    async def test_percentage_target_reached(self, container, seed):
        """Reaching the treatment percentage completes the mission."""
        await seed.treatment(current_aligner=10, total_aligners=20)
        mission = await seed.mission(
            "halfway", category="milestones", frequency="once", criteria="percentage", target_value=50
        )

        awards = await container.missions.update_treatment_progress_missions("p-1")

        assert len(awards) == 1
        assert (await reload(seed, mission.id)).status == "completed"

    async def test_percentage_below_target_tracks_progress(self, container, seed):
        """Below the percentage the mission tracks progress."""
        await seed.treatment(current_aligner=5, total_aligners=20)
        mission = await seed.mission(
            "halfway", category="milestones", frequency="once", criteria="percentage", target_value=50
        )

        await container.missions.update_treatment_progress_missions("p-1")

        stored = await reload(seed, mission.id)
        assert (stored.status, stored.progress) == ("in_progress", 25)


class TestLifecycle:
    async def test_activation_by_aligner_number(self, container, seeded, published):
        """Reaching the trigger aligner activates the mission."""
        activated_events = published("mission.activated")
        triggered = await seeded.mission("aligner-two", trigger_aligner_number=2)
        untouched = await seeded.mission("aligner-five", trigger_aligner_number=5)

        activated = await container.missions.activate_missions_for_aligner("p-1", 2)

        assert activated == [triggered.id]
        assert (await reload(seeded, triggered.id)).status == "in_progress"
        assert (await reload(seeded, untouched.id)).status == "available"
        assert len(activated_events) == 1

    async def test_expiry_never_awards(self, container, seeded, clock):
        """Expired missions never pay."""
        past = clock() - timedelta(hours=1)
        expired = await seeded.mission("daily-wear", expires_at=past)
        live = await seeded.mission("photo-check", criteria="total_count", expires_at=clock() + timedelta(days=1))

        result = await container.missions.expire_missions("p-1")

        assert result == [expired.id]
        assert (await reload(seeded, expired.id)).status == "expired"
        assert (await reload(seeded, live.id)).status == "available"
        assert await seeded.count(PointsTransaction) == 0

    async def test_expired_mission_cannot_complete(self, container, seeded, clock):
        """A mission past its deadline cannot complete."""
        await seeded.mission("daily-wear", expires_at=clock() - timedelta(minutes=1))
        await container.missions.expire_missions()
        await seeded.daily("al-1", YESTERDAY, 1140)

        awards = await container.missions.update_usage_missions("p-1", "al-1", YESTERDAY)

        assert awards == []
        assert await seeded.count(PointsTransaction) == 0


class TestFailureIsolation:
    async def test_one_failing_award_does_not_block_others(self, container, seeded, mocker):
        """One failing award leaves the other missions to complete."""
        # Arrange
        first = await seeded.mission("daily-wear")
        second = await seeded.mission("daily-wear-bonus")
        await seeded.daily("al-1", YESTERDAY, 1140)

        real_adjust = container.ledger.adjust_balance
        calls = []

        async def flaky_adjust(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                raise RuntimeError("ledger unavailable")
            return await real_adjust(*args, **kwargs)

        mocker.patch.object(container.ledger, "adjust_balance", side_effect=flaky_adjust)

        # Act
        awards = await container.missions.update_usage_missions("p-1", "al-1", YESTERDAY)

        # Assert
        assert [award.mission_id for award in awards] == [second.id]
        assert (await reload(seeded, first.id)).status == "available"
        assert (await reload(seeded, second.id)).status == "completed"


class TestRowLocks:
    async def test_locked_mission_read_joins_template_inline(self, mocker):
        """A locked mission read inner-joins its template and locks only the mission row."""
        # Arrange
        session = mocker.MagicMock()
        session.execute = mocker.AsyncMock(return_value=mocker.MagicMock())
        repository = MissionInstanceRepository(MissionInstance, mocker.MagicMock())

        # Act
        await repository.find_one_where(session, MissionInstance.id == 1, for_update=True)

        # Assert
        statement = session.execute.await_args.args[0]
        sql = str(statement.compile(dialect=postgresql.dialect()))
        assert "LEFT OUTER JOIN" not in sql
        assert "JOIN mission_templates" in sql
        assert "FOR UPDATE OF patient_missions" in sql

    async def test_get_for_update_locks_mission_table(self, mocker):
        """Primary-key locking passes the mission table as the lock target."""
        session = mocker.MagicMock()
        session.get = mocker.AsyncMock(return_value=None)
        repository = MissionInstanceRepository(MissionInstance, mocker.MagicMock())

        await repository.get_for_update(session, 7)

        session.get.assert_awaited_once_with(
            MissionInstance, 7, with_for_update={"of": MissionInstance}
        )
