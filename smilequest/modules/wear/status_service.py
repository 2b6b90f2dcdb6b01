"""
Wear Status Service
===================

Purpose
-------
Front-end facing facade over the wear engine: current state, today's
compliance, the trailing week, the streak, and a one-shot celebration when
the first status read or resume finds today compliant and not yet rewarded.

Domain
------
- Daily-goal reward: `rewards.daily_goal` coins/XP, granted once per
  (aligner, day). The `daily_goal_awarded` flag on the compliance row is
  flipped by a conditional UPDATE in the same transaction as the ledger
  append, so concurrent status polls can never double-award.
- Weekly view: exactly `wear.weekly_window_days` entries, oldest first,
  days without a row filled with a virtual non-compliant entry.
- Check-in and pause responses never celebrate; the next status read does.
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from smilequest.core.logging.logger import get_logger
from smilequest.database.models import DailyCompliance
from smilequest.database.models.enums import TransactionKind, TransactionSource, WearState
from smilequest.modules.shared.base_service import BaseService, Clock
from smilequest.modules.shared.intervals import date_range_back, utc_date, utc_now

from .repository import DailyComplianceRepository

if TYPE_CHECKING:
    from logging import Logger

    from smilequest.core.config.manager import ConfigManager
    from smilequest.core.database.retry_policy import DatabaseRetryPolicy
    from smilequest.core.database.service import DatabaseService
    from smilequest.core.event.bus import EventBus
    from smilequest.modules.economy.points_ledger import PointsLedgerService
    from smilequest.modules.quests.quest_service import QuestService
    from smilequest.modules.treatment.directory import AlignerContext, TreatmentDirectory

    from .daily_aggregator import DailyAggregator, DailyUpsert
    from .session_tracker import SessionTracker
    from .streak_calculator import StreakCalculator


def daily_to_dict(row: DailyCompliance) -> Dict[str, Any]:
    return {
        "id": str(row.id),
        "patient_id": row.patient_id,
        "aligner_id": row.aligner_id,
        "date": row.date.isoformat(),
        "wear_minutes": row.wear_minutes,
        "target_minutes": row.target_minutes,
        "target_percent": row.target_percent,
        "is_day_ok": bool(row.is_day_ok),
        "source": row.source,
        "is_virtual": False,
    }


class WearStatusService(BaseService):
    """
    Public Methods
    --------------
    - get_status() -> State, today, week, streak, celebration
    - pause() / resume() -> Session transitions with a status snapshot
    - checkin() -> Caregiver report with a status snapshot
    - get_weekly_daily() -> Trailing week, virtual entries for missing days
    """

    def __init__(
        self,
        db: DatabaseService,
        directory: TreatmentDirectory,
        tracker: SessionTracker,
        aggregator: DailyAggregator,
        streaks: StreakCalculator,
        quests: QuestService,
        ledger: PointsLedgerService,
        retry_policy: DatabaseRetryPolicy,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(config_manager, event_bus, logger, clock)
        self._db = db
        self._directory = directory
        self._tracker = tracker
        self._aggregator = aggregator
        self._streaks = streaks
        self._quests = quests
        self._ledger = ledger
        self._retry = retry_policy
        self._daily = DailyComplianceRepository(
            DailyCompliance, get_logger(f"{__name__}.DailyComplianceRepository")
        )

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def get_status(self, patient_id: str, aligner_id: str) -> Dict[str, Any]:
        """
        Full wear status for one aligner.

        Ensures the aligner's quest exists and refreshes today's row, so a
        compliant day that has not been rewarded celebrates on this poll.

        Raises:
            NotFoundError: Unknown aligner
            PermissionDeniedError: Aligner belongs to another patient
        """
        self.log_operation("get_status", patient_id=patient_id, aligner_id=aligner_id)

        async with self._db.get_session() as session:
            ctx = await self._directory.get_aligner_for_patient(session, patient_id, aligner_id)

        await self._quests.ensure_quest(ctx)

        state = await self._tracker.get_current_state(aligner_id) or WearState.WEARING.value
        today = utc_date(self.now())
        result = await self._aggregator.upsert_daily(ctx, today)
        celebration = await self._maybe_award_daily_goal(ctx, result)

        return {
            "patient_id": patient_id,
            "aligner_id": aligner_id,
            "state": state,
            "daily": daily_to_dict(result.record),
            "weekly": await self.get_weekly_daily(patient_id, aligner_id),
            "streak_days": await self._streak_for(ctx.patient_id, today),
            "celebration": celebration,
        }

    async def pause(self, patient_id: str, aligner_id: str, actor_id: Optional[str]) -> Dict[str, Any]:
        transition = await self._tracker.pause(patient_id, aligner_id, actor_id)
        if not transition.changed:
            return await self.get_status(patient_id, aligner_id)

        today = transition.today
        return {
            "patient_id": patient_id,
            "aligner_id": aligner_id,
            "state": transition.state,
            "daily": daily_to_dict(today.record) if today is not None else None,
            "celebration": None,
        }

    async def resume(self, patient_id: str, aligner_id: str, actor_id: Optional[str]) -> Dict[str, Any]:
        transition = await self._tracker.resume(patient_id, aligner_id, actor_id)
        if not transition.changed:
            return await self.get_status(patient_id, aligner_id)

        today = transition.today
        celebration = None
        if today is not None:
            celebration = await self._maybe_award_daily_goal(transition.ctx, today)

        return {
            "patient_id": patient_id,
            "aligner_id": aligner_id,
            "state": transition.state,
            "daily": daily_to_dict(today.record) if today is not None else None,
            "celebration": celebration,
        }

    async def checkin(
        self,
        patient_id: str,
        aligner_id: str,
        actor_id: Optional[str],
        day: Optional[date],
        wore_aligner: bool,
    ) -> Dict[str, Any]:
        result = await self._aggregator.checkin(patient_id, aligner_id, actor_id, day, wore_aligner)
        state = await self._tracker.get_current_state(aligner_id) or WearState.WEARING.value

        return {
            "patient_id": patient_id,
            "aligner_id": aligner_id,
            "state": state,
            "daily": daily_to_dict(result.record),
            "weekly": await self.get_weekly_daily(patient_id, aligner_id),
            "streak_days": await self._streak_for(patient_id, result.record.date),
            "celebration": None,
        }

    async def get_weekly_daily(self, patient_id: str, aligner_id: str) -> List[Dict[str, Any]]:
        window = int(self.get_config("wear.weekly_window_days", 7))
        default_percent = int(self.get_config("wear.default_target_percent", 80))
        days = date_range_back(utc_date(self.now()), window)

        async with self._db.get_session() as session:
            rows = await self._daily.list_for_aligner(session, aligner_id, days[0], days[-1])
        by_date = {row.date: row for row in rows}

        weekly: List[Dict[str, Any]] = []
        for day in days:
            row = by_date.get(day)
            if row is not None:
                weekly.append(daily_to_dict(row))
                continue
            weekly.append(
                {
                    "id": f"virtual-{aligner_id}-{day.isoformat()}",
                    "patient_id": patient_id,
                    "aligner_id": aligner_id,
                    "date": day.isoformat(),
                    "wear_minutes": 0,
                    "target_minutes": 0,
                    "target_percent": default_percent,
                    "is_day_ok": False,
                    "source": None,
                    "is_virtual": True,
                }
            )
        return weekly

    # ========================================================================
    # PRIVATE
    # ========================================================================

    async def _streak_for(self, patient_id: str, end_date: date) -> int:
        async with self._db.get_session() as session:
            start = await self._directory.get_active_treatment_start(session, patient_id)
            return await self._streaks.trailing_ok_streak(patient_id, end_date, start, session=session)

    async def _maybe_award_daily_goal(
        self, ctx: AlignerContext, result: DailyUpsert
    ) -> Optional[Dict[str, Any]]:
        # Any earlier recompute (quest status, pause, finalize) may have taken
        # the flip; the flag decides, not the transition.
        if not result.record.is_day_ok or result.record.daily_goal_awarded:
            return None

        coins = int(self.get_config("rewards.daily_goal.coins", 10))
        xp = int(self.get_config("rewards.daily_goal.xp", 5))
        day = result.record.date

        async def award_once():
            async with self._db.get_transaction() as session:
                won = await self._daily.update_where(
                    session,
                    DailyCompliance.id == result.record.id,
                    DailyCompliance.is_day_ok.is_(True),
                    DailyCompliance.daily_goal_awarded.is_(False),
                    values={"daily_goal_awarded": True},
                )
                if won != 1:
                    return None
                _, transaction = await self._ledger.adjust_balance(
                    ctx.patient_id,
                    coins,
                    xp,
                    kind=TransactionKind.EARN.value,
                    source=TransactionSource.STREAK.value,
                    metadata={
                        "reason": "daily_goal",
                        "aligner_id": ctx.aligner_id,
                        "date": day.isoformat(),
                    },
                    session=session,
                )
            return transaction

        transaction = await self._retry.execute(
            award_once,
            operation_name="wear.daily_goal_award",
            context={"patient_id": ctx.patient_id, "aligner_id": ctx.aligner_id},
        )
        if transaction is None:
            return None

        await self._ledger.publish_adjustment(transaction)
        self.log_operation(
            "daily_goal_awarded",
            patient_id=ctx.patient_id,
            aligner_id=ctx.aligner_id,
            date=day.isoformat(),
            coins=coins,
            xp=xp,
        )
        return {"kind": "daily_goal", "title": "Daily goal reached!", "coins": coins, "xp": xp}
