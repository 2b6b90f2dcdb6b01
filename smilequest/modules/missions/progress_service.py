"""
Mission Progress Service
========================

Purpose
-------
Evaluate a patient's open missions (`available` / `in_progress`) against
daily compliance, streaks, counted events and treatment progress, and award
points exactly once per completion.

Completion Rules
----------------
- time_based + daily: completed iff the day is compliant
- days_streak: progress = min(streak, target); completed at streak >= target,
  in_progress while streak > 0. Milestones (frequency `once`) count the
  streak from the active treatment's start.
- total_count: each recorded event adds one; completed at the target
- percentage: current_aligner / total_aligners x 100 against the target

Exactly-Once Awards
-------------------
The completion edge is a conditional UPDATE ... WHERE status IN
('available', 'in_progress'). Only the caller whose update matched a row
appends the ledger entry, in the same transaction. A concurrent
re-evaluation matches zero rows and awards nothing; lost insert races on the
balance row are retried by DatabaseRetryPolicy.

Failure Isolation
-----------------
Each mission is evaluated in its own transaction. A failure is logged with
the mission context and the loop moves on, so one broken template never
blocks the others or the daily aggregation that triggered the evaluation.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from smilequest.core.logging.logger import get_logger
from smilequest.database.models import DailyCompliance, MissionInstance, MissionTemplate
from smilequest.database.models.enums import (
    CompletionCriteria,
    MissionCategory,
    MissionFrequency,
    MissionStatus,
    TransactionKind,
    TransactionSource,
)
from smilequest.modules.shared.base_repository import BaseRepository
from smilequest.modules.shared.base_service import BaseService, Clock
from smilequest.modules.shared.exceptions import NotFoundError
from smilequest.modules.shared.formulas import mission_reward, treatment_progress_percent
from smilequest.modules.shared.intervals import ensure_utc, utc_now
from smilequest.modules.wear.repository import DailyComplianceRepository

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from smilequest.core.config.manager import ConfigManager
    from smilequest.core.database.retry_policy import DatabaseRetryPolicy
    from smilequest.core.database.service import DatabaseService
    from smilequest.core.event.bus import EventBus
    from smilequest.database.models import PointsTransaction
    from smilequest.modules.economy.points_ledger import PointsLedgerService
    from smilequest.modules.treatment.directory import TreatmentDirectory
    from smilequest.modules.wear.streak_calculator import StreakCalculator


_USAGE_CATEGORIES = (MissionCategory.USAGE.value, MissionCategory.MILESTONES.value)


@dataclass(frozen=True)
class MissionAward:
    """A completion this call won, with the ledger entry it produced."""

    mission_id: int
    template_id: str
    patient_id: str
    coins: int
    xp: int
    transaction: PointsTransaction


class MissionInstanceRepository(BaseRepository[MissionInstance]):
    async def find_open_for_patient(
        self, session: AsyncSession, patient_id: str
    ) -> List[MissionInstance]:
        return await self.find_many_where(
            session,
            MissionInstance.patient_id == patient_id,
            MissionInstance.status.in_(MissionStatus.open_statuses()),
            order_by=MissionInstance.id,
        )


class MissionProgressService(BaseService):
    """
    Public Methods
    --------------
    - update_usage_missions() -> Re-evaluate wear-driven missions for one day
    - record_mission_event() -> Count one event toward a total_count mission
    - update_treatment_progress_missions() -> Re-evaluate percentage missions
    - activate_missions_for_aligner() -> available -> in_progress on aligner trigger
    - expire_missions() -> available/in_progress -> expired past the deadline
    """

    def __init__(
        self,
        db: DatabaseService,
        directory: TreatmentDirectory,
        streaks: StreakCalculator,
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
        self._streaks = streaks
        self._ledger = ledger
        self._retry = retry_policy
        self._missions = MissionInstanceRepository(
            MissionInstance, get_logger(f"{__name__}.MissionInstanceRepository")
        )
        self._daily = DailyComplianceRepository(
            DailyCompliance, get_logger(f"{__name__}.DailyComplianceRepository")
        )

    # ========================================================================
    # PUBLIC API - Evaluation
    # ========================================================================

    async def update_usage_missions(
        self, patient_id: str, aligner_id: str, day: date
    ) -> List[MissionAward]:
        """
        Re-evaluate the patient's open usage and milestone missions.

        Idempotent: a mission already completed is not open, so it is never
        re-evaluated and never re-awarded.

        Returns:
            Awards this call produced (empty on a no-op re-evaluation)
        """
        async with self._db.get_session() as session:
            missions = await self._missions.find_open_for_patient(session, patient_id)
            if not missions:
                return []
            daily = await self._daily.find_for_day(session, aligner_id, day)
            if daily is None:
                return []
            treatment_start = await self._directory.get_active_treatment_start(session, patient_id)

            streak_cache: Dict[Optional[date], int] = {}
            outcomes: List[Tuple[MissionInstance, int, str]] = []
            for mission in missions:
                template = mission.template
                if template is None or template.category not in _USAGE_CATEGORIES:
                    continue
                try:
                    outcome = await self._evaluate_usage(
                        session, mission, template, daily, day, treatment_start, streak_cache
                    )
                except Exception as exc:
                    self.log_error(
                        "evaluate_usage_mission",
                        exc,
                        patient_id=patient_id,
                        mission_id=mission.id,
                        template_id=mission.mission_template_id,
                    )
                    continue
                if outcome is not None:
                    outcomes.append((mission, *outcome))

        return await self._apply_outcomes(patient_id, outcomes, "update_usage_missions")

    async def update_treatment_progress_missions(self, patient_id: str) -> List[MissionAward]:
        async with self._db.get_session() as session:
            progress = await self._directory.get_treatment_progress(session, patient_id)
            if progress is None:
                return []
            missions = await self._missions.find_open_for_patient(session, patient_id)

        percent = treatment_progress_percent(progress.current_aligner, progress.total_aligners)

        outcomes: List[Tuple[MissionInstance, int, str]] = []
        for mission in missions:
            template = mission.template
            if template is None or template.completion_criteria != CompletionCriteria.PERCENTAGE.value:
                continue
            target = self._target_for(mission, template)
            if percent >= target:
                status = MissionStatus.COMPLETED.value
            elif percent > 0:
                status = MissionStatus.IN_PROGRESS.value
            else:
                status = mission.status
            new_progress = min(percent, target)
            if new_progress != mission.progress or status != mission.status:
                outcomes.append((mission, new_progress, status))

        self.log_operation(
            "update_treatment_progress_missions",
            patient_id=patient_id,
            treatment_percent=percent,
            candidates=len(outcomes),
        )
        return await self._apply_outcomes(patient_id, outcomes, "update_treatment_progress_missions")

    async def record_mission_event(self, patient_id: str, template_id: str) -> Dict[str, Any]:
        """
        Count one occurrence toward an open total_count mission.

        Raises:
            NotFoundError: The patient has no open mission for the template
        """
        async with self._db.get_session() as session:
            mission = await self._missions.find_one_where(
                session,
                MissionInstance.patient_id == patient_id,
                MissionInstance.mission_template_id == template_id,
                MissionInstance.status.in_(MissionStatus.open_statuses()),
                order_by=MissionInstance.id,
            )
        if mission is None:
            raise NotFoundError("Mission", template_id)

        result, award = await self._retry.execute(
            lambda: self._increment(mission.id),
            operation_name="missions.record_event",
            context={"patient_id": patient_id, "mission_id": mission.id},
        )
        if award is not None:
            await self._publish_award(award)
        return result

    # ========================================================================
    # PUBLIC API - Lifecycle
    # ========================================================================

    async def activate_missions_for_aligner(self, patient_id: str, aligner_number: int) -> List[int]:
        """Move `available` missions triggered by this aligner number to in_progress."""
        now = self.now()
        activated: List[int] = []

        async with self._db.get_transaction() as session:
            candidates = await self._missions.find_many_where(
                session,
                MissionInstance.patient_id == patient_id,
                MissionInstance.status == MissionStatus.AVAILABLE.value,
                MissionInstance.trigger_aligner_number == aligner_number,
            )
            for mission in candidates:
                won = await self._missions.update_where(
                    session,
                    MissionInstance.id == mission.id,
                    MissionInstance.status == MissionStatus.AVAILABLE.value,
                    values={
                        "status": MissionStatus.IN_PROGRESS.value,
                        "started_at": now,
                        "auto_activated": True,
                    },
                )
                if won == 1:
                    activated.append(mission.id)

        for mission_id in activated:
            await self.emit_event(
                "mission.activated",
                {"patient_id": patient_id, "mission_id": mission_id, "aligner_number": aligner_number},
            )
        self.log_operation(
            "activate_missions_for_aligner",
            patient_id=patient_id,
            aligner_number=aligner_number,
            activated=len(activated),
        )
        return activated

    async def expire_missions(
        self, patient_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> List[int]:
        """
        Expire open missions whose deadline has passed.

        Safe to run as a periodic sweep across all patients (patient_id=None).
        Never awards points.
        """
        now = ensure_utc(now or self.now())
        conditions = [
            MissionInstance.status.in_(MissionStatus.open_statuses()),
            MissionInstance.expires_at.is_not(None),
            MissionInstance.expires_at < now,
        ]
        if patient_id is not None:
            conditions.append(MissionInstance.patient_id == patient_id)

        expired: List[Tuple[int, str]] = []
        async with self._db.get_transaction() as session:
            candidates = await self._missions.find_many_where(session, *conditions)
            for mission in candidates:
                won = await self._missions.update_where(
                    session,
                    MissionInstance.id == mission.id,
                    *conditions,
                    values={"status": MissionStatus.EXPIRED.value},
                )
                if won == 1:
                    expired.append((mission.id, mission.patient_id))

        for mission_id, owner in expired:
            await self.emit_event("mission.expired", {"patient_id": owner, "mission_id": mission_id})
        self.log_operation("expire_missions", patient_id=patient_id, expired=len(expired))
        return [mission_id for mission_id, _ in expired]

    # ========================================================================
    # PRIVATE - Evaluation
    # ========================================================================

    async def _evaluate_usage(
        self,
        session: AsyncSession,
        mission: MissionInstance,
        template: MissionTemplate,
        daily: DailyCompliance,
        day: date,
        treatment_start: Optional[date],
        streak_cache: Dict[Optional[date], int],
    ) -> Optional[Tuple[int, str]]:
        target = self._target_for(mission, template)
        criteria = template.completion_criteria

        if criteria == CompletionCriteria.TIME_BASED.value and template.frequency == MissionFrequency.DAILY.value:
            if not daily.is_day_ok:
                return None
            return target, MissionStatus.COMPLETED.value

        if criteria == CompletionCriteria.DAYS_STREAK.value:
            start = treatment_start if template.frequency == MissionFrequency.ONCE.value else None
            if start not in streak_cache:
                streak_cache[start] = await self._streaks.trailing_ok_streak(
                    mission.patient_id, day, start, session=session
                )
            streak = streak_cache[start]

            if streak >= target:
                status = MissionStatus.COMPLETED.value
            elif streak > 0:
                status = MissionStatus.IN_PROGRESS.value
            else:
                status = mission.status
            progress = min(streak, target)
            if progress == mission.progress and status == mission.status:
                return None
            return progress, status

        return None

    @staticmethod
    def _target_for(mission: MissionInstance, template: MissionTemplate) -> int:
        return max(1, mission.target_value or template.target_value or 1)

    # ========================================================================
    # PRIVATE - Writes
    # ========================================================================

    async def _apply_outcomes(
        self,
        patient_id: str,
        outcomes: List[Tuple[MissionInstance, int, str]],
        operation: str,
    ) -> List[MissionAward]:
        awards: List[MissionAward] = []
        for mission, progress, status in outcomes:
            try:
                award = await self._retry.execute(
                    lambda mission_id=mission.id, progress=progress, status=status: self._apply_progress(
                        mission_id, progress, status
                    ),
                    operation_name=f"missions.{operation}",
                    context={"patient_id": patient_id, "mission_id": mission.id},
                )
            except Exception as exc:
                self.log_error(
                    operation,
                    exc,
                    patient_id=patient_id,
                    mission_id=mission.id,
                    template_id=mission.mission_template_id,
                )
                continue
            if award is not None:
                await self._publish_award(award)
                awards.append(award)
        return awards

    async def _apply_progress(
        self, mission_id: int, progress: int, status: str
    ) -> Optional[MissionAward]:
        async with self._db.get_transaction() as session:
            if status == MissionStatus.COMPLETED.value:
                return await self._complete_in_session(session, mission_id, progress)

            await self._missions.update_where(
                session,
                MissionInstance.id == mission_id,
                MissionInstance.status.in_(MissionStatus.open_statuses()),
                values={"progress": progress, "status": status},
            )
            return None

    async def _increment(self, mission_id: int) -> Tuple[Dict[str, Any], Optional[MissionAward]]:
        async with self._db.get_transaction() as session:
            mission = await self._missions.get_for_update(session, mission_id)
            if mission is None:
                raise NotFoundError("Mission", mission_id)

            target = self._target_for(mission, mission.template)
            if mission.status not in MissionStatus.open_statuses():
                return self._mission_summary(mission, target, 0), None

            new_progress = min(mission.progress + 1, target)
            if new_progress >= target:
                award = await self._complete_in_session(session, mission_id, new_progress)
                await self._missions.refresh(session, mission)
                return self._mission_summary(mission, target, award.coins if award else 0), award

            mission.progress = new_progress
            mission.status = MissionStatus.IN_PROGRESS.value
            await session.flush()
            return self._mission_summary(mission, target, 0), None

    async def _complete_in_session(
        self, session: AsyncSession, mission_id: int, progress: int
    ) -> Optional[MissionAward]:
        won = await self._missions.update_where(
            session,
            MissionInstance.id == mission_id,
            MissionInstance.status.in_(MissionStatus.open_statuses()),
            values={
                "status": MissionStatus.COMPLETED.value,
                "progress": progress,
                "completed_at": self.now(),
            },
        )
        if won != 1:
            self.log.info(
                "Mission completion already recorded; no award",
                extra={"mission_id": mission_id},
            )
            return None

        mission = await self._missions.get(session, mission_id)
        await self._missions.refresh(session, mission)
        template = mission.template
        coins, xp = mission_reward(template.base_points, template.bonus_points)
        mission.points_earned = coins

        _, transaction = await self._ledger.adjust_balance(
            mission.patient_id,
            coins,
            xp,
            kind=TransactionKind.EARN.value,
            source=TransactionSource.MISSION.value,
            metadata={
                "reason": "mission_completed",
                "mission_id": mission.id,
                "template_id": template.id,
                "template_name": template.name,
            },
            session=session,
        )
        return MissionAward(
            mission_id=mission.id,
            template_id=template.id,
            patient_id=mission.patient_id,
            coins=coins,
            xp=xp,
            transaction=transaction,
        )

    async def _publish_award(self, award: MissionAward) -> None:
        self.log_operation(
            "mission_completed",
            patient_id=award.patient_id,
            mission_id=award.mission_id,
            template_id=award.template_id,
            coins=award.coins,
            xp=award.xp,
        )
        await self.emit_event(
            "mission.completed",
            {
                "patient_id": award.patient_id,
                "mission_id": award.mission_id,
                "template_id": award.template_id,
                "coins": award.coins,
                "xp": award.xp,
            },
        )
        await self._ledger.publish_adjustment(award.transaction)

    @staticmethod
    def _mission_summary(mission: MissionInstance, target: int, points_awarded: int) -> Dict[str, Any]:
        return {
            "mission_id": mission.id,
            "template_id": mission.mission_template_id,
            "status": mission.status,
            "progress": mission.progress,
            "target_value": target,
            "points_awarded": points_awarded,
        }
