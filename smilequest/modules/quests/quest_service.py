"""
Quest Service
=============

Purpose
-------
Per-aligner composite goal: wear adherence, a photo set, and lessons. The
quest is created lazily on first interaction with the aligner and finalized
exactly once when the aligner's wear period ends.

Domain
------
- target_percent comes from the phase policy, target_minutes_per_day from the
  aligner's wear-time setting, both snapshotted at creation
- photo_set_done and lessons_done only move forward
- finalize: adherence = round(sum(wear) / sum(target) x 100) over every daily
  row of the aligner; completed iff adherence >= target_percent AND
  photo_set_done AND lessons_done >= lessons_target, else failed
- active -> {completed, failed} is a conditional UPDATE ... WHERE
  status = 'active'; only the caller that wins it awards reward coins/XP
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from sqlalchemy.exc import IntegrityError

from smilequest.core.logging.logger import get_logger
from smilequest.database.models import AlignerQuest, DailyCompliance
from smilequest.database.models.enums import QuestStatus, TransactionKind, TransactionSource
from smilequest.modules.shared.base_repository import BaseRepository
from smilequest.modules.shared.base_service import BaseService, Clock
from smilequest.modules.shared.formulas import adherence_percent
from smilequest.modules.shared.intervals import ensure_utc, utc_date, utc_now
from smilequest.modules.wear.repository import DailyComplianceRepository

if TYPE_CHECKING:
    from logging import Logger

    from smilequest.core.config.manager import ConfigManager
    from smilequest.core.database.retry_policy import DatabaseRetryPolicy
    from smilequest.core.database.service import DatabaseService
    from smilequest.core.event.bus import EventBus
    from smilequest.core.locks import KeyedLockRegistry
    from smilequest.database.models import PointsTransaction
    from smilequest.modules.economy.points_ledger import PointsLedgerService
    from smilequest.modules.treatment.directory import AlignerContext, TreatmentDirectory
    from smilequest.modules.wear.daily_aggregator import DailyAggregator
    from smilequest.modules.wear.session_tracker import SessionTracker


def quest_to_dict(quest: AlignerQuest) -> Dict[str, Any]:
    return {
        "id": quest.id,
        "patient_id": quest.patient_id,
        "aligner_id": quest.aligner_id,
        "status": quest.status,
        "target_percent": quest.target_percent,
        "target_minutes_per_day": quest.target_minutes_per_day,
        "photo_set_done": bool(quest.photo_set_done),
        "lessons_done": quest.lessons_done,
        "lessons_target": quest.lessons_target,
        "reward_coins": quest.reward_coins,
        "reward_xp": quest.reward_xp,
        "adherence_percent_final": quest.adherence_percent_final,
        "finalized_at": ensure_utc(quest.finalized_at).isoformat() if quest.finalized_at else None,
    }


class AlignerQuestRepository(BaseRepository[AlignerQuest]):
    async def find_for_aligner(self, session, aligner_id: str) -> Optional[AlignerQuest]:
        return await self.find_one_where(session, AlignerQuest.aligner_id == aligner_id)


class QuestService(BaseService):
    """
    Public Methods
    --------------
    - ensure_quest() -> Lazily create the aligner's quest
    - mark_photo_set_done() -> One-way flag, set by the photo upload flow
    - increment_lessons_done() -> +1, called by the education module
    - get_quest_status() -> Quest plus adherence to date
    - finalize_quest_for_aligner() -> Terminal outcome and reward, exactly once
    """

    def __init__(
        self,
        db: DatabaseService,
        directory: TreatmentDirectory,
        tracker: SessionTracker,
        aggregator: DailyAggregator,
        ledger: PointsLedgerService,
        locks: KeyedLockRegistry,
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
        self._ledger = ledger
        self._locks = locks
        self._retry = retry_policy
        self._quests = AlignerQuestRepository(
            AlignerQuest, get_logger(f"{__name__}.AlignerQuestRepository")
        )
        self._daily = DailyComplianceRepository(
            DailyCompliance, get_logger(f"{__name__}.DailyComplianceRepository")
        )

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def ensure_quest(self, ctx: AlignerContext) -> AlignerQuest:
        """Return the aligner's quest, creating it on first use."""
        async with self._db.get_session() as session:
            existing = await self._quests.find_for_aligner(session, ctx.aligner_id)
        if existing is not None:
            return existing

        try:
            async with self._db.get_transaction() as session:
                quest = self._quests.add(
                    session,
                    AlignerQuest(
                        patient_id=ctx.patient_id,
                        aligner_id=ctx.aligner_id,
                        treatment_id=ctx.treatment_id,
                        phase_id=ctx.phase_id,
                        target_percent=ctx.target_percent,
                        target_minutes_per_day=ctx.target_minutes,
                        photo_set_done=False,
                        lessons_done=0,
                        lessons_target=int(self.get_config("quests.lessons_target", 1)),
                        reward_coins=int(self.get_config("quests.reward_coins", 200)),
                        reward_xp=int(self.get_config("quests.reward_xp", 120)),
                        status=QuestStatus.ACTIVE.value,
                    ),
                )
                await session.flush()
        except IntegrityError:
            # Another request created it first.
            async with self._db.get_session() as session:
                existing = await self._quests.find_for_aligner(session, ctx.aligner_id)
            if existing is None:
                raise
            return existing

        self.log_operation(
            "quest_created",
            patient_id=ctx.patient_id,
            aligner_id=ctx.aligner_id,
            quest_id=quest.id,
            target_percent=quest.target_percent,
        )
        await self.emit_event(
            "quest.created",
            {"patient_id": ctx.patient_id, "aligner_id": ctx.aligner_id, "quest_id": quest.id},
        )
        return quest

    async def mark_photo_set_done(self, patient_id: str, aligner_id: str) -> Dict[str, Any]:
        ctx = await self._resolve_for_patient(patient_id, aligner_id)
        quest = await self.ensure_quest(ctx)

        async with self._db.get_transaction() as session:
            changed = await self._quests.update_where(
                session,
                AlignerQuest.id == quest.id,
                AlignerQuest.photo_set_done.is_(False),
                values={"photo_set_done": True},
            )
            quest = await self._quests.get(session, quest.id)

        self.log_operation(
            "mark_photo_set_done", patient_id=patient_id, aligner_id=aligner_id, changed=bool(changed)
        )
        return quest_to_dict(quest)

    async def increment_lessons_done(self, patient_id: str, aligner_id: str) -> Dict[str, Any]:
        ctx = await self._resolve_for_patient(patient_id, aligner_id)
        quest = await self.ensure_quest(ctx)

        async with self._db.get_transaction() as session:
            await self._quests.update_where(
                session,
                AlignerQuest.id == quest.id,
                values={"lessons_done": AlignerQuest.lessons_done + 1},
            )
            quest = await self._quests.get(session, quest.id)

        self.log_operation(
            "increment_lessons_done",
            patient_id=patient_id,
            aligner_id=aligner_id,
            lessons_done=quest.lessons_done,
        )
        return quest_to_dict(quest)

    async def get_quest_status(self, patient_id: str, aligner_id: str) -> Dict[str, Any]:
        """
        Quest fields plus adherence to date.

        While the quest is active, today's compliance row is refreshed first
        so the figure includes the current partial day.
        """
        ctx = await self._resolve_for_patient(patient_id, aligner_id)
        quest = await self.ensure_quest(ctx)

        if quest.status == QuestStatus.ACTIVE.value:
            await self._aggregator.upsert_daily(ctx, utc_date(self.now()))

        async with self._db.get_session() as session:
            quest = await self._quests.find_for_aligner(session, aligner_id)
            rows = await self._daily.list_for_aligner(session, aligner_id)

        return {
            "quest": quest_to_dict(quest),
            "adherence_percent_to_date": adherence_percent(
                (row.wear_minutes, row.target_minutes) for row in rows
            ),
        }

    async def finalize_quest_for_aligner(self, aligner_id: str) -> Dict[str, Any]:
        """
        Close the aligner's open session and settle its quest.

        Only the first call transitions the quest and pays the reward; later
        calls return the recorded outcome.

        Raises:
            NotFoundError: Unknown aligner
        """
        async with self._db.get_session() as session:
            ctx = await self._directory.get_aligner(session, aligner_id)
        quest = await self.ensure_quest(ctx)

        if quest.status != QuestStatus.ACTIVE.value:
            return self._finalize_result(quest, quest.adherence_percent_final or 0, awarded=False)

        async with self._locks.aligner(aligner_id):
            closed = await self._tracker.close_open_session_unlocked(aligner_id)
            if closed is not None:
                for day in self._tracker.days_touched(closed, utc_date(self.now())):
                    await self._aggregator.upsert_daily_unlocked(ctx, day)

            quest, adherence, won, transaction = await self._retry.execute(
                lambda: self._settle(ctx, quest.id),
                operation_name="quests.finalize",
                context={"aligner_id": aligner_id, "quest_id": quest.id},
            )

        if won:
            self.log_operation(
                "quest_finalized",
                patient_id=ctx.patient_id,
                aligner_id=aligner_id,
                quest_id=quest.id,
                status=quest.status,
                adherence_percent=adherence,
            )
            await self.emit_event(
                "quest.finalized",
                {
                    "patient_id": ctx.patient_id,
                    "aligner_id": aligner_id,
                    "quest_id": quest.id,
                    "status": quest.status,
                    "adherence_percent": adherence,
                },
            )
        if transaction is not None:
            await self._ledger.publish_adjustment(transaction)

        return self._finalize_result(quest, adherence, awarded=transaction is not None)

    # ========================================================================
    # PRIVATE
    # ========================================================================

    async def _resolve_for_patient(self, patient_id: str, aligner_id: str) -> AlignerContext:
        async with self._db.get_session() as session:
            return await self._directory.get_aligner_for_patient(session, patient_id, aligner_id)

    async def _settle(
        self, ctx: AlignerContext, quest_id: int
    ) -> Tuple[AlignerQuest, int, bool, Optional[PointsTransaction]]:
        async with self._db.get_transaction() as session:
            quest = await self._quests.get(session, quest_id)
            rows = await self._daily.list_for_aligner(session, ctx.aligner_id)
            adherence = adherence_percent((row.wear_minutes, row.target_minutes) for row in rows)

            ok = (
                adherence >= quest.target_percent
                and bool(quest.photo_set_done)
                and quest.lessons_done >= quest.lessons_target
            )
            status = QuestStatus.COMPLETED if ok else QuestStatus.FAILED

            won = await self._quests.update_where(
                session,
                AlignerQuest.id == quest_id,
                AlignerQuest.status == QuestStatus.ACTIVE.value,
                values={
                    "status": status.value,
                    "adherence_percent_final": adherence,
                    "finalized_at": self.now(),
                },
            )

            transaction = None
            if won == 1 and ok and (quest.reward_coins or quest.reward_xp):
                _, transaction = await self._ledger.adjust_balance(
                    ctx.patient_id,
                    quest.reward_coins,
                    quest.reward_xp,
                    kind=TransactionKind.EARN.value,
                    source=TransactionSource.QUEST.value,
                    metadata={
                        "reason": "aligner_quest_completed",
                        "aligner_id": ctx.aligner_id,
                        "quest_id": quest_id,
                    },
                    session=session,
                )

            await self._quests.refresh(session, quest)

        if won != 1:
            adherence = quest.adherence_percent_final if quest.adherence_percent_final is not None else adherence
        return quest, adherence, won == 1, transaction

    @staticmethod
    def _finalize_result(quest: AlignerQuest, adherence: int, awarded: bool) -> Dict[str, Any]:
        return {
            "quest": quest_to_dict(quest),
            "adherence_percent": adherence,
            "ok": quest.status == QuestStatus.COMPLETED.value,
            "awarded": awarded,
        }
