"""
Daily Aggregator
================

Purpose
-------
Turn wear sessions (or a caregiver check-in) into one DailyCompliance row per
(aligner, UTC calendar day).

Domain
------
- wear_minutes: overlap of every `wearing` session with the half-open day
  window [D 00:00, D+1 00:00), an open session ending at "now", floored once
  and clamped to [0, 1440]
- target_minutes: aligner hours per day x 60
- target_percent: the aligner's phase adherence target (default 80)
- is_day_ok: wear_minutes >= floor(target_minutes x target_percent / 100)
- A `parent_checkin` row is authoritative: session recomputation returns it
  unchanged

Concurrency
-----------
Every write for an aligner happens under that aligner's KeyedLockRegistry
lock. Callers that already hold it (SessionTracker, QuestService) use
`upsert_daily_unlocked`. Each write is one transaction wrapped in
DatabaseRetryPolicy, so a cross-process insert race on (aligner_id, date)
re-reads the winner's row.

After every write the Mission Progress Engine re-evaluates the patient's
usage missions. Its failures are logged and never fail the aggregation.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, NamedTuple, Optional

from smilequest.core.logging.logger import get_logger
from smilequest.database.models import DailyCompliance, WearSession
from smilequest.database.models.enums import ComplianceSource
from smilequest.modules.shared.base_service import BaseService, Clock
from smilequest.modules.shared.exceptions import ValidationError
from smilequest.modules.shared.formulas import is_day_ok
from smilequest.modules.shared.intervals import (
    TimeInterval,
    day_window,
    ensure_utc,
    overlap_minutes,
    utc_date,
    utc_now,
)

from .repository import DailyComplianceRepository, WearSessionRepository

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from smilequest.core.config.manager import ConfigManager
    from smilequest.core.database.retry_policy import DatabaseRetryPolicy
    from smilequest.core.database.service import DatabaseService
    from smilequest.core.event.bus import EventBus
    from smilequest.core.locks import KeyedLockRegistry
    from smilequest.modules.missions.progress_service import MissionProgressService
    from smilequest.modules.treatment.directory import AlignerContext, TreatmentDirectory


class DailyUpsert(NamedTuple):
    record: DailyCompliance
    was_ok: bool
    is_ok: bool

    @property
    def became_ok(self) -> bool:
        return self.is_ok and not self.was_ok


class DailyAggregator(BaseService):
    """
    Public Methods
    --------------
    - compute_wear_minutes() -> Minutes worn on one day, from sessions
    - upsert_daily() -> Recompute and store one day (takes the aligner lock)
    - upsert_daily_unlocked() -> Same, for callers already holding the lock
    - checkin() -> Caregiver yes/no report, authoritative for its day
    """

    def __init__(
        self,
        db: DatabaseService,
        directory: TreatmentDirectory,
        locks: KeyedLockRegistry,
        retry_policy: DatabaseRetryPolicy,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        missions: Optional[MissionProgressService] = None,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(config_manager, event_bus, logger, clock)
        self._db = db
        self._directory = directory
        self._locks = locks
        self._retry = retry_policy
        self._missions = missions
        self._sessions = WearSessionRepository(
            model_class=WearSession,
            logger=get_logger(f"{__name__}.WearSessionRepository"),
        )
        self._daily = DailyComplianceRepository(
            model_class=DailyCompliance,
            logger=get_logger(f"{__name__}.DailyComplianceRepository"),
        )

    # ========================================================================
    # PUBLIC API - Computation
    # ========================================================================

    async def compute_wear_minutes(
        self, session: AsyncSession, aligner_id: str, day: date, now: Optional[datetime] = None
    ) -> int:
        """
        Whole minutes of `wearing` sessions inside the day window.

        Example:
            wearing 00:00-10:00 and 14:00-23:00 on one day -> 600 + 540 = 1140
        """
        now = ensure_utc(now or self.now())
        window = day_window(day)
        rows = await self._sessions.find_wearing_overlapping(
            session, aligner_id, window.start, window.end
        )

        intervals = []
        for row in rows:
            start = ensure_utc(row.started_at)
            end = ensure_utc(row.ended_at) if row.ended_at is not None else max(now, start)
            intervals.append(TimeInterval(start, end))

        return overlap_minutes(intervals, window)

    # ========================================================================
    # PUBLIC API - Writes
    # ========================================================================

    async def upsert_daily(self, ctx: AlignerContext, day: date) -> DailyUpsert:
        """
        Recompute and store the compliance row for (ctx.aligner_id, day).

        Returns:
            DailyUpsert(record, was_ok, is_ok). was_ok is the previously
            stored judgment (False when no row existed).
        """
        async with self._locks.aligner(ctx.aligner_id):
            return await self.upsert_daily_unlocked(ctx, day)

    async def upsert_daily_unlocked(self, ctx: AlignerContext, day: date) -> DailyUpsert:
        """upsert_daily for callers that already hold the aligner lock."""
        result, written = await self._retry.execute(
            lambda: self._recompute_day(ctx, day),
            operation_name="wear.upsert_daily",
            context={"aligner_id": ctx.aligner_id, "date": day.isoformat()},
        )
        if written:
            await self._after_write(ctx, day, result)
        return result

    async def checkin(
        self,
        patient_id: str,
        aligner_id: str,
        actor_id: Optional[str],
        day: Optional[date],
        wore_aligner: bool,
    ) -> DailyUpsert:
        """
        Record a caregiver's yes/no report for one day.

        The row is written with source `parent_checkin`, wear_minutes set to
        the day's minimum-OK threshold (or 0), and is never overwritten by
        session recomputation afterwards. A later check-in for the same day
        replaces an earlier one.

        Raises:
            NotFoundError: Unknown aligner
            PermissionDeniedError: Aligner belongs to another patient
            ValidationError: Date lies in the future
        """
        today = utc_date(self.now())
        day = day or today
        if day > today:
            raise ValidationError("date", f"check-in date {day.isoformat()} is in the future")

        async with self._db.get_session() as session:
            ctx = await self._directory.get_aligner_for_patient(session, patient_id, aligner_id)

        async with self._locks.aligner(ctx.aligner_id):
            result = await self._retry.execute(
                lambda: self._write_checkin(ctx, actor_id, day, wore_aligner),
                operation_name="wear.checkin",
                context={"aligner_id": aligner_id, "patient_id": patient_id},
            )

        await self.emit_event(
            "wear.checkin",
            {
                "patient_id": patient_id,
                "aligner_id": aligner_id,
                "date": day.isoformat(),
                "wore_aligner": wore_aligner,
                "actor_id": actor_id,
            },
        )
        await self._after_write(ctx, day, result)
        return result

    # ========================================================================
    # PRIVATE
    # ========================================================================

    async def _recompute_day(self, ctx: AlignerContext, day: date) -> tuple[DailyUpsert, bool]:
        async with self._db.get_transaction() as session:
            existing = await self._daily.find_for_day(session, ctx.aligner_id, day, for_update=True)

            if existing is not None and existing.source == ComplianceSource.PARENT_CHECKIN.value:
                self.log.debug(
                    "Daily row is a parent check-in; keeping it",
                    extra={"aligner_id": ctx.aligner_id, "date": day.isoformat()},
                )
                return DailyUpsert(existing, existing.is_day_ok, existing.is_day_ok), False

            wear_minutes = await self.compute_wear_minutes(session, ctx.aligner_id, day)
            ok = is_day_ok(wear_minutes, ctx.target_minutes, ctx.target_percent)
            was_ok = bool(existing.is_day_ok) if existing is not None else False

            record = existing if existing is not None else self._daily.add(
                session,
                DailyCompliance(
                    patient_id=ctx.patient_id,
                    aligner_id=ctx.aligner_id,
                    treatment_id=ctx.treatment_id,
                    phase_id=ctx.phase_id,
                    date=day,
                    daily_goal_awarded=False,
                ),
            )
            record.wear_minutes = wear_minutes
            record.target_minutes = ctx.target_minutes
            record.target_percent = ctx.target_percent
            record.is_day_ok = ok
            record.source = ComplianceSource.SESSION.value
            await session.flush()

        self.log_operation(
            "upsert_daily",
            patient_id=ctx.patient_id,
            aligner_id=ctx.aligner_id,
            date=day.isoformat(),
            wear_minutes=wear_minutes,
            is_day_ok=ok,
            was_ok=was_ok,
        )
        return DailyUpsert(record, was_ok, ok), True

    async def _write_checkin(
        self, ctx: AlignerContext, actor_id: Optional[str], day: date, wore_aligner: bool
    ) -> DailyUpsert:
        async with self._db.get_transaction() as session:
            existing = await self._daily.find_for_day(session, ctx.aligner_id, day, for_update=True)
            was_ok = bool(existing.is_day_ok) if existing is not None else False

            record = existing if existing is not None else self._daily.add(
                session,
                DailyCompliance(
                    patient_id=ctx.patient_id,
                    aligner_id=ctx.aligner_id,
                    treatment_id=ctx.treatment_id,
                    phase_id=ctx.phase_id,
                    date=day,
                    daily_goal_awarded=False,
                ),
            )
            record.wear_minutes = ctx.min_ok_minutes if wore_aligner else 0
            record.target_minutes = ctx.target_minutes
            record.target_percent = ctx.target_percent
            record.is_day_ok = bool(wore_aligner)
            record.source = ComplianceSource.PARENT_CHECKIN.value
            record.reported_by_user_id = actor_id
            await session.flush()

        self.log_operation(
            "checkin",
            patient_id=ctx.patient_id,
            aligner_id=ctx.aligner_id,
            date=day.isoformat(),
            wore_aligner=wore_aligner,
            was_ok=was_ok,
        )
        return DailyUpsert(record, was_ok, bool(wore_aligner))

    async def _after_write(self, ctx: AlignerContext, day: date, result: DailyUpsert) -> None:
        if result.became_ok:
            await self.emit_event(
                "wear.day_completed",
                {
                    "patient_id": ctx.patient_id,
                    "aligner_id": ctx.aligner_id,
                    "date": day.isoformat(),
                    "wear_minutes": result.record.wear_minutes,
                    "source": result.record.source,
                },
            )

        if self._missions is None:
            return
        try:
            await self._missions.update_usage_missions(ctx.patient_id, ctx.aligner_id, day)
        except Exception as exc:
            self.log_error(
                "update_usage_missions",
                exc,
                patient_id=ctx.patient_id,
                aligner_id=ctx.aligner_id,
                date=day.isoformat(),
            )
