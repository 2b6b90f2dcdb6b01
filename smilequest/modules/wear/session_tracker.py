"""
Session Tracker
===============

Purpose
-------
Open and close wear/pause intervals for one aligner. At most one interval
per aligner is open at any time.

Transition Model
----------------
`pause` and `resume` run the same close-then-open sequence:

1. Verify the aligner belongs to the patient (NotFoundError / PermissionDeniedError)
2. Take the aligner lock, read the open session FOR UPDATE
3. Already in the requested state -> no-op
4. Otherwise close it at "now" (flushed first, so the partial unique index
   on open sessions never sees two) and open the successor at "now"
5. Recompute today's compliance, plus every earlier day the closed interval
   covered (bounded by the streak lookback)

Events `wear.paused` / `wear.resumed` are published after the commit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, List, Optional

from smilequest.core.logging.logger import get_logger
from smilequest.database.models import WearSession
from smilequest.database.models.enums import WearState
from smilequest.modules.shared.base_service import BaseService, Clock
from smilequest.modules.shared.intervals import TimeInterval, ensure_utc, utc_date, utc_now

from .repository import WearSessionRepository

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from smilequest.core.config.manager import ConfigManager
    from smilequest.core.database.service import DatabaseService
    from smilequest.core.event.bus import EventBus
    from smilequest.core.locks import KeyedLockRegistry
    from smilequest.modules.treatment.directory import AlignerContext, TreatmentDirectory

    from .daily_aggregator import DailyAggregator, DailyUpsert


@dataclass
class SessionTransition:
    """Outcome of a pause/resume call."""

    ctx: AlignerContext
    state: str
    changed: bool
    open_session: WearSession
    closed_session: Optional[WearSession] = None
    daily: List[DailyUpsert] = field(default_factory=list)

    @property
    def today(self) -> Optional[DailyUpsert]:
        return self.daily[-1] if self.daily else None


class SessionTracker(BaseService):
    """
    Public Methods
    --------------
    - pause() / resume() -> Idempotent state transitions
    - ensure_initial_wearing_session() -> Open a wearing session for a fresh aligner
    - get_current_state() -> State of the open session (None when untracked)
    - close_open_session_unlocked() -> Close without a successor (aligner rollover)
    """

    def __init__(
        self,
        db: DatabaseService,
        directory: TreatmentDirectory,
        aggregator: DailyAggregator,
        locks: KeyedLockRegistry,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(config_manager, event_bus, logger, clock)
        self._db = db
        self._directory = directory
        self._aggregator = aggregator
        self._locks = locks
        self._sessions = WearSessionRepository(
            WearSession, get_logger(f"{__name__}.WearSessionRepository")
        )

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def pause(
        self, patient_id: str, aligner_id: str, actor_id: Optional[str] = None
    ) -> SessionTransition:
        return await self._transition(patient_id, aligner_id, actor_id, WearState.PAUSED)

    async def resume(
        self, patient_id: str, aligner_id: str, actor_id: Optional[str] = None
    ) -> SessionTransition:
        return await self._transition(patient_id, aligner_id, actor_id, WearState.WEARING)

    async def ensure_initial_wearing_session(
        self, aligner_id: str, actor_id: Optional[str] = None
    ) -> WearSession:
        """
        Open a `wearing` session for a freshly activated aligner.

        Returns the already-open session unchanged if one exists.
        """
        async with self._db.get_session() as session:
            ctx = await self._directory.get_aligner(session, aligner_id)

        async with self._locks.aligner(aligner_id):
            async with self._db.get_transaction() as session:
                current = await self._sessions.find_open(session, aligner_id, for_update=True)
                if current is not None:
                    return current
                opened = self._open(session, ctx, WearState.WEARING, actor_id, self.now())
                await session.flush()

        self.log_operation(
            "ensure_initial_wearing_session",
            patient_id=ctx.patient_id,
            aligner_id=aligner_id,
            session_id=opened.id,
        )
        return opened

    async def get_current_state(
        self, aligner_id: str, session: Optional[AsyncSession] = None
    ) -> Optional[str]:
        if session is None:
            async with self._db.get_session() as own_session:
                current = await self._sessions.find_open(own_session, aligner_id)
        else:
            current = await self._sessions.find_open(session, aligner_id)
        return current.state if current is not None else None

    async def close_open_session_unlocked(self, aligner_id: str) -> Optional[WearSession]:
        """
        Close the open session without opening a successor.

        Caller must hold the aligner lock. Returns the closed session, or
        None when nothing was open.
        """
        now = self.now()
        async with self._db.get_transaction() as session:
            current = await self._sessions.find_open(session, aligner_id, for_update=True)
            if current is None:
                return None
            current.ended_at = max(ensure_utc(now), ensure_utc(current.started_at))
            await session.flush()

        self.log_operation("close_open_session", aligner_id=aligner_id, session_id=current.id)
        return current

    def days_touched(self, closed: WearSession, today: date) -> List[date]:
        """Days a closed session covered, oldest first, bounded by the lookback."""
        lookback = int(self.get_config("wear.streak_lookback_days", 40))
        earliest = today - timedelta(days=lookback - 1)
        interval = TimeInterval(closed.started_at, closed.ended_at or closed.started_at)
        return [day for day in interval.days() if earliest <= day <= today]

    # ========================================================================
    # PRIVATE
    # ========================================================================

    async def _transition(
        self,
        patient_id: str,
        aligner_id: str,
        actor_id: Optional[str],
        target: WearState,
    ) -> SessionTransition:
        async with self._db.get_session() as session:
            ctx = await self._directory.get_aligner_for_patient(session, patient_id, aligner_id)

        async with self._locks.aligner(aligner_id):
            now = self.now()
            async with self._db.get_transaction() as session:
                current = await self._sessions.find_open(session, aligner_id, for_update=True)

                if current is not None and current.state == target.value:
                    self.log.debug(
                        "Wear state unchanged; no-op",
                        extra={"aligner_id": aligner_id, "state": target.value},
                    )
                    return SessionTransition(
                        ctx=ctx, state=target.value, changed=False, open_session=current
                    )

                closed = None
                if current is not None:
                    current.ended_at = max(ensure_utc(now), ensure_utc(current.started_at))
                    await session.flush()
                    closed = current

                opened = self._open(session, ctx, target, actor_id, now)
                await session.flush()

            today = utc_date(now)
            days = self.days_touched(closed, today) if closed is not None else []
            if today not in days:
                days.append(today)

            daily = [await self._aggregator.upsert_daily_unlocked(ctx, day) for day in days]

        self.log_operation(
            "pause" if target is WearState.PAUSED else "resume",
            patient_id=patient_id,
            aligner_id=aligner_id,
            actor_id=actor_id,
            closed_session_id=closed.id if closed is not None else None,
            opened_session_id=opened.id,
            recomputed_days=len(days),
        )
        await self.emit_event(
            "wear.paused" if target is WearState.PAUSED else "wear.resumed",
            {
                "patient_id": patient_id,
                "aligner_id": aligner_id,
                "actor_id": actor_id,
                "at": ensure_utc(now).isoformat(),
            },
        )
        return SessionTransition(
            ctx=ctx,
            state=target.value,
            changed=True,
            open_session=opened,
            closed_session=closed,
            daily=daily,
        )

    def _open(
        self,
        session: AsyncSession,
        ctx: AlignerContext,
        state: WearState,
        actor_id: Optional[str],
        now: datetime,
    ) -> WearSession:
        return self._sessions.add(
            session,
            WearSession(
                patient_id=ctx.patient_id,
                aligner_id=ctx.aligner_id,
                treatment_id=ctx.treatment_id,
                phase_id=ctx.phase_id,
                state=state.value,
                started_at=now,
                ended_at=None,
                created_by_user_id=actor_id,
                created_at=now,
            ),
        )
