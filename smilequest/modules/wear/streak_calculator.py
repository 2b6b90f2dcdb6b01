"""
Streak Calculator
=================

Trailing count of consecutive compliant days ending at a reference date.

A day counts when any of the patient's aligners has a compliant row for it,
so an aligner change mid-streak does not reset the count. A day with no row
at all is not compliant and ends the streak. The scan looks back at most
`wear.streak_lookback_days` days and never before `start_date` (treatment or
phase start) when one is given.

Read-only: identical inputs always yield the same count.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import TYPE_CHECKING, Optional

from smilequest.core.logging.logger import get_logger
from smilequest.database.models import DailyCompliance
from smilequest.modules.shared.base_service import BaseService, Clock
from smilequest.modules.shared.intervals import utc_now

from .repository import DailyComplianceRepository

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from smilequest.core.config.manager import ConfigManager
    from smilequest.core.database.service import DatabaseService
    from smilequest.core.event.bus import EventBus


class StreakCalculator(BaseService):
    def __init__(
        self,
        db: DatabaseService,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(config_manager, event_bus, logger, clock)
        self._db = db
        self._daily = DailyComplianceRepository(
            DailyCompliance, get_logger(f"{__name__}.DailyComplianceRepository")
        )

    async def trailing_ok_streak(
        self,
        patient_id: str,
        end_date: date,
        start_date: Optional[date] = None,
        session: Optional[AsyncSession] = None,
    ) -> int:
        """
        Consecutive compliant days ending at `end_date`.

        Example:
            [OK, OK, MISS, OK, OK, OK] ending at day 6 -> 3
            [OK, OK, <no row>, OK, OK, OK] ending at day 6 -> 3
        """
        if session is None:
            async with self._db.get_session() as own_session:
                return await self._scan(own_session, patient_id, end_date, start_date)
        return await self._scan(session, patient_id, end_date, start_date)

    async def _scan(
        self,
        session: AsyncSession,
        patient_id: str,
        end_date: date,
        start_date: Optional[date],
    ) -> int:
        lookback = int(self.get_config("wear.streak_lookback_days", 40))
        lower = end_date - timedelta(days=lookback - 1)
        if start_date is not None and start_date > lower:
            lower = start_date
        if lower > end_date:
            return 0

        ok_days = await self._daily.ok_days_for_patient(session, patient_id, lower, end_date)

        streak = 0
        day = end_date
        while day >= lower and day in ok_days:
            streak += 1
            day -= timedelta(days=1)

        self.log.debug(
            "Trailing streak computed",
            extra={
                "patient_id": patient_id,
                "end_date": end_date.isoformat(),
                "lower_bound": lower.isoformat(),
                "streak": streak,
            },
        )
        return streak
