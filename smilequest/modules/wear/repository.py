"""
Wear repositories: sessions and daily compliance rows.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import or_, select

from smilequest.database.models import DailyCompliance, WearSession
from smilequest.database.models.enums import WearState
from smilequest.modules.shared.base_repository import BaseRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


class WearSessionRepository(BaseRepository[WearSession]):
    async def find_open(
        self, session: AsyncSession, aligner_id: str, for_update: bool = False
    ) -> Optional[WearSession]:
        return await self.find_one_where(
            session,
            WearSession.aligner_id == aligner_id,
            WearSession.ended_at.is_(None),
            for_update=for_update,
            order_by=WearSession.started_at.desc(),
        )

    async def find_wearing_overlapping(
        self,
        session: AsyncSession,
        aligner_id: str,
        window_start: datetime,
        window_end: datetime,
    ) -> List[WearSession]:
        """Wearing sessions that could overlap [window_start, window_end)."""
        return await self.find_many_where(
            session,
            WearSession.aligner_id == aligner_id,
            WearSession.state == WearState.WEARING.value,
            WearSession.started_at < window_end,
            or_(WearSession.ended_at.is_(None), WearSession.ended_at > window_start),
            order_by=WearSession.started_at,
        )


class DailyComplianceRepository(BaseRepository[DailyCompliance]):
    async def find_for_day(
        self, session: AsyncSession, aligner_id: str, day: date, for_update: bool = False
    ) -> Optional[DailyCompliance]:
        return await self.find_one_where(
            session,
            DailyCompliance.aligner_id == aligner_id,
            DailyCompliance.date == day,
            for_update=for_update,
        )

    async def list_for_aligner(
        self,
        session: AsyncSession,
        aligner_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[DailyCompliance]:
        conditions = [DailyCompliance.aligner_id == aligner_id]
        if start is not None:
            conditions.append(DailyCompliance.date >= start)
        if end is not None:
            conditions.append(DailyCompliance.date <= end)
        return await self.find_many_where(session, *conditions, order_by=DailyCompliance.date)

    async def ok_days_for_patient(
        self, session: AsyncSession, patient_id: str, start: date, end: date
    ) -> set[date]:
        """Dates in [start, end] on which any of the patient's aligners was compliant."""
        stmt = (
            select(DailyCompliance.date)
            .where(
                DailyCompliance.patient_id == patient_id,
                DailyCompliance.date >= start,
                DailyCompliance.date <= end,
                DailyCompliance.is_day_ok.is_(True),
            )
            .distinct()
        )
        result = await session.execute(stmt)
        return set(result.scalars().all())
