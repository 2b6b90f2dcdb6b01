"""
DailyCompliance: one compliance judgment per (aligner, calendar day).
Pure schema only.
"""

from __future__ import annotations

import datetime as dt
from typing import Optional

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from smilequest.core.database.base import Base, IdMixin, TimestampMixin


class DailyCompliance(Base, IdMixin, TimestampMixin):
    """
    Daily wear aggregate.

    Schema-only:
    - patient_id / aligner_id / date (unique per aligner and date)
    - wear_minutes, target_minutes, target_percent
    - is_day_ok (wear_minutes >= floor(target_minutes * target_percent / 100))
    - source (session | parent_checkin)
    - reported_by_user_id (set for parent check-ins)
    - daily_goal_awarded (set once, when the daily goal reward is granted)
    """

    __tablename__ = "aligner_wear_daily"
    __table_args__ = (
        UniqueConstraint("aligner_id", "date", name="uq_aligner_wear_daily_aligner_date"),
        Index("ix_aligner_wear_daily_patient_date", "patient_id", "date"),
    )

    patient_id: Mapped[str] = mapped_column(String(64), nullable=False)

    aligner_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("aligners.id", ondelete="CASCADE"),
        nullable=False,
    )

    treatment_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    phase_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    date: Mapped[dt.date] = mapped_column(Date, nullable=False)

    wear_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    target_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    target_percent: Mapped[int] = mapped_column(Integer, nullable=False)

    is_day_ok: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    source: Mapped[str] = mapped_column(String(20), nullable=False, default="session")

    reported_by_user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    daily_goal_awarded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
