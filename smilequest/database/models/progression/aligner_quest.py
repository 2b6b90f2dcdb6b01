"""
AlignerQuest: composite per-aligner goal.
Pure schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from smilequest.core.database.base import Base, IdMixin, TimestampMixin


class AlignerQuest(Base, IdMixin, TimestampMixin):
    """
    One quest per aligner.

    Schema-only:
    - target_percent / target_minutes_per_day (snapshotted at creation)
    - photo_set_done, lessons_done / lessons_target (monotonic)
    - reward_coins / reward_xp
    - status (active | completed | failed), terminal once finalized
    - adherence_percent_final / finalized_at
    """

    __tablename__ = "aligner_quests"

    patient_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    aligner_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("aligners.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    treatment_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    phase_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    target_percent: Mapped[int] = mapped_column(Integer, nullable=False)

    target_minutes_per_day: Mapped[int] = mapped_column(Integer, nullable=False)

    photo_set_done: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    lessons_done: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    lessons_target: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    reward_coins: Mapped[int] = mapped_column(Integer, nullable=False, default=200)

    reward_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=120)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    adherence_percent_final: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    finalized_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
