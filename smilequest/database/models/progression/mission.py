"""
MissionTemplate and MissionInstance: gamification goals.
Pure schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from smilequest.core.database.base import Base, IdMixin, TimestampMixin


class MissionTemplate(Base, TimestampMixin):
    """
    Reusable mission definition (read-only catalog for the engine).

    Schema-only:
    - category (usage | hygiene | milestones | aligner_change | appointments)
    - frequency (daily | weekly | monthly | per_aligner | once)
    - completion_criteria (time_based | days_streak | total_count | percentage | manual)
    - target_value, base_points, bonus_points
    - aligner_interval (instantiate every N aligners)
    """

    __tablename__ = "mission_templates"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    frequency: Mapped[str] = mapped_column(String(20), nullable=False)

    completion_criteria: Mapped[str] = mapped_column(String(30), nullable=False)

    target_value: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    base_points: Mapped[int] = mapped_column(Integer, nullable=False)

    bonus_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    aligner_interval: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    is_active_by_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class MissionInstance(Base, IdMixin, TimestampMixin):
    """
    Per-patient instantiation of a MissionTemplate.

    Schema-only:
    - status (available | in_progress | completed | expired)
    - progress / target_value
    - trigger_aligner_number (activation gate)
    - started_at / completed_at / expires_at
    - points_earned (written once, on the transition to completed)
    """

    __tablename__ = "patient_missions"
    __table_args__ = (
        Index("ix_patient_missions_patient_status", "patient_id", "status"),
        Index("ix_patient_missions_expires_at", "expires_at"),
    )

    patient_id: Mapped[str] = mapped_column(String(64), nullable=False)

    mission_template_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("mission_templates.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="available")

    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    target_value: Mapped[int] = mapped_column(Integer, nullable=False)

    trigger: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    trigger_aligner_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    auto_activated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    points_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    template: Mapped["MissionTemplate"] = relationship("MissionTemplate", lazy="joined", innerjoin=True)
