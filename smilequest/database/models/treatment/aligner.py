"""
Aligner: one tray in a treatment sequence.
Pure schema only.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy import Date, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from smilequest.core.database.base import Base, TimestampMixin


class Aligner(Base, TimestampMixin):
    """
    Aligner row.

    Schema-only:
    - patient_id (owner; ownership is checked on every wear operation)
    - treatment_id / phase_id (nullable for legacy aligners)
    - aligner_number (global sequence number across phases)
    - start_date / end_date (planned wear period)
    - status (upcoming | active | completed)
    - target_hours_per_day
    """

    __tablename__ = "aligners"
    __table_args__ = (
        Index("ix_aligners_patient_number", "patient_id", "aligner_number"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    patient_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    treatment_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        ForeignKey("treatments.id", ondelete="SET NULL"),
        nullable=True,
    )

    phase_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        ForeignKey("treatment_phases.id", ondelete="SET NULL"),
        nullable=True,
    )

    aligner_number: Mapped[int] = mapped_column(Integer, nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="upcoming")

    target_hours_per_day: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=22)
