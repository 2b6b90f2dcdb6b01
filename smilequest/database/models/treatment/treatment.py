"""
Treatment and TreatmentPhase: owned by the treatment directory collaborator.
Pure schema only; the engine reads these rows, never writes them.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy import Date, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from smilequest.core.database.base import Base, TimestampMixin


class Treatment(Base, TimestampMixin):
    """
    Overall treatment container for one patient.

    Schema-only:
    - patient_id
    - overall_status (active | completed | paused | cancelled)
    - start_date (scopes streaks and milestone missions)
    - total_aligners_overall / current_aligner_overall (treatment progress %)
    """

    __tablename__ = "treatments"
    __table_args__ = (
        Index("ix_treatments_patient_status", "patient_id", "overall_status"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    patient_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    overall_status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    total_aligners_overall: Mapped[int] = mapped_column(Integer, nullable=False, default=20)

    current_aligner_overall: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class TreatmentPhase(Base, TimestampMixin):
    """
    One phase of a treatment. Carries the adherence target for its aligners.
    """

    __tablename__ = "treatment_phases"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    treatment_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("treatments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    phase_number: Mapped[int] = mapped_column(Integer, nullable=False)

    phase_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    adherence_target_percent: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
