"""
PatientPoints: coin/XP balance per patient.
Pure schema only.
"""

from __future__ import annotations

from sqlalchemy import CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from smilequest.core.database.base import Base, IdMixin, TimestampMixin


class PatientPoints(Base, IdMixin, TimestampMixin):
    """
    Balance row, one per patient.

    Only the points ledger service writes here; every write is paired with
    a PointsTransaction append in the same transaction.
    """

    __tablename__ = "patient_points"
    __table_args__ = (
        CheckConstraint("coins >= 0", name="coins_non_negative"),
        CheckConstraint("xp >= 0", name="xp_non_negative"),
    )

    patient_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    coins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
