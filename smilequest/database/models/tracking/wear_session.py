"""
WearSession: one wearing/paused interval for an aligner.
Pure schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from smilequest.core.database.base import Base, IdMixin


class WearSession(Base, IdMixin):
    """
    Interval [started_at, ended_at) tagged with a wear state.

    Schema-only:
    - patient_id / aligner_id (owner pair)
    - treatment_id / phase_id (copied from the aligner at open time)
    - state (wearing | paused)
    - started_at / ended_at (ended_at NULL while open)
    - created_by_user_id (actor that opened the interval)

    At most one open row per aligner, enforced by a partial unique index.
    Closed rows are never modified.
    """

    __tablename__ = "aligner_wear_sessions"
    __table_args__ = (
        Index("ix_aligner_wear_sessions_aligner_started", "aligner_id", "started_at"),
        Index(
            "uq_aligner_wear_sessions_open_per_aligner",
            "aligner_id",
            unique=True,
            postgresql_where=text("ended_at IS NULL"),
            sqlite_where=text("ended_at IS NULL"),
        ),
    )

    patient_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    aligner_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("aligners.id", ondelete="CASCADE"),
        nullable=False,
    )

    treatment_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    phase_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    state: Mapped[str] = mapped_column(String(16), nullable=False)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_by_user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
