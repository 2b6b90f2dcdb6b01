"""
PointsTransaction: append-only ledger entry (immutable).
Pure schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict

from sqlalchemy import JSON, DateTime, Index, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from smilequest.core.database.base import Base, IdMixin


class PointsTransaction(Base, IdMixin):
    """
    Audit log for every balance change.

    Schema-only:
    - patient_id
    - kind (earn | spend | adjust) / source (mission | streak | quest | admin | store)
    - amount_coins / amount_xp (signed deltas)
    - balance_after_coins
    - details (stored in the `metadata` column)
    - created_at
    """

    __tablename__ = "point_transactions"
    __table_args__ = (
        Index("ix_point_transactions_patient_created", "patient_id", "created_at"),
    )

    patient_id: Mapped[str] = mapped_column(String(64), nullable=False)

    kind: Mapped[str] = mapped_column(String(10), nullable=False)

    source: Mapped[str] = mapped_column(String(20), nullable=False)

    amount_coins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    amount_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    balance_after_coins: Mapped[int] = mapped_column(Integer, nullable=False)

    details: Mapped[Dict[str, Any]] = mapped_column(
        "metadata",
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=dict,
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
