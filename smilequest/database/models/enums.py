"""
Database Model Enums
====================

Lightweight enumerations for database models.

Stored as plain strings so rows stay readable from SQL and the same schema
works on PostgreSQL and SQLite. Service layers compare against these values.
"""

from __future__ import annotations

import enum


class WearState(str, enum.Enum):
    """State of a wear session interval."""

    WEARING = "wearing"
    PAUSED = "paused"


class ComplianceSource(str, enum.Enum):
    """
    Origin of a daily compliance row.

    PARENT_CHECKIN rows are authoritative and never recomputed from sessions.
    """

    SESSION = "session"
    PARENT_CHECKIN = "parent_checkin"


class MissionStatus(str, enum.Enum):
    AVAILABLE = "available"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    EXPIRED = "expired"

    @classmethod
    def open_statuses(cls) -> tuple:
        """Statuses still eligible for re-evaluation."""
        return (cls.AVAILABLE.value, cls.IN_PROGRESS.value)


class MissionFrequency(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    PER_ALIGNER = "per_aligner"
    ONCE = "once"


class CompletionCriteria(str, enum.Enum):
    TIME_BASED = "time_based"
    DAYS_STREAK = "days_streak"
    TOTAL_COUNT = "total_count"
    PERCENTAGE = "percentage"
    MANUAL = "manual"


class MissionCategory(str, enum.Enum):
    USAGE = "usage"
    HYGIENE = "hygiene"
    MILESTONES = "milestones"
    ALIGNER_CHANGE = "aligner_change"
    APPOINTMENTS = "appointments"


class QuestStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class TransactionKind(str, enum.Enum):
    EARN = "earn"
    SPEND = "spend"
    ADJUST = "adjust"


class TransactionSource(str, enum.Enum):
    """What triggered a ledger entry."""

    MISSION = "mission"
    STREAK = "streak"
    QUEST = "quest"
    ADMIN = "admin"
    STORE = "store"
