"""
SmileQuest Shared Module

Purpose
-------
Provides domain-level foundations for all engagement modules:
- Domain exceptions and error handling
- Base service and repository patterns
- Compliance and reward formulas
- Half-open interval arithmetic

Nothing in this package imports `smilequest.core` at module load, so infrastructure
modules can depend on it without import cycles.

Usage
-----
    from smilequest.modules.shared import (
        BaseService,
        BaseRepository,
        NotFoundError,
        min_ok_minutes,
    )
"""

from __future__ import annotations

from .base_repository import BaseRepository
from .base_service import BaseService, Clock
from .exceptions import (
    ConflictError,
    EngagementDomainException,
    InsufficientBalanceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    get_error_severity,
    should_alert,
)
from .formulas import (
    adherence_percent,
    is_day_ok,
    level_for_xp,
    min_ok_minutes,
    mission_reward,
    round_half_up,
    treatment_progress_percent,
)
from .intervals import (
    MINUTES_PER_DAY,
    TimeInterval,
    date_range_back,
    day_window,
    ensure_utc,
    overlap_minutes,
    utc_date,
    utc_now,
)
from .severity import ErrorSeverity

__all__ = [
    "BaseRepository",
    "BaseService",
    "Clock",
    "ConflictError",
    "EngagementDomainException",
    "ErrorSeverity",
    "InsufficientBalanceError",
    "NotFoundError",
    "PermissionDeniedError",
    "ValidationError",
    "get_error_severity",
    "should_alert",
    "adherence_percent",
    "is_day_ok",
    "level_for_xp",
    "min_ok_minutes",
    "mission_reward",
    "round_half_up",
    "treatment_progress_percent",
    "MINUTES_PER_DAY",
    "TimeInterval",
    "date_range_back",
    "day_window",
    "ensure_utc",
    "overlap_minutes",
    "utc_date",
    "utc_now",
]
