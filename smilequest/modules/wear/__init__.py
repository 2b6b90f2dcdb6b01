"""
Wear tracking module: sessions, daily compliance, streaks and wear status.
"""

from .daily_aggregator import DailyAggregator, DailyUpsert
from .session_tracker import SessionTracker, SessionTransition
from .status_service import WearStatusService, daily_to_dict
from .streak_calculator import StreakCalculator

__all__ = [
    "DailyAggregator",
    "DailyUpsert",
    "SessionTracker",
    "SessionTransition",
    "StreakCalculator",
    "WearStatusService",
    "daily_to_dict",
]
