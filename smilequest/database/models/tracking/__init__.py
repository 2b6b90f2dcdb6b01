"""
Wear tracking ORM models.

Exports:
- DailyCompliance
- WearSession
"""

from .daily_compliance import DailyCompliance
from .wear_session import WearSession

__all__ = ["DailyCompliance", "WearSession"]
