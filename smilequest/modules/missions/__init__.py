"""Mission progress engine: evaluation, activation, expiry and awards."""

from .progress_service import MissionAward, MissionProgressService

__all__ = ["MissionAward", "MissionProgressService"]
