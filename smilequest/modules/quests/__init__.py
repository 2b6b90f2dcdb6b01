"""Quest engine: per-aligner composite goals."""

from .quest_service import QuestService, quest_to_dict

__all__ = ["QuestService", "quest_to_dict"]
