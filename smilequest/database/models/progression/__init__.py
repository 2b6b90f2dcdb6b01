"""
Progression ORM models.

Exports:
- AlignerQuest
- MissionInstance
- MissionTemplate
"""

from .aligner_quest import AlignerQuest
from .mission import MissionInstance, MissionTemplate

__all__ = ["AlignerQuest", "MissionInstance", "MissionTemplate"]
