"""
Database Models Package
========================

SQLAlchemy ORM models for the SmileQuest engagement engine, organized by domain.

All models:
- Schema-only, no business logic
- Use Mapped[] syntax with mapped_column()
- Inherit from IdMixin / TimestampMixin where the row is engine-owned

Domain Organization:
--------------------
- treatment: Treatment directory rows (read-only for the engine)
- tracking: Wear sessions and daily compliance aggregates
- progression: Mission templates, mission instances, aligner quests
- economy: Patient balances and the append-only points ledger
- enums: Shared type-safe enumerations
"""

from smilequest.core.database.base import Base

from .economy import PatientPoints, PointsTransaction
from .progression import AlignerQuest, MissionInstance, MissionTemplate
from .tracking import DailyCompliance, WearSession
from .treatment import Aligner, Treatment, TreatmentPhase

__all__ = [
    "Base",
    "Aligner",
    "AlignerQuest",
    "DailyCompliance",
    "MissionInstance",
    "MissionTemplate",
    "PatientPoints",
    "PointsTransaction",
    "Treatment",
    "TreatmentPhase",
    "WearSession",
]
