"""
Treatment directory ORM models (read by the engine, owned by the treatment collaborator).

Exports:
- Aligner
- Treatment
- TreatmentPhase
"""

from .aligner import Aligner
from .treatment import Treatment, TreatmentPhase

__all__ = ["Aligner", "Treatment", "TreatmentPhase"]
