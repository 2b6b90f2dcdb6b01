"""Treatment directory collaborator (aligner ownership and wear targets)."""

from .directory import AlignerContext, TreatmentDirectory, TreatmentProgress

__all__ = ["AlignerContext", "TreatmentDirectory", "TreatmentProgress"]
