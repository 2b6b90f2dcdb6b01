"""
Economy ORM models.

Exports:
- PatientPoints
- PointsTransaction
"""

from .patient_points import PatientPoints
from .points_transaction import PointsTransaction

__all__ = ["PatientPoints", "PointsTransaction"]
