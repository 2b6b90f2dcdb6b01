"""
Database infrastructure: declarative base, mixins and the async DatabaseService.
"""

from smilequest.core.database.base import Base, IdMixin, TimestampMixin
from smilequest.core.database.service import DatabaseService

__all__ = ["Base", "IdMixin", "TimestampMixin", "DatabaseService"]
