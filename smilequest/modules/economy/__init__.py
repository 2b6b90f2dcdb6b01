"""Economy module: patient balances and the append-only points ledger."""

from .points_ledger import PointsLedgerService

__all__ = ["PointsLedgerService"]
