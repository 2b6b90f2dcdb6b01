"""
Points Ledger Service
=====================

Purpose
-------
Durable coin/XP balance per patient plus the append-only transaction log.
Every balance change in the engine (mission rewards, daily-goal rewards,
quest rewards) flows through `adjust_balance`, which mutates the balance row
and appends exactly one PointsTransaction in the same transaction.

Domain
------
- Balances never go negative (InsufficientBalanceError)
- Level is derived from accumulated XP: floor(xp / xp_per_level) + 1
- Transactions are immutable; the history is paginated newest first

Transaction Model
-----------------
`adjust_balance` and `get_or_create_balance` accept an optional session.
With a session, they join the caller's transaction so an award commits or
rolls back together with the state transition that earned it; the caller
publishes `points.awarded` after its commit via `publish_adjustment`.
Without a session, they open (and commit) their own transaction.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, or_

from smilequest.core.logging.logger import get_logger
from smilequest.database.models import PatientPoints, PointsTransaction
from smilequest.modules.shared.base_repository import BaseRepository
from smilequest.modules.shared.base_service import BaseService, Clock
from smilequest.modules.shared.exceptions import InsufficientBalanceError, ValidationError
from smilequest.modules.shared.formulas import level_for_xp
from smilequest.modules.shared.intervals import ensure_utc, utc_now

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from smilequest.core.config.manager import ConfigManager
    from smilequest.core.database.service import DatabaseService
    from smilequest.core.event.bus import EventBus


# ============================================================================
# Repositories
# ============================================================================


class PatientPointsRepository(BaseRepository[PatientPoints]):
    async def find_for_patient(
        self, session: AsyncSession, patient_id: str, for_update: bool = False
    ) -> Optional[PatientPoints]:
        return await self.find_one_where(
            session, PatientPoints.patient_id == patient_id, for_update=for_update
        )


class PointsTransactionRepository(BaseRepository[PointsTransaction]):
    pass


# ============================================================================
# PointsLedgerService
# ============================================================================


class PointsLedgerService(BaseService):
    """
    Balance and audit-log collaborator.

    Public Methods
    --------------
    - get_or_create_balance() -> Balance row, created at zero on first use
    - adjust_balance() -> Apply signed deltas and append a transaction
    - list_transactions() -> Newest-first page of the audit log
    - publish_adjustment() -> Emit points.awarded for a committed transaction
    """

    def __init__(
        self,
        db: DatabaseService,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(config_manager, event_bus, logger, clock)
        self._db = db
        self._balances = PatientPointsRepository(
            PatientPoints, get_logger(f"{__name__}.PatientPointsRepository")
        )
        self._transactions = PointsTransactionRepository(
            PointsTransaction, get_logger(f"{__name__}.PointsTransactionRepository")
        )

    # ========================================================================
    # PUBLIC API - Balance
    # ========================================================================

    async def get_or_create_balance(
        self, patient_id: str, session: Optional[AsyncSession] = None
    ) -> PatientPoints:
        """
        Return the patient's balance row, inserting a zero balance if absent.

        A concurrent first insert for the same patient surfaces as
        IntegrityError from the unique constraint; callers running under
        DatabaseRetryPolicy re-read the winner's row on retry.
        """
        if session is None:
            async with self._db.get_transaction() as own_session:
                return await self._get_or_create_locked(own_session, patient_id)
        return await self._get_or_create_locked(session, patient_id)

    async def adjust_balance(
        self,
        patient_id: str,
        delta_coins: int,
        delta_xp: int,
        *,
        kind: str,
        source: str,
        metadata: Optional[Dict[str, Any]] = None,
        session: Optional[AsyncSession] = None,
    ) -> Tuple[PatientPoints, PointsTransaction]:
        """
        Apply signed coin/XP deltas and append one ledger entry.

        Args:
            patient_id: Balance owner
            delta_coins: Signed coin change
            delta_xp: Signed XP change
            kind: "earn" | "spend" | "adjust"
            source: "mission" | "streak" | "quest" | "admin" | "store"
            metadata: Free-form audit context stored with the transaction
            session: Join the caller's transaction instead of opening one

        Returns:
            (balance, transaction) after the change

        Raises:
            InsufficientBalanceError: The change would make coins or XP negative
        """
        if session is not None:
            return await self._apply_adjustment(
                session, patient_id, delta_coins, delta_xp, kind, source, metadata
            )

        async with self._db.get_transaction() as own_session:
            balance, transaction = await self._apply_adjustment(
                own_session, patient_id, delta_coins, delta_xp, kind, source, metadata
            )
        await self.publish_adjustment(transaction)
        return balance, transaction

    async def publish_adjustment(self, transaction: PointsTransaction) -> None:
        await self.emit_event(
            "points.awarded",
            {
                "patient_id": transaction.patient_id,
                "transaction_id": transaction.id,
                "kind": transaction.kind,
                "source": transaction.source,
                "amount_coins": transaction.amount_coins,
                "amount_xp": transaction.amount_xp,
                "balance_after_coins": transaction.balance_after_coins,
            },
        )

    # ========================================================================
    # PUBLIC API - History
    # ========================================================================

    async def list_transactions(
        self,
        patient_id: str,
        limit: int = 50,
        cursor: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Newest-first page of a patient's ledger.

        Args:
            patient_id: Ledger owner
            limit: Page size, clamped to 1..economy.transactions_page_max
            cursor: `next_cursor` of the previous page ("<iso created_at>|<id>");
                a bare ISO timestamp returns entries strictly older than it

        Returns:
            {"items": [...], "next_cursor": str | None}

        Raises:
            ValidationError: Cursor is malformed
        """
        page_max = int(self.get_config("economy.transactions_page_max", 200))
        limit = max(1, min(page_max, int(limit)))

        conditions = [PointsTransaction.patient_id == patient_id]
        if cursor:
            created_before, id_before = self._parse_cursor(cursor)
            if id_before is None:
                conditions.append(PointsTransaction.created_at < created_before)
            else:
                # Rows sharing the boundary timestamp continue by id.
                conditions.append(
                    or_(
                        PointsTransaction.created_at < created_before,
                        and_(
                            PointsTransaction.created_at == created_before,
                            PointsTransaction.id < id_before,
                        ),
                    )
                )

        async with self._db.get_session() as session:
            rows = await self._transactions.find_many_where(
                session,
                *conditions,
                order_by=(PointsTransaction.created_at.desc(), PointsTransaction.id.desc()),
                limit=limit,
            )

        items: List[Dict[str, Any]] = [
            {
                "id": row.id,
                "kind": row.kind,
                "source": row.source,
                "amount_coins": row.amount_coins,
                "amount_xp": row.amount_xp,
                "balance_after_coins": row.balance_after_coins,
                "metadata": row.details,
                "created_at": ensure_utc(row.created_at).isoformat(),
            }
            for row in rows
        ]
        next_cursor = None
        if len(items) == limit:
            next_cursor = f"{items[-1]['created_at']}|{items[-1]['id']}"
        return {"items": items, "next_cursor": next_cursor}

    # ========================================================================
    # PRIVATE
    # ========================================================================

    async def _get_or_create_locked(
        self, session: AsyncSession, patient_id: str
    ) -> PatientPoints:
        balance = await self._balances.find_for_patient(session, patient_id, for_update=True)
        if balance is not None:
            return balance

        balance = self._balances.add(
            session, PatientPoints(patient_id=patient_id, coins=0, xp=0, level=1)
        )
        await session.flush()
        self.log_operation("points_balance_created", patient_id=patient_id)
        return balance

    async def _apply_adjustment(
        self,
        session: AsyncSession,
        patient_id: str,
        delta_coins: int,
        delta_xp: int,
        kind: str,
        source: str,
        metadata: Optional[Dict[str, Any]],
    ) -> Tuple[PatientPoints, PointsTransaction]:
        balance = await self._get_or_create_locked(session, patient_id)

        new_coins = balance.coins + delta_coins
        new_xp = balance.xp + delta_xp
        if new_coins < 0:
            raise InsufficientBalanceError("coins", -delta_coins, balance.coins)
        if new_xp < 0:
            raise InsufficientBalanceError("xp", -delta_xp, balance.xp)

        xp_per_level = int(self.get_config("economy.xp_per_level", 100))
        balance.coins = new_coins
        balance.xp = new_xp
        balance.level = level_for_xp(new_xp, xp_per_level)

        transaction = self._transactions.add(
            session,
            PointsTransaction(
                patient_id=patient_id,
                kind=kind,
                source=source,
                amount_coins=delta_coins,
                amount_xp=delta_xp,
                balance_after_coins=new_coins,
                details=dict(metadata or {}),
                created_at=self.now(),
            ),
        )
        await session.flush()

        self.log_operation(
            "adjust_balance",
            patient_id=patient_id,
            kind=kind,
            source=source,
            delta_coins=delta_coins,
            delta_xp=delta_xp,
            balance_after_coins=new_coins,
            level=balance.level,
        )
        return balance, transaction

    @staticmethod
    def _parse_cursor(cursor: str) -> Tuple[datetime, Optional[int]]:
        timestamp, _, row_id = cursor.partition("|")
        try:
            return ensure_utc(datetime.fromisoformat(timestamp)), int(row_id) if row_id else None
        except ValueError as exc:
            raise ValidationError("cursor", f"not a history cursor: {cursor!r}") from exc
