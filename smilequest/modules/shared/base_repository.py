"""
Base Repository Pattern

Purpose
-------
Provides a type-safe, generic repository abstraction for database operations
following SQLAlchemy 2.0 async patterns. Repositories encapsulate data access
and give services a consistent interface for reads, locked reads, inserts and
guarded (conditional) updates.

Design Notes
------------
This base repository provides:
- Type-safe lookups by primary key or arbitrary conditions
- Pessimistic locking support (for_update)
- Conditional UPDATE returning the affected row count, the primitive behind
  every exactly-once state transition in the engine
- Full structured logging

What this class does NOT do:
- Manage transactions (services/DatabaseService handle that)
- Contain business logic

Usage
-----
    class WearSessionRepository(BaseRepository[WearSession]):
        async def find_open(self, session, aligner_id):
            return await self.find_one_where(
                session,
                WearSession.aligner_id == aligner_id,
                WearSession.ended_at.is_(None),
                for_update=True,
            )
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy import func, select, update

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Generic base repository for type-safe database operations.

    Type Parameters:
        T: The SQLAlchemy model class this repository manages
    """

    def __init__(self, model_class: Type[T], logger: Logger) -> None:
        self.model_class = model_class
        self.log = logger

    async def get(self, session: AsyncSession, id_value: Any) -> Optional[T]:
        """Get a single record by primary key (no lock)."""
        instance = await session.get(self.model_class, id_value)

        self.log.debug(
            f"Repository.get: {self.model_class.__name__}",
            extra={
                "model": self.model_class.__name__,
                "id": id_value,
                "found": instance is not None,
            },
        )

        return instance

    async def get_for_update(self, session: AsyncSession, id_value: Any) -> Optional[T]:
        """Get a single record by primary key with SELECT FOR UPDATE lock."""
        instance = await session.get(self.model_class, id_value, with_for_update={"of": self.model_class})

        self.log.debug(
            f"Repository.get_for_update: {self.model_class.__name__}",
            extra={
                "model": self.model_class.__name__,
                "id": id_value,
                "found": instance is not None,
                "locked": True,
            },
        )

        return instance

    async def find_one_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        for_update: bool = False,
        order_by: Optional[Any] = None,
    ) -> Optional[T]:
        """
        Find the first record matching conditions.

        Args:
            session: Database session
            *conditions: SQLAlchemy filter conditions
            for_update: If True, use SELECT FOR UPDATE
            order_by: Optional ordering applied before taking the first row
        """
        stmt = select(self.model_class).where(*conditions)

        if order_by is not None:
            stmt = stmt.order_by(order_by)

        stmt = stmt.limit(1)

        if for_update:
            stmt = stmt.with_for_update(of=self.model_class)

        result = await session.execute(stmt)
        instance = result.unique().scalar_one_or_none()

        self.log.debug(
            f"Repository.find_one_where: {self.model_class.__name__}",
            extra={
                "model": self.model_class.__name__,
                "found": instance is not None,
                "locked": for_update,
            },
        )

        return instance

    async def find_many_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        for_update: bool = False,
        order_by: Optional[Any] = None,
        limit: Optional[int] = None,
    ) -> List[T]:
        """Find multiple records matching conditions; order_by may be a tuple."""
        stmt = select(self.model_class).where(*conditions)

        if order_by is not None:
            stmt = stmt.order_by(*order_by) if isinstance(order_by, tuple) else stmt.order_by(order_by)

        if limit is not None:
            stmt = stmt.limit(limit)

        if for_update:
            stmt = stmt.with_for_update(of=self.model_class)

        result = await session.execute(stmt)
        instances = list(result.unique().scalars().all())

        self.log.debug(
            f"Repository.find_many_where: {self.model_class.__name__}",
            extra={
                "model": self.model_class.__name__,
                "found_count": len(instances),
                "locked": for_update,
                "limit": limit,
            },
        )

        return instances

    async def count(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> int:
        stmt = select(func.count()).select_from(self.model_class).where(*conditions)
        result = await session.execute(stmt)
        return result.scalar_one()

    async def update_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        values: dict[str, Any],
    ) -> int:
        """
        Conditional UPDATE. Returns the number of rows the guard matched.

        A return of 0 means another writer already moved the row out of the
        guarded state; callers treat that as "nothing to do".
        """
        stmt = (
            update(self.model_class)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        rowcount = result.rowcount or 0

        self.log.debug(
            f"Repository.update_where: {self.model_class.__name__}",
            extra={
                "model": self.model_class.__name__,
                "rowcount": rowcount,
                "fields": sorted(values.keys()),
            },
        )

        return rowcount

    def add(self, session: AsyncSession, instance: T) -> T:
        session.add(instance)

        self.log.debug(
            f"Repository.add: {self.model_class.__name__}",
            extra={"model": self.model_class.__name__},
        )

        return instance

    async def refresh(self, session: AsyncSession, instance: T) -> T:
        await session.refresh(instance)
        return instance
