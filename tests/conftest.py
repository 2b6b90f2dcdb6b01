"""
Pytest Configuration and Fixtures for SmileQuest Tests
======================================================

Purpose
-------
Centralized fixtures for the engagement engine test suite: a scratch
database per test, a controllable clock, a fully wired ServiceContainer and
row factories for treatment, wear and mission data.

Architecture Notes
------------------
- Unit tests run against a temp-file SQLite database (aiosqlite), created
  fresh for every test, so services run their real SQL
- Integration tests (tests/integration) use a PostgreSQL testcontainer
- The clock is frozen and advanced explicitly; no test depends on wall time
"""

from __future__ import annotations

import os
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Dict, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from smilequest.core.config.manager import ConfigManager
from smilequest.core.container import ServiceContainer
from smilequest.core.database.service import DatabaseService
from smilequest.database.models import (
    Aligner,
    DailyCompliance,
    MissionInstance,
    MissionTemplate,
    Treatment,
    TreatmentPhase,
    WearSession,
)
from smilequest.modules.shared.formulas import is_day_ok

# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


def pytest_configure(config):
    """Configure pytest environment."""
    os.environ.setdefault("ENVIRONMENT", "testing")
    os.environ.setdefault("LOG_LEVEL", "DEBUG")


# ============================================================================
# CLOCK
# ============================================================================


class FrozenClock:
    """Callable clock that only moves when a test moves it."""

    def __init__(self, now: datetime) -> None:
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value

    def advance(self, **delta: float) -> datetime:
        self.current = self.current + timedelta(**delta)
        return self.current


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


# ============================================================================
# CONFIG / DATABASE / CONTAINER
# ============================================================================


@pytest.fixture
def config_overrides() -> Dict[str, Any]:
    """Override in a test module to tune engagement values."""
    return {}


@pytest.fixture
def config_manager(config_overrides: Dict[str, Any]) -> ConfigManager:
    return ConfigManager(overrides=config_overrides)


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[DatabaseService, None]:
    """Fresh SQLite database with the full schema."""
    db = DatabaseService(f"sqlite+aiosqlite:///{tmp_path / 'smilequest.db'}")
    await db.initialize()
    await db.create_schema()
    yield db
    await db.shutdown()


@pytest_asyncio.fixture
async def container(
    database: DatabaseService,
    config_manager: ConfigManager,
    clock: FrozenClock,
) -> AsyncGenerator[ServiceContainer, None]:
    services = ServiceContainer(config_manager, database=database, clock=clock)
    await services.initialize()
    yield services
    await services.shutdown()


@pytest.fixture
def published(container: ServiceContainer):
    """
    Subscribe to an event and get the list its payloads are appended to.

    >>> paused = published("wear.paused")
    """
    captured: Dict[str, List[Dict[str, Any]]] = defaultdict(list)

    def subscribe(event_name: str) -> List[Dict[str, Any]]:
        container.event_bus.subscribe(
            event_name, captured[event_name].append, identifier=f"test-recorder@{event_name}"
        )
        return captured[event_name]

    return subscribe


# ============================================================================
# FACTORIES
# ============================================================================


class Seeder:
    """Row factories writing straight to the database."""

    def __init__(self, db: DatabaseService) -> None:
        self.db = db

    async def treatment(
        self,
        treatment_id: str = "tr-1",
        patient_id: str = "p-1",
        *,
        phase_id: str = "ph-1",
        start_date: date = date(2025, 2, 1),
        target_percent: Optional[int] = 80,
        current_aligner: int = 1,
        total_aligners: int = 20,
    ) -> Treatment:
        treatment = Treatment(
            id=treatment_id,
            patient_id=patient_id,
            name="Upper and lower",
            overall_status="active",
            start_date=start_date,
            total_aligners_overall=total_aligners,
            current_aligner_overall=current_aligner,
        )
        phase = TreatmentPhase(
            id=phase_id,
            treatment_id=treatment_id,
            phase_number=1,
            phase_name="Alignment",
            adherence_target_percent=target_percent,
            status="active",
            start_date=start_date,
        )
        async with self.db.get_transaction() as session:
            session.add(treatment)
            await session.flush()
            session.add(phase)
        return treatment

    async def aligner(
        self,
        aligner_id: str = "al-1",
        patient_id: str = "p-1",
        *,
        aligner_number: int = 1,
        treatment_id: Optional[str] = "tr-1",
        phase_id: Optional[str] = "ph-1",
        hours: Optional[int] = 22,
    ) -> Aligner:
        aligner = Aligner(
            id=aligner_id,
            patient_id=patient_id,
            treatment_id=treatment_id,
            phase_id=phase_id,
            aligner_number=aligner_number,
            start_date=TODAY - timedelta(days=10),
            end_date=TODAY + timedelta(days=4),
            status="active",
            target_hours_per_day=hours,
        )
        async with self.db.get_transaction() as session:
            session.add(aligner)
        return aligner

    async def wear_session(
        self,
        aligner_id: str,
        state: str,
        started_at: datetime,
        ended_at: Optional[datetime] = None,
        *,
        patient_id: str = "p-1",
    ) -> WearSession:
        row = WearSession(
            patient_id=patient_id,
            aligner_id=aligner_id,
            state=state,
            started_at=started_at,
            ended_at=ended_at,
            created_at=started_at,
        )
        async with self.db.get_transaction() as session:
            session.add(row)
        return row

    async def daily(
        self,
        aligner_id: str,
        day: date,
        wear_minutes: int,
        *,
        patient_id: str = "p-1",
        target_minutes: int = 1320,
        target_percent: int = 80,
        source: str = "session",
    ) -> DailyCompliance:
        row = DailyCompliance(
            patient_id=patient_id,
            aligner_id=aligner_id,
            date=day,
            wear_minutes=wear_minutes,
            target_minutes=target_minutes,
            target_percent=target_percent,
            is_day_ok=is_day_ok(wear_minutes, target_minutes, target_percent),
            source=source,
            daily_goal_awarded=False,
        )
        async with self.db.get_transaction() as session:
            session.add(row)
        return row

    async def mission(
        self,
        template_id: str,
        *,
        category: str = "usage",
        frequency: str = "daily",
        criteria: str = "time_based",
        target_value: int = 1,
        base_points: int = 50,
        bonus_points: int = 25,
        patient_id: str = "p-1",
        status: str = "available",
        trigger_aligner_number: Optional[int] = None,
        expires_at: Optional[datetime] = None,
    ) -> MissionInstance:
        async with self.db.get_transaction() as session:
            if await session.get(MissionTemplate, template_id) is None:
                session.add(
                    MissionTemplate(
                        id=template_id,
                        name=template_id.replace("-", " ").title(),
                        description="",
                        category=category,
                        frequency=frequency,
                        completion_criteria=criteria,
                        target_value=target_value,
                        base_points=base_points,
                        bonus_points=bonus_points,
                        aligner_interval=1,
                        is_active_by_default=True,
                    )
                )
                await session.flush()
            instance = MissionInstance(
                patient_id=patient_id,
                mission_template_id=template_id,
                status=status,
                progress=0,
                target_value=target_value,
                trigger_aligner_number=trigger_aligner_number,
                auto_activated=False,
                expires_at=expires_at,
                points_earned=0,
            )
            session.add(instance)
            await session.flush()
        return instance

    async def count(self, model, *conditions) -> int:
        async with self.db.get_session() as session:
            result = await session.execute(select(func.count()).select_from(model).where(*conditions))
            return int(result.scalar_one())

    async def all(self, model, *conditions, order_by=None) -> list:
        stmt = select(model).where(*conditions)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        async with self.db.get_session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().unique().all())


@pytest.fixture
def seeder_class():
    """Seeder factory for tests that bring their own database."""
    return Seeder


@pytest.fixture
def seed(database: DatabaseService) -> Seeder:
    return Seeder(database)


@pytest_asyncio.fixture
async def seeded(seed: Seeder) -> Seeder:
    """
    Patient p-1 in an active treatment (phase target 80%) wearing al-1 (22h),
    plus al-other belonging to patient p-2.
    """
    await seed.treatment()
    await seed.aligner()
    await seed.aligner("al-other", "p-2", treatment_id=None, phase_id=None)
    return seed


@pytest_asyncio.fixture
async def ctx(container: ServiceContainer, seeded: Seeder):
    """AlignerContext for al-1."""
    async with container.db.get_session() as session:
        return await container.directory.get_aligner(session, "al-1")
