"""
Service Container
=================

Purpose
-------
Explicit dependency injection for the engagement engine. Builds one instance
of every service, wired to a shared DatabaseService, EventBus, lock registry,
retry policy and clock.

Responsibilities
----------------
- Initialize infrastructure (database) and every domain service in dependency order
- Manage lifecycle (initialize, shutdown)
- Provide access to services for the HTTP layer and tests

Non-Responsibilities
--------------------
- Schema creation (scripts/init_db.py, run once at deploy time)
- HTTP concerns

Architecture Notes
------------------
- No module-level singletons: tests build a container per database
- Services are constructed leaf-first:
  directory, ledger -> streaks -> missions -> aggregator -> tracker
  -> quests -> wear status
"""

from __future__ import annotations

import time
from dataclasses import asdict
from typing import Any, Callable, Dict, Optional

from smilequest.core.config.manager import ConfigManager
from smilequest.core.database.retry_policy import DatabaseRetryPolicy, RetryConfig
from smilequest.core.database.service import DatabaseService
from smilequest.core.event.bus import EventBus
from smilequest.core.locks import KeyedLockRegistry
from smilequest.core.logging.logger import get_logger, get_logging_health
from smilequest.modules.economy import PointsLedgerService
from smilequest.modules.missions import MissionProgressService
from smilequest.modules.quests import QuestService
from smilequest.modules.shared.base_service import Clock
from smilequest.modules.shared.intervals import utc_now
from smilequest.modules.treatment import TreatmentDirectory
from smilequest.modules.wear import (
    DailyAggregator,
    SessionTracker,
    StreakCalculator,
    WearStatusService,
)

logger = get_logger(__name__)


class ServiceContainer:
    """
    Usage:
        container = ServiceContainer(ConfigManager(Config.CONFIG_DIR))
        await container.initialize()
        status = await container.wear_status.get_status("p-1", "al-1")
    """

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        *,
        database: Optional[DatabaseService] = None,
        event_bus: Optional[EventBus] = None,
        clock: Clock = utc_now,
    ) -> None:
        self.config_manager = config_manager or ConfigManager()
        self.db = database or DatabaseService()
        self.event_bus = event_bus or EventBus()
        self.locks = KeyedLockRegistry()
        self.clock = clock
        self.retry_policy = DatabaseRetryPolicy(
            RetryConfig(
                max_attempts=int(self.config_manager.get("missions.award_retry_attempts", 3))
            )
        )

        self.directory: Optional[TreatmentDirectory] = None
        self.ledger: Optional[PointsLedgerService] = None
        self.streaks: Optional[StreakCalculator] = None
        self.missions: Optional[MissionProgressService] = None
        self.aggregator: Optional[DailyAggregator] = None
        self.tracker: Optional[SessionTracker] = None
        self.quests: Optional[QuestService] = None
        self.wear_status: Optional[WearStatusService] = None

        self._initialized = False
        self._service_init_times: Dict[str, float] = {}

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def initialize(self) -> None:
        if self._initialized:
            logger.warning("ServiceContainer already initialized")
            return

        started = time.perf_counter()
        logger.info("Service container initialization starting...")

        await self.db.initialize()
        common = {
            "config_manager": self.config_manager,
            "event_bus": self.event_bus,
            "clock": self.clock,
        }

        self.directory = self._create(
            "directory",
            lambda: TreatmentDirectory(
                self.config_manager, get_logger("smilequest.modules.treatment.TreatmentDirectory")
            ),
        )
        self.ledger = self._create(
            "ledger",
            lambda: PointsLedgerService(
                self.db, logger=self._service_logger("economy", "PointsLedgerService"), **common
            ),
        )
        self.streaks = self._create(
            "streaks",
            lambda: StreakCalculator(
                self.db, logger=self._service_logger("wear", "StreakCalculator"), **common
            ),
        )
        self.missions = self._create(
            "missions",
            lambda: MissionProgressService(
                self.db,
                self.directory,
                self.streaks,
                self.ledger,
                self.retry_policy,
                logger=self._service_logger("missions", "MissionProgressService"),
                **common,
            ),
        )
        self.aggregator = self._create(
            "aggregator",
            lambda: DailyAggregator(
                self.db,
                self.directory,
                self.locks,
                self.retry_policy,
                logger=self._service_logger("wear", "DailyAggregator"),
                missions=self.missions,
                **common,
            ),
        )
        self.tracker = self._create(
            "tracker",
            lambda: SessionTracker(
                self.db,
                self.directory,
                self.aggregator,
                self.locks,
                logger=self._service_logger("wear", "SessionTracker"),
                **common,
            ),
        )
        self.quests = self._create(
            "quests",
            lambda: QuestService(
                self.db,
                self.directory,
                self.tracker,
                self.aggregator,
                self.ledger,
                self.locks,
                self.retry_policy,
                logger=self._service_logger("quests", "QuestService"),
                **common,
            ),
        )
        self.wear_status = self._create(
            "wear_status",
            lambda: WearStatusService(
                self.db,
                self.directory,
                self.tracker,
                self.aggregator,
                self.streaks,
                self.quests,
                self.ledger,
                self.retry_policy,
                logger=self._service_logger("wear", "WearStatusService"),
                **common,
            ),
        )

        self._initialized = True
        logger.info(
            "Service container initialized",
            extra={
                "services": len(self._service_init_times),
                "duration_ms": (time.perf_counter() - started) * 1000.0,
            },
        )

    async def shutdown(self) -> None:
        await self.event_bus.drain()
        await self.db.shutdown()
        self._initialized = False
        logger.info("Service container shut down")

    async def health_check(self) -> Dict[str, Any]:
        database_ok = await self.db.health_check()
        return {
            "status": "ok" if database_ok else "degraded",
            "initialized": self._initialized,
            "database": database_ok,
            "events": self.event_bus.get_metrics_summary(),
            "logging": asdict(get_logging_health()),
        }

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    # ========================================================================
    # Private
    # ========================================================================

    def _create(self, name: str, factory: Callable[[], Any]) -> Any:
        start = time.perf_counter()
        service = factory()
        self._service_init_times[name] = time.perf_counter() - start
        return service

    @staticmethod
    def _service_logger(module: str, service: str):
        return get_logger(f"smilequest.modules.{module}.{service}")
