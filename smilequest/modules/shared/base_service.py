"""
Base Service Foundation

Purpose
-------
Provides the foundational class for all engagement services. Services
implement business logic, manage their transactions through an injected
DatabaseService, enforce business rules, and emit domain events.

Design Notes
------------
This base class provides:
- Structured logging with operation context
- Safe config access patterns
- Event emission helpers
- An injectable clock, so time-dependent behavior is testable

What this class does NOT do:
- Manage database transactions (that's DatabaseService's job)
- Handle HTTP concerns

Usage
-----
    class SessionTracker(BaseService):
        def __init__(self, db, directory, config_manager, event_bus, logger, clock=utc_now):
            super().__init__(config_manager, event_bus, logger, clock)
            self.db = db
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from .intervals import utc_now

if TYPE_CHECKING:
    from logging import Logger

    from smilequest.core.config.manager import ConfigManager
    from smilequest.core.event.bus import EventBus


Clock = Callable[[], datetime]


class BaseService:
    """
    Base class for all domain services.

    Args:
        config_manager: Tunable configuration
        event_bus: Event bus for cross-module communication
        logger: Structured logger instance
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        clock: Clock = utc_now,
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    def get_config(
        self, key: str, default: Optional[Any] = None, required: bool = False
    ) -> Any:
        """
        Safely retrieve configuration value.

        Raises:
            ConfigurationError: If required=True and key is missing
        """
        from smilequest.core.exceptions import ConfigurationError

        value = self._config.get(key, default)
        if required and value is None:
            raise ConfigurationError(
                key, f"Required configuration key '{key}' is missing"
            )
        return value

    async def emit_event(
        self,
        event_type: str,
        data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self._events.publish(event_type, {**data, **(context or {})})

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(
            f"Service operation: {operation}",
            extra={"operation": operation, **context},
        )

    def log_error(
        self,
        operation: str,
        error: Exception,
        **context: Any,
    ) -> None:
        """Log a service error with full context and traceback."""
        self.log.error(
            f"Service error during {operation}: {str(error)}",
            extra={
                "operation": operation,
                "error_type": type(error).__name__,
                "error_message": str(error),
                **context,
            },
            exc_info=error,
        )
