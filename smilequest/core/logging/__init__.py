"""
SmileQuest Logging Infrastructure

Exports the structured logging subsystem, log context helpers,
and configuration interface.
"""

from smilequest.core.logging.logger import (
    LogContext,
    LoggerConfig,
    get_logger,
    get_logging_health,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "setup_logging",
    "shutdown_logging",
    "get_logger",
    "get_logging_health",
    "LogContext",
    "LoggerConfig",
]
