"""
Infrastructure exceptions for the SmileQuest engagement engine.

Purpose
-------
Define the structured exception hierarchy for infrastructure-level concerns:
database lifecycle failures and configuration errors. Domain errors (unknown
aligner, permission checks, award races) live in
`smilequest.modules.shared.exceptions`.

Design Notes
------------
- All infrastructure exceptions inherit from `EngagementInfrastructureException`.
- Each exception carries `message`, `details`, `severity`, `is_retryable`
  and `error_code`, mirroring the domain hierarchy so the API layer can
  render either kind with the same error body.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from smilequest.modules.shared.severity import ErrorSeverity


class EngagementInfrastructureException(Exception):
    """
    Base exception for all infrastructure-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message = message
        self.details: Dict[str, Any] = details or {}
        self.severity = severity or self.DEFAULT_SEVERITY
        self.is_retryable = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code = error_code or self.__class__.__name__
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"


class ConfigurationError(EngagementInfrastructureException):
    """
    Raised when a required configuration value is missing or malformed.

    Args:
        config_key: The configuration key at fault
        reason: Explanation of what is wrong
    """

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL

    def __init__(self, config_key: str, reason: str) -> None:
        self.config_key = config_key
        super().__init__(
            f"Configuration error for '{config_key}': {reason}",
            details={"config_key": config_key, "reason": reason},
            error_code="CONFIGURATION_ERROR",
        )


class DatabaseInitializationError(EngagementInfrastructureException):
    """Raised when database engine initialization fails."""

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL

    def __init__(self, reason: str) -> None:
        super().__init__(
            f"Database initialization failed: {reason}",
            details={"reason": reason},
            error_code="DATABASE_INIT_FAILED",
        )


class DatabaseNotInitializedError(EngagementInfrastructureException):
    """Raised when a session is requested before initialize() or after shutdown()."""

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL
    DEFAULT_RETRYABLE = True

    def __init__(self) -> None:
        super().__init__(
            "DatabaseService is not initialized",
            error_code="DATABASE_NOT_INITIALIZED",
        )
