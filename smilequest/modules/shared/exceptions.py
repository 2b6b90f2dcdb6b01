"""
Domain exceptions for the SmileQuest engagement engine.

Purpose
-------
Define the structured, domain-specific exception hierarchy raised by services
for unknown entities, ownership violations, malformed input, ledger limits and
lost races. The HTTP layer translates these into structured error bodies.

Design Notes
------------
- All domain exceptions inherit from `EngagementDomainException`.
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context (dict-like)
  - `severity`: `ErrorSeverity` value for logging/alerting
  - `is_retryable`: whether the operation can be retried
  - `error_code`: short, stable identifier for programmatic use
  - `http_status`: status code the API layer responds with
- Helper functions (`get_error_severity`, `should_alert`)
  centralize common exception handling patterns.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from .severity import ErrorSeverity


class EngagementDomainException(Exception):
    """
    Base exception for all engagement domain-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error (dict-like)
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling

    Example:
        >>> raise EngagementDomainException(
        ...     "Check-in rejected",
        ...     {"reason": "date in the future"}
        ... )
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False
    HTTP_STATUS: int = 400

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    @property
    def http_status(self) -> int:
        return self.HTTP_STATUS

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

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r}"
            ")"
        )


class NotFoundError(EngagementDomainException):
    """
    Raised when an aligner, patient, quest or mission cannot be found.

    Args:
        resource_type: Type of resource (e.g., "Aligner", "MissionTemplate")
        identifier: Optional identifier for the missing resource
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    HTTP_STATUS = 404

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier

        if identifier is not None:
            message = f"{resource_type} not found: {identifier}"
        else:
            message = f"{resource_type} not found"

        super().__init__(
            message,
            details={"resource_type": resource_type, "identifier": identifier},
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class PermissionDeniedError(EngagementDomainException):
    """
    Raised when a resource does not belong to the calling patient.

    Args:
        resource_type: Type of resource being accessed
        identifier: The resource identifier
        patient_id: The patient that attempted the access
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    HTTP_STATUS = 403

    def __init__(self, resource_type: str, identifier: Any, patient_id: Any) -> None:
        self.resource_type = resource_type
        self.identifier = identifier
        self.patient_id = patient_id
        super().__init__(
            f"{resource_type} {identifier} does not belong to patient {patient_id}",
            details={
                "resource_type": resource_type,
                "identifier": identifier,
                "patient_id": patient_id,
            },
            error_code="PERMISSION_DENIED",
        )


class ValidationError(EngagementDomainException):
    """
    Raised when caller input fails domain validation.

    Args:
        field: Name of the field that failed validation
        message: Explanation of why validation failed
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code=f"VALIDATION_{field.upper()}",
        )


class InsufficientBalanceError(EngagementDomainException):
    """
    Raised when a ledger adjustment would drive coins or XP below zero.

    Args:
        resource: "coins" or "xp"
        required: Amount the adjustment removes
        current: Current balance
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, resource: str, required: int, current: int) -> None:
        self.resource = resource
        self.required = required
        self.current = current
        super().__init__(
            f"Insufficient {resource}: need {required:,}, have {current:,}",
            details={
                "resource": resource,
                "required": required,
                "current": current,
                "deficit": required - current,
            },
            error_code=f"INSUFFICIENT_{resource.upper()}",
        )


class ConflictError(EngagementDomainException):
    """
    Raised when a concurrent transition raced and lost.

    Callers retry; the retried operation is idempotent.

    Args:
        resource_type: Entity whose state changed underneath the caller
        identifier: The entity identifier
        reason: What conflicted
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True
    HTTP_STATUS = 409

    def __init__(self, resource_type: str, identifier: Any, reason: str) -> None:
        self.resource_type = resource_type
        self.identifier = identifier
        super().__init__(
            f"Conflict on {resource_type} {identifier}: {reason}",
            details={
                "resource_type": resource_type,
                "identifier": identifier,
                "reason": reason,
            },
            error_code="CONFLICT",
        )


# ============================================================================
# Helpers
# ============================================================================


def get_error_severity(exc: Exception) -> ErrorSeverity:
    if isinstance(exc, EngagementDomainException):
        return exc.severity
    return ErrorSeverity.ERROR


def should_alert(exc: Exception) -> bool:
    """True if severity is ERROR or CRITICAL."""
    return get_error_severity(exc) in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
