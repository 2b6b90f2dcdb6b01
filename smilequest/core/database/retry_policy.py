"""
Database Retry Policy

Purpose
-------
Bounded retry with exponential backoff and jitter for operations that can
lose a race: award transitions, first-time balance creation, and lazily
created quests. Every retried operation is idempotent, so a retry observes
the winner's committed state and becomes a no-op.

Architecture Notes
------------------
**Retry Classification**:
- Retriable: ConflictError, IntegrityError (unique-key race on insert),
  OperationalError (deadlock, serialization failure, SQLite busy)
- Non-retriable: everything else (domain errors, programming errors)

**Backoff Strategy**:
- min(base * 2^(attempt-1), max) + random(0, jitter)
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError

from smilequest.core.logging.logger import get_logger
from smilequest.modules.shared.exceptions import ConflictError

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    max_attempts: int = 3
    initial_backoff_ms: int = 20
    max_backoff_ms: int = 500
    jitter_ms: int = 20
    retriable_exceptions: Tuple[Type[BaseException], ...] = (
        ConflictError,
        IntegrityError,
        OperationalError,
    )


class DatabaseRetryPolicy:
    """
    Execute async database operations with retry semantics.

    >>> policy = DatabaseRetryPolicy(RetryConfig(max_attempts=3))
    >>> await policy.execute(award_once, operation_name="mission.award")
    """

    def __init__(self, config: Optional[RetryConfig] = None) -> None:
        self._config = config or RetryConfig()

    @property
    def max_attempts(self) -> int:
        return self._config.max_attempts

    def _is_retriable(self, exc: BaseException) -> bool:
        return isinstance(exc, self._config.retriable_exceptions)

    def _compute_backoff_ms(self, attempt: int) -> int:
        exponent = max(attempt - 1, 0)
        capped = min(self._config.initial_backoff_ms * (2**exponent), self._config.max_backoff_ms)
        jitter = random.randint(0, self._config.jitter_ms) if self._config.jitter_ms > 0 else 0
        return capped + jitter

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        operation_name: str,
        context: Optional[dict[str, Any]] = None,
    ) -> T:
        """
        Run `operation`, retrying retriable failures up to max_attempts.

        Raises the last exception when retries are exhausted or the failure
        is not retriable.
        """
        ctx_extra = context.copy() if context else {}
        ctx_extra["operation"] = operation_name

        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except Exception as exc:
                retriable = self._is_retriable(exc)
                will_retry = retriable and attempt < self._config.max_attempts

                if not will_retry:
                    if retriable:
                        logger.error(
                            "Database operation retries exhausted",
                            extra={
                                **ctx_extra,
                                "attempt": attempt,
                                "error_type": type(exc).__name__,
                                "max_attempts": self._config.max_attempts,
                            },
                        )
                    raise

                backoff_ms = self._compute_backoff_ms(attempt)
                logger.warning(
                    "Database operation lost a race; retrying",
                    extra={
                        **ctx_extra,
                        "attempt": attempt,
                        "error_type": type(exc).__name__,
                        "backoff_ms": backoff_ms,
                    },
                )
                await asyncio.sleep(backoff_ms / 1000.0)
