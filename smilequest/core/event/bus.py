"""
SmileQuest EventBus: async pub/sub with tiered concurrency.

Purpose
-------
Decouple the engagement engine from the collaborators that react to it
(notifications, analytics, the front-end push channel). Services publish
domain events such as "wear.day_completed" or "mission.completed"; nothing
in the engine depends on who listens.

Responsibilities
----------------
- Register/unregister listeners with priorities
- Publish events to all matching listeners (exact + wildcard)
- Execute listeners according to the tiered concurrency model:
  * CRITICAL / HIGH: sequential, awaited with timeout
  * NORMAL: concurrent (gather), awaited
  * LOW: fire-and-forget background tasks
- Error isolation: one failing listener never blocks others or the publisher

Design Decisions
----------------
- Instance-based: one bus per application container (tests build their own)
- Events are published after the database transaction commits, so listeners
  never observe state that could still roll back
"""

from __future__ import annotations

import asyncio
import inspect
from logging import Logger
from typing import Any, Dict, List, Optional

from smilequest.core.event.router import EventRouter
from smilequest.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)
from smilequest.core.logging.logger import get_logger

logger = get_logger(__name__)


class EventBus:
    """
    >>> bus = EventBus()
    >>> bus.subscribe("mission.completed", on_mission_completed)
    >>> await bus.publish("mission.completed", {"patient_id": "p-1", "mission_id": 4})
    """

    def __init__(
        self,
        router: Optional[EventRouter] = None,
        *,
        critical_timeout_seconds: float = 5.0,
        high_timeout_seconds: float = 5.0,
    ) -> None:
        self._router = router or EventRouter()
        self._listeners: Dict[str, List[EventListener]] = {}
        self._critical_timeout = critical_timeout_seconds
        self._high_timeout = high_timeout_seconds
        self._background_tasks: set[asyncio.Task[Any]] = set()
        self._published: Dict[str, int] = {}
        self._listener_errors = 0

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
    ) -> str:
        """
        Subscribe a callback to an event name or wildcard pattern.

        Returns the listener identifier (for unsubscribing later).
        Re-subscribing the same identifier to the same event is a no-op.
        """
        if not callable(callback):
            raise ValueError(f"EventBus callback must be callable, got {callback!r}")

        listener = EventListener.from_callback(
            event_name=event_name,
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )

        bucket = self._listeners.setdefault(event_name, [])
        if any(existing.identifier == listener.identifier for existing in bucket):
            logger.warning(
                "EventBus: duplicate listener prevented",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )
            return listener.identifier

        bucket.append(listener)
        bucket.sort(key=lambda lst: lst.priority.value)

        logger.debug(
            "EventBus: subscribed listener",
            extra={
                "event_name": event_name,
                "listener_id": listener.identifier,
                "priority": listener.priority.name,
                "once": listener.once,
            },
        )
        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        bucket = self._listeners.get(event_name, [])
        remaining = [lst for lst in bucket if lst.identifier != identifier]
        removed = len(remaining) != len(bucket)
        if remaining:
            self._listeners[event_name] = remaining
        else:
            self._listeners.pop(event_name, None)

        if removed:
            logger.debug(
                "EventBus: unsubscribed listener",
                extra={"event_name": event_name, "listener_id": identifier},
            )
        return removed

    def clear(self) -> None:
        total = sum(len(bucket) for bucket in self._listeners.values())
        self._listeners.clear()
        logger.info("EventBus: cleared all listeners", extra={"previous_listener_count": total})

    # ------------------------------------------------------------------ #
    # Publish API
    # ------------------------------------------------------------------ #

    def _extract_listeners(self, event_name: str) -> List[EventListener]:
        matched: List[EventListener] = []
        for pattern, bucket in list(self._listeners.items()):
            if not self._router.matches(event_name, pattern):
                continue
            matched.extend(bucket)
            one_shots = [lst for lst in bucket if lst.once]
            for listener in one_shots:
                self.unsubscribe(pattern, listener.identifier)
        matched.sort(key=lambda lst: lst.priority.value)
        return matched

    async def publish(self, event_name: str, data: EventPayload) -> list[Any]:
        """
        Publish an event to all subscribed listeners.

        Returns results from CRITICAL/HIGH/NORMAL listeners. LOW-tier
        listeners are fire-and-forget and not included.
        """
        self._published[event_name] = self._published.get(event_name, 0) + 1

        listeners = self._extract_listeners(event_name)
        if not listeners:
            logger.debug("EventBus: no listeners for event", extra={"event_name": event_name})
            return []

        results: list[Any] = []

        for listener in listeners:
            if listener.priority is ListenerPriority.CRITICAL:
                results.append(await self._run_with_timeout(listener, event_name, data, self._critical_timeout))
            elif listener.priority is ListenerPriority.HIGH:
                results.append(await self._run_with_timeout(listener, event_name, data, self._high_timeout))

        normal = [lst for lst in listeners if lst.priority is ListenerPriority.NORMAL]
        if normal:
            results.extend(
                await asyncio.gather(*[self._run_listener(lst, event_name, data) for lst in normal])
            )

        low = [lst for lst in listeners if lst.priority is ListenerPriority.LOW]
        for listener in low:
            task = asyncio.get_running_loop().create_task(
                self._run_listener(listener, event_name, data),
                name=f"eventbus-low-{event_name}-{listener.identifier}",
            )
            self._background_tasks.add(task)
            task.add_done_callback(self._background_tasks.discard)

        return results

    async def _run_with_timeout(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        timeout: Optional[float],
    ) -> Any:
        if timeout is None or timeout <= 0:
            return await self._run_listener(listener, event_name, payload)
        try:
            return await asyncio.wait_for(
                self._run_listener(listener, event_name, payload), timeout=timeout
            )
        except asyncio.TimeoutError:
            self._listener_errors += 1
            logger.error(
                "EventBus listener timeout",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "timeout_seconds": timeout,
                },
            )
            return None

    async def _run_listener(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
    ) -> Any:
        try:
            result = listener.callback(payload)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as exc:
            self._listener_errors += 1
            logger.error(
                "EventBus listener failed",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "error_type": type(exc).__name__,
                    "error_message": str(exc),
                },
                exc_info=True,
            )
            return None

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        if event_name is None:
            return sum(len(bucket) for bucket in self._listeners.values())
        return sum(
            len(bucket)
            for pattern, bucket in self._listeners.items()
            if self._router.matches(event_name, pattern)
        )

    def get_metrics_summary(self) -> dict[str, Any]:
        return {
            "published": dict(self._published),
            "listener_errors": self._listener_errors,
            "listeners": self.get_listener_count(),
            "background_tasks": len(self._background_tasks),
        }

    async def drain(self) -> None:
        """Await outstanding LOW-tier tasks (used on shutdown and in tests)."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)
