"""
SmileQuest event system: instance-based async pub/sub with wildcard routing.
"""

from smilequest.core.event.bus import EventBus
from smilequest.core.event.router import EventRouter
from smilequest.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)

__all__ = [
    "EventBus",
    "EventRouter",
    "EventListener",
    "EventPayload",
    "CallbackType",
    "ListenerPriority",
]
