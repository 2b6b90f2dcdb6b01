"""
Wildcard event-name matching for the EventBus.

Supported Patterns
------------------
- Exact:    "wear.paused" matches only "wear.paused"
- Global:   "*" matches any event
- Prefix:   "wear.*" matches "wear.paused", "wear.day_completed", ...
- Suffix:   "*.completed" matches "mission.completed", "quest.completed", ...
- Sandwich: "mission.*.done" matches "mission.usage.done", ...
"""

from __future__ import annotations


class EventRouter:
    """
    Stateless wildcard matcher.

    >>> EventRouter().matches("wear.paused", "wear.*")
    True
    >>> EventRouter().matches("quest.finalized", "wear.*")
    False
    """

    def matches(self, event_name: str, pattern: str) -> bool:
        if pattern == "*":
            return True

        if "*" not in pattern:
            return event_name == pattern

        while "**" in pattern:
            pattern = pattern.replace("**", "*")

        parts = pattern.split("*")

        if parts[0] and not event_name.startswith(parts[0]):
            return False
        if parts[-1] and not event_name.endswith(parts[-1]):
            return False

        idx = len(parts[0])
        end_limit = len(event_name) - len(parts[-1])
        for mid in parts[1:-1]:
            if not mid:
                continue
            found = event_name.find(mid, idx, end_limit)
            if found == -1:
                return False
            idx = found + len(mid)

        return idx <= end_limit
