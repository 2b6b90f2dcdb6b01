"""
Half-open time interval arithmetic for wear aggregation.

All instants are timezone-aware UTC. Calendar days are UTC days and map to
the half-open window [D 00:00, D+1 00:00), so adjacent days never share an
instant and a fully worn day measures exactly 1440 minutes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Iterator, List, Optional

MINUTES_PER_DAY = 24 * 60


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and normalize aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_date(value: datetime) -> date:
    return ensure_utc(value).date()


@dataclass(frozen=True)
class TimeInterval:
    """Half-open interval [start, end)."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", ensure_utc(self.start))
        object.__setattr__(self, "end", ensure_utc(self.end))
        if self.end < self.start:
            raise ValueError(f"interval end {self.end} precedes start {self.start}")

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def intersection(self, other: "TimeInterval") -> Optional["TimeInterval"]:
        start = max(self.start, other.start)
        end = min(self.end, other.end)
        if end <= start:
            return None
        return TimeInterval(start, end)

    def overlap(self, other: "TimeInterval") -> timedelta:
        shared = self.intersection(other)
        return shared.duration if shared is not None else timedelta(0)

    def days(self) -> Iterator[date]:
        """Every UTC calendar day the interval touches."""
        current = self.start.date()
        last = self.end.date()
        # An interval ending exactly at midnight does not touch the next day.
        if self.end.time() == time(0) and self.end > self.start:
            last = last - timedelta(days=1)
        while current <= last:
            yield current
            current += timedelta(days=1)


def day_window(day: date) -> TimeInterval:
    start = datetime.combine(day, time(0), tzinfo=timezone.utc)
    return TimeInterval(start, start + timedelta(days=1))


def overlap_minutes(intervals: Iterable[TimeInterval], window: TimeInterval) -> int:
    """
    Whole minutes of `window` covered by `intervals`, clamped to [0, 1440].

    Overlaps are summed at full precision and floored once, so a day split
    into many short sessions loses less than a minute in total.

    >>> overlap_minutes([TimeInterval(datetime(2024, 1, 1, 0, tzinfo=timezone.utc),
    ...                               datetime(2024, 1, 1, 10, tzinfo=timezone.utc))],
    ...                 day_window(date(2024, 1, 1)))
    600
    """
    total = timedelta(0)
    for interval in intervals:
        total += interval.overlap(window)
    minutes = int(total.total_seconds() // 60)
    return max(0, min(MINUTES_PER_DAY, minutes))


def date_range_back(end: date, days: int) -> List[date]:
    """`days` consecutive dates ending at `end`, oldest first."""
    return [end - timedelta(days=offset) for offset in range(days - 1, -1, -1)]
