"""
SmileQuest Engagement Formulas

Purpose
-------
Pure calculation functions for compliance and reward rules: the minimum wear
a day needs to count, aggregate adherence, level curves, and mission reward
amounts.

Design Notes
------------
All formulas:
- Accept parameters explicitly (no config access, no database access)
- Are deterministic and integer-valued
- Round the way clinicians expect: half-up for percentages, floor elsewhere

Usage
-----
    from smilequest.modules.shared.formulas import min_ok_minutes

    threshold = min_ok_minutes(target_minutes=1320, target_percent=80)  # 1056
"""

from __future__ import annotations

import math
from typing import Iterable, Tuple


def min_ok_minutes(target_minutes: int, target_percent: int) -> int:
    """
    Minimum wear minutes for a day to count as compliant.

    Example:
        >>> min_ok_minutes(22 * 60, 80)
        1056
    """
    return target_minutes * target_percent // 100


def is_day_ok(wear_minutes: int, target_minutes: int, target_percent: int) -> bool:
    """
    Example:
        >>> is_day_ok(1140, 1320, 80)
        True
        >>> is_day_ok(1055, 1320, 80)
        False
    """
    return wear_minutes >= min_ok_minutes(target_minutes, target_percent)


def round_half_up(value: float) -> int:
    """
    Round to the nearest integer, halves away from zero for positives.

    Python's round() uses banker's rounding; adherence reports must not.

    Example:
        >>> round_half_up(84.5)
        85
    """
    return math.floor(value + 0.5)


def adherence_percent(rows: Iterable[Tuple[int, int]]) -> int:
    """
    Aggregate adherence over (wear_minutes, target_minutes) rows.

    Returns 0 when no target minutes have been recorded.

    Example:
        >>> adherence_percent([(1320, 1320), (924, 1320)])
        85
    """
    total_wear = 0
    total_target = 0
    for wear, target in rows:
        total_wear += wear or 0
        total_target += target or 0
    if total_target <= 0:
        return 0
    return round_half_up(total_wear / total_target * 100)


def level_for_xp(xp: int, xp_per_level: int = 100) -> int:
    """
    Linear level curve: level 1 at 0 XP, +1 every `xp_per_level`.

    Example:
        >>> level_for_xp(0)
        1
        >>> level_for_xp(250)
        3
    """
    if xp <= 0:
        return 1
    return xp // xp_per_level + 1


def mission_reward(base_points: int, bonus_points: int) -> Tuple[int, int]:
    """
    Coins and XP granted on mission completion.

    Example:
        >>> mission_reward(50, 25)
        (75, 37)
    """
    coins = (base_points or 0) + (bonus_points or 0)
    return coins, coins // 2


def treatment_progress_percent(current_aligner: int, total_aligners: int) -> int:
    """
    Example:
        >>> treatment_progress_percent(10, 20)
        50
    """
    if total_aligners <= 0:
        return 0
    return current_aligner * 100 // total_aligners
