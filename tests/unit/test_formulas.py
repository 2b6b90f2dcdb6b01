"""
Unit tests for engagement formulas.
"""

import pytest

from smilequest.modules.shared.formulas import (
    adherence_percent,
    is_day_ok,
    level_for_xp,
    min_ok_minutes,
    mission_reward,
    round_half_up,
    treatment_progress_percent,
)

pytestmark = pytest.mark.unit


class TestDailyThreshold:
    def test_twenty_two_hours_at_eighty_percent(self):
        """22h at 80% needs 1056 minutes."""
        assert min_ok_minutes(22 * 60, 80) == 1056

    def test_threshold_is_floored(self):
        """Fractional thresholds round down."""
        # 1001 * 0.85 = 850.85
        assert min_ok_minutes(1001, 85) == 850

    def test_threshold_uses_integer_arithmetic(self):
        """Threshold stays exact where a float product would lose digits."""
        minutes = 10**17 + 1

        result = min_ok_minutes(minutes, 100)

        assert result == minutes
        assert isinstance(result, int)

    def test_worn_1140_minutes_is_ok(self):
        """The split-session scenario day is compliant."""
        assert is_day_ok(1140, 1320, 80) is True

    def test_exact_threshold_is_ok(self):
        """Meeting the threshold exactly counts."""
        assert is_day_ok(1056, 1320, 80) is True

    def test_one_minute_short_is_not_ok(self):
        """One minute under the threshold does not count."""
        assert is_day_ok(1055, 1320, 80) is False


class TestAdherence:
    def test_aggregate_over_days(self):
        """Adherence is total worn over total target."""
        assert adherence_percent([(1320, 1320), (924, 1320)]) == 85

    def test_no_target_minutes_is_zero(self):
        """No target minutes gives zero, not a division error."""
        assert adherence_percent([]) == 0
        assert adherence_percent([(0, 0)]) == 0

    def test_half_rounds_up(self):
        """Halves round up, unlike round()."""
        assert round_half_up(84.5) == 85
        assert round_half_up(2.5) == 3

    def test_below_half_rounds_down(self):
        """Below a half rounds down."""
        assert round_half_up(84.49) == 84


class TestLevels:
    @pytest.mark.parametrize(
        "xp, level",
        [(0, 1), (99, 1), (100, 2), (250, 3), (-5, 1)],
    )
    def test_linear_curve(self, xp, level):
        """One level per 100 XP, starting at level 1."""
        assert level_for_xp(xp) == level

    def test_custom_step(self):
        """The XP step is configurable."""
        assert level_for_xp(120, xp_per_level=50) == 3


class TestRewards:
    def test_mission_reward_halves_xp(self):
        """XP is half the coin reward, rounded down."""
        assert mission_reward(50, 25) == (75, 37)

    def test_missing_bonus_counts_as_zero(self):
        """A template without bonus points pays the base only."""
        assert mission_reward(40, None) == (40, 20)

    def test_treatment_progress(self):
        """Progress is the floored share of aligners reached."""
        assert treatment_progress_percent(10, 20) == 50
        assert treatment_progress_percent(1, 3) == 33

    def test_treatment_progress_is_exact(self):
        """29 of 100 aligners is 29%, not 28% from 0.29 * 100."""
        assert treatment_progress_percent(29, 100) == 29
        assert treatment_progress_percent(57, 100) == 57

    def test_treatment_progress_without_aligners(self):
        """No aligners in the plan reports zero progress."""
        assert treatment_progress_percent(3, 0) == 0
