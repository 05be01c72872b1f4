"""XP award and level threshold tests."""

from __future__ import annotations

import pytest

from algoreview.gamification.leveling import (
    INITIAL_LEVEL_STATE,
    LevelState,
    apply_experience,
    experience_award,
    threshold_for_level,
)


class TestThresholds:
    @pytest.mark.parametrize(
        ("level", "expected"),
        [(1, 100), (2, 150), (3, 225), (4, 337), (5, 506), (10, 3844)],
    )
    def test_geometric_thresholds(self, level, expected):
        assert threshold_for_level(level) == expected


class TestAward:
    def test_step_function(self):
        assert experience_award(70) == 50
        assert experience_award(100) == 50
        assert experience_award(69.99) == 30
        assert experience_award(0) == 30


class TestApplyExperience:
    def test_below_threshold_stays_level_one(self):
        assert apply_experience(INITIAL_LEVEL_STATE, 50) == LevelState(1, 50, 100)

    def test_exact_threshold_levels_up(self):
        assert apply_experience(INITIAL_LEVEL_STATE, 100) == LevelState(2, 0, 150)

    def test_multi_level_single_award(self):
        """250 XP clears level 1 (100) and level 2 (150) in one call."""
        assert apply_experience(INITIAL_LEVEL_STATE, 250) == LevelState(3, 0, 225)

    def test_overflow_carries(self):
        assert apply_experience(INITIAL_LEVEL_STATE, 130) == LevelState(2, 30, 150)

    @pytest.mark.parametrize(
        "splits",
        [[250], [100, 150], [50] * 5, [30, 30, 30, 50, 50, 60], [1] * 250],
    )
    def test_split_awards_match_lump_sum(self, splits):
        state = INITIAL_LEVEL_STATE
        for amount in splits:
            state = apply_experience(state, amount)
        assert state == apply_experience(INITIAL_LEVEL_STATE, sum(splits))
        assert state == LevelState(3, 0, 225)

    def test_invariant_experience_below_threshold(self):
        state = INITIAL_LEVEL_STATE
        for amount in [30, 50, 500, 1, 10_000, 0]:
            state = apply_experience(state, amount)
            assert state.experience < state.experience_to_next_level

    def test_negative_award_rejected(self):
        with pytest.raises(ValueError):
            apply_experience(INITIAL_LEVEL_STATE, -1)
