"""Tests for difficulty tier progression."""

from codelike_progress.models.progress import CompletedDifficulties, Difficulty
from codelike_progress.progress.difficulty import (
    is_passing_score,
    is_unlocked,
    mastery_percent,
    next_difficulty,
    overall_completed_difficulties,
    percentage,
)


class TestNextDifficulty:
    def test_starts_at_easy(self):
        assert next_difficulty(set()) == Difficulty.EASY

    def test_after_easy(self):
        assert next_difficulty({Difficulty.EASY}) == Difficulty.MEDIUM

    def test_after_easy_and_medium(self):
        assert next_difficulty({Difficulty.EASY, Difficulty.MEDIUM}) == Difficulty.HARD

    def test_all_mastered(self):
        assert next_difficulty(set(Difficulty)) is None

    def test_fixed_order_fills_gaps_first(self):
        assert next_difficulty({Difficulty.MEDIUM}) == Difficulty.EASY

    def test_accepts_plain_strings(self):
        assert next_difficulty(["easy"]) == Difficulty.MEDIUM


class TestPassingScore:
    def test_three_of_four_passes(self):
        assert is_passing_score(3, 4)

    def test_two_of_four_fails(self):
        assert not is_passing_score(2, 4)

    def test_zero_total_never_passes(self):
        assert not is_passing_score(0, 0)

    def test_custom_threshold(self):
        assert is_passing_score(2, 4, threshold=0.5)

    def test_percentage(self):
        assert percentage(3, 4) == 75
        assert percentage(1, 3) == 33
        assert percentage(0, 0) == 0


class TestOverallCompleted:
    def test_union_in_tier_order(self):
        completed = CompletedDifficulties(
            game={Difficulty.MEDIUM}, sandbox={Difficulty.EASY}
        )
        assert overall_completed_difficulties(completed) == [
            Difficulty.EASY,
            Difficulty.MEDIUM,
        ]
        assert mastery_percent(completed) == 67

    def test_empty(self):
        assert overall_completed_difficulties(CompletedDifficulties()) == []
        assert mastery_percent(CompletedDifficulties()) == 0


class TestIsUnlocked:
    def test_only_easy_at_start(self):
        assert is_unlocked(Difficulty.EASY, set())
        assert not is_unlocked(Difficulty.MEDIUM, set())
        assert not is_unlocked(Difficulty.HARD, set())

    def test_mastered_tiers_stay_replayable(self):
        done = {Difficulty.EASY}
        assert is_unlocked(Difficulty.EASY, done)
        assert is_unlocked(Difficulty.MEDIUM, done)
        assert not is_unlocked(Difficulty.HARD, done)

    def test_everything_open_when_all_mastered(self):
        assert is_unlocked(Difficulty.HARD, set(Difficulty))
