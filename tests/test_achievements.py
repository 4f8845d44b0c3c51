"""Tests for achievement rule evaluation."""

import pytest

from codelike_progress.models.progress import (
    CompletedDifficulties,
    Difficulty,
    LanguageProgressRecord,
    TutorialProgress,
)
from codelike_progress.models.user_profile import UserProfile
from codelike_progress.progress.achievements import (
    AchievementEvaluator,
    build_rules,
    newly_unlocked,
)

CATALOG = {"web-dev": ["html", "css"], "data-science": ["sql"]}


def _record(module_id, language_id, tutorial_done=False, game=(), sandbox=()):
    return LanguageProgressRecord(
        module_id=module_id,
        language_id=language_id,
        tutorial_progress=TutorialProgress(
            completed_sections={0, 1}, total_sections=2, completed=tutorial_done
        ),
        completed_difficulties=CompletedDifficulties(game=set(game), sandbox=set(sandbox)),
    )


def _progress(*records):
    return {record.key: record for record in records}


@pytest.fixture
def evaluator():
    return AchievementEvaluator(build_rules(CATALOG))


class TestRules:
    def test_eleven_rules_with_unique_ids(self):
        rules = build_rules(CATALOG)
        assert len(rules) == 11
        assert len({rule.id for rule in rules}) == 11

    def test_fresh_learner_has_nothing(self, evaluator):
        assert evaluator.evaluate(UserProfile(code="a"), {}) == []

    def test_first_steps(self, evaluator):
        progress = _progress(_record("web-dev", "html", tutorial_done=True))
        assert "first-steps" in evaluator.evaluate(UserProfile(code="a"), progress)

    def test_scholar_needs_every_language_of_a_module(self, evaluator):
        profile = UserProfile(code="a")
        partial = _progress(_record("web-dev", "html", tutorial_done=True))
        assert "scholar" not in evaluator.evaluate(profile, partial)
        full = _progress(
            _record("web-dev", "html", tutorial_done=True),
            _record("web-dev", "css", tutorial_done=True),
        )
        assert "scholar" in evaluator.evaluate(profile, full)

    def test_legend_needs_every_module(self, evaluator):
        profile = UserProfile(code="a")
        progress = _progress(
            _record("web-dev", "css", tutorial_done=True),
            _record("data-science", "sql", tutorial_done=True),
        )
        assert "legend" in evaluator.evaluate(profile, progress)
        assert "legend" not in evaluator.evaluate(profile, _progress(progress["web-dev-css"]))

    def test_xp_rules(self, evaluator):
        assert evaluator.evaluate(UserProfile(code="a", total_xp=500), {}) == []
        assert evaluator.evaluate(UserProfile(code="a", total_xp=501), {}) == ["speed-demon"]
        assert evaluator.evaluate(UserProfile(code="a", total_xp=1000), {}) == [
            "speed-demon",
            "xp-hunter",
        ]

    def test_streak_master_uses_longest_streak(self, evaluator):
        profile = UserProfile(code="a", streak=1, longest_streak=3)
        assert "streak-master" in evaluator.evaluate(profile, {})

    def test_game_master_and_experimenter(self, evaluator):
        progress = _progress(
            _record("web-dev", "html", game={Difficulty.HARD}, sandbox={Difficulty.EASY})
        )
        unlocked = evaluator.evaluate(UserProfile(code="a"), progress)
        assert "game-master" in unlocked
        assert "experimenter" in unlocked
        assert "hard-mode-hero" not in unlocked

    def test_completionist_and_hard_mode_hero(self, evaluator):
        every_tier = set(Difficulty)
        progress = _progress(
            _record("web-dev", "html", tutorial_done=True, game=every_tier, sandbox=every_tier),
            _record("web-dev", "css", game={Difficulty.HARD}),
        )
        unlocked = evaluator.evaluate(UserProfile(code="a"), progress)
        assert "completionist" in unlocked
        assert "hard-mode-hero" in unlocked

    def test_multi_linguist(self, evaluator):
        progress = _progress(
            *[_record("software-dev", f"lang{i}", tutorial_done=True) for i in range(5)]
        )
        assert "multi-linguist" in evaluator.evaluate(UserProfile(code="a"), progress)


class TestEvaluator:
    def test_idempotent_and_pure(self, evaluator):
        profile = UserProfile(code="a", total_xp=700, longest_streak=5)
        progress = _progress(_record("web-dev", "html", tutorial_done=True))
        before_profile = profile.model_dump()
        before_progress = {k: v.model_dump() for k, v in progress.items()}
        first = evaluator.evaluate(profile, progress)
        assert evaluator.evaluate(profile, progress) == first
        assert profile.model_dump() == before_profile
        assert {k: v.model_dump() for k, v in progress.items()} == before_progress

    def test_ids_follow_rule_order(self, evaluator):
        profile = UserProfile(code="a", total_xp=2000, longest_streak=3)
        progress = _progress(_record("web-dev", "html", tutorial_done=True))
        unlocked = evaluator.evaluate(profile, progress)
        order = [rule.id for rule in evaluator.rules]
        assert unlocked == sorted(unlocked, key=order.index)

    def test_statuses_cover_every_rule(self, evaluator):
        statuses = evaluator.statuses(UserProfile(code="a", total_xp=600), {})
        assert len(statuses) == 11
        unlocked = {s.id for s in statuses if s.unlocked}
        assert unlocked == {"speed-demon"}


class TestNewlyUnlocked:
    def test_difference_keeps_order(self):
        assert newly_unlocked(["a"], ["a", "c", "b"]) == ["c", "b"]

    def test_nothing_new(self):
        assert newly_unlocked(["a", "b"], ["a", "b"]) == []
