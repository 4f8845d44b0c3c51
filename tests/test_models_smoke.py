"""Smoke tests for profile and progress models."""

from datetime import date

from codelike_progress.models.progress import (
    Difficulty,
    GameProgress,
    LanguageProgressRecord,
    TutorialProgress,
    clamp_index,
    progress_key,
)
from codelike_progress.models.user_profile import UserProfile


class TestUserProfile:
    def test_defaults(self):
        profile = UserProfile(code="abc12345")
        assert profile.total_xp == 0
        assert profile.level == 1
        assert profile.streak == 0
        assert profile.achievements == []
        assert profile.last_active == date.today()
        assert profile.sound_enabled

    def test_json_round_trip(self):
        profile = UserProfile(code="abc12345", name="Ada", total_xp=120, drink_preference="beer")
        restored = UserProfile.model_validate(profile.model_dump(mode="json"))
        assert restored == profile


class TestHelpers:
    def test_progress_key(self):
        assert progress_key("web-dev", "html") == "web-dev-html"

    def test_clamp_index(self):
        assert clamp_index(8, 6) == 5
        assert clamp_index(-1, 6) == 0
        assert clamp_index(3, 0) == 0


class TestProgressModels:
    def test_tutorial_completion(self):
        tutorial = TutorialProgress(completed_sections={0, 1}, total_sections=2)
        tutorial.refresh_completed()
        assert tutorial.completed
        assert not TutorialProgress().resumed(0).completed

    def test_tutorial_completion_is_sticky(self):
        tutorial = TutorialProgress(completed_sections={0, 1, 2}, total_sections=3, completed=True)
        grown = tutorial.resumed(5)
        assert grown.total_sections == 5
        assert grown.completed
        grown.refresh_completed()
        assert grown.completed

    def test_game_resume_is_a_copy(self):
        game = GameProgress(current_level=7, completed_levels={1}, total_levels=8)
        resumed = game.resumed(3)
        assert resumed.current_level == 2
        resumed.completed_levels.add(2)
        assert game.completed_levels == {1}

    def test_record_json(self):
        record = LanguageProgressRecord(module_id="data-science", language_id="sql")
        record.sandbox_progress[Difficulty.MEDIUM] = record.sandbox_for(Difficulty.MEDIUM)
        data = record.model_dump(mode="json")
        assert set(data["sandbox_progress"]) == {"medium"}
        restored = LanguageProgressRecord.model_validate(data)
        assert restored.key == "data-science-sql"
        assert Difficulty.MEDIUM in restored.sandbox_progress
