"""Tests for settings loading."""

from codelike_progress.config import Settings


class TestSettings:
    def test_yaml_values(self):
        settings = Settings()
        assert settings.pass_threshold == 0.75
        assert settings.similarity_threshold == 0.7
        assert settings.xp_sandbox_completion == 500
        assert settings.difficulty_hints == {"easy": 3, "medium": 2, "hard": 1}
        assert "web-dev" in settings.module_catalog

    def test_init_overrides_yaml(self, tmp_path):
        settings = Settings(data_dir=tmp_path, xp_tutorial_section=10)
        assert settings.xp_tutorial_section == 10
        assert settings.learners_dir == tmp_path

    def test_env_overrides_yaml(self, monkeypatch):
        monkeypatch.setenv("XP_STREAK_BONUS", "75")
        assert Settings().xp_streak_bonus == 75
