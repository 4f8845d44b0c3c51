"""Tests for progress record persistence and resume."""

import pytest

from codelike_progress.models.progress import (
    CompletedDifficulties,
    Difficulty,
    GameProgress,
    SandboxDifficultyProgress,
    TutorialProgress,
    progress_key,
)
from codelike_progress.storage.documents import DocumentNotFoundError, InMemoryDocumentStore
from codelike_progress.storage.profile_store import ProfileStore
from codelike_progress.storage.progress_store import ProgressRecordStore

KEY = progress_key("web-dev", "html")


@pytest.fixture
def documents():
    return InMemoryDocumentStore()


@pytest.fixture
def code(documents):
    return ProfileStore(documents).create("Ada").code


@pytest.fixture
def records(documents):
    return ProgressRecordStore(documents)


class TestInitialize:
    def test_defaults(self, records, code):
        record = records.initialize(code, "web-dev", "html", total_sections=5)
        assert record.key == "web-dev-html"
        assert record.tutorial_progress.current_section == 0
        assert record.tutorial_progress.total_sections == 5
        assert record.game_progress.difficulty == Difficulty.EASY
        assert record.game_progress.lives == 3
        assert record.sandbox_progress == {}
        assert record.completed_difficulties.game == set()
        assert records.load(code, KEY) is not None

    def test_does_not_overwrite(self, records, code):
        records.initialize(code, "web-dev", "html", total_sections=5)
        records.save(code, KEY, tutorial=TutorialProgress(current_section=3, total_sections=5))
        again = records.initialize(code, "web-dev", "html", total_sections=9)
        assert again.tutorial_progress.current_section == 3
        assert again.tutorial_progress.total_sections == 5

    def test_missing_learner(self, records):
        with pytest.raises(DocumentNotFoundError):
            records.initialize("nosuchid", "web-dev", "html")

    def test_load_missing(self, records, code):
        assert records.load(code, KEY) is None
        assert records.load("nosuchid", KEY) is None
        assert records.load_all(code) == {}


class TestSave:
    def test_groups_do_not_clobber(self, records, code):
        records.initialize(code, "web-dev", "html", total_sections=4, total_levels=5)
        records.save(
            code, KEY, tutorial=TutorialProgress(current_section=2, completed_sections={0, 1}, total_sections=4)
        )
        records.save(code, KEY, game=GameProgress(current_level=3, total_levels=5, score=300))
        stored = records.load(code, KEY)
        assert stored.tutorial_progress.current_section == 2
        assert stored.tutorial_progress.completed_sections == {0, 1}
        assert stored.game_progress.current_level == 3

    def test_completed_tiers_only_grow(self, records, code):
        records.initialize(code, "web-dev", "html")
        records.save(code, KEY, completed=CompletedDifficulties(game={Difficulty.EASY}))
        records.save(code, KEY, completed=CompletedDifficulties(sandbox={Difficulty.EASY}))
        records.save(code, KEY, completed=CompletedDifficulties())
        stored = records.load(code, KEY).completed_difficulties
        assert stored.game == {Difficulty.EASY}
        assert stored.sandbox == {Difficulty.EASY}

    def test_sandbox_merged_per_tier(self, records, code):
        records.initialize(code, "web-dev", "html")
        records.save(
            code, KEY, sandbox={Difficulty.EASY: SandboxDifficultyProgress(current_exercise=2, total_exercises=4)}
        )
        records.save(
            code, KEY, sandbox={Difficulty.MEDIUM: SandboxDifficultyProgress(current_exercise=1, total_exercises=4)}
        )
        stored = records.load(code, KEY)
        assert stored.sandbox_for(Difficulty.EASY).current_exercise == 2
        assert stored.sandbox_for(Difficulty.MEDIUM).current_exercise == 1
        assert stored.sandbox_for(Difficulty.HARD).current_exercise == 0

    def test_uninitialized_record_rejected(self, records, code):
        with pytest.raises(DocumentNotFoundError):
            records.save(code, KEY, tutorial=TutorialProgress())

    def test_tutorial_completion_not_erased_by_stale_write(self, records, code):
        records.initialize(code, "web-dev", "html", total_sections=2)
        records.save(
            code, KEY, tutorial=TutorialProgress(completed_sections={0, 1}, total_sections=2, completed=True)
        )
        records.save(code, KEY, tutorial=TutorialProgress(current_section=1, total_sections=2))
        stored = records.load(code, KEY).tutorial_progress
        assert stored.completed
        assert stored.current_section == 1

    def test_sets_round_trip(self, records, code):
        records.initialize(code, "web-dev", "html")
        records.save(code, KEY, tutorial=TutorialProgress(completed_sections={2, 0}, total_sections=3))
        assert records.load(code, KEY).tutorial_progress.completed_sections == {0, 2}


class TestResume:
    def test_tutorial_clamped_to_shorter_content(self, records, code):
        records.initialize(code, "web-dev", "html", total_sections=10)
        records.save(code, KEY, tutorial=TutorialProgress(current_section=8, total_sections=10))
        record = records.resume_tutorial(code, "web-dev", "html", total_sections=6)
        assert record.tutorial_progress.current_section == 5
        assert record.tutorial_progress.total_sections == 6

    def test_resume_does_not_write(self, records, code):
        records.initialize(code, "web-dev", "html", total_sections=10)
        records.save(code, KEY, tutorial=TutorialProgress(current_section=8, total_sections=10))
        records.resume_tutorial(code, "web-dev", "html", total_sections=6)
        assert records.load(code, KEY).tutorial_progress.current_section == 8

    def test_no_content(self, records, code):
        records.initialize(code, "web-dev", "html", total_sections=10)
        records.save(code, KEY, tutorial=TutorialProgress(current_section=8, total_sections=10))
        record = records.resume_tutorial(code, "web-dev", "html", total_sections=0)
        assert record.tutorial_progress.current_section == 0

    def test_first_open_initializes(self, records, code):
        record = records.resume_tutorial(code, "web-dev", "css", total_sections=4)
        assert record.tutorial_progress.total_sections == 4
        assert records.load(code, "web-dev-css") is not None

    def test_game_and_sandbox(self, records, code):
        records.initialize(code, "web-dev", "html", total_levels=10)
        records.save(code, KEY, game=GameProgress(current_level=9, total_levels=10))
        records.save(
            code, KEY, sandbox={Difficulty.EASY: SandboxDifficultyProgress(current_exercise=7, total_exercises=8)}
        )
        game = records.resume_game(code, "web-dev", "html", total_levels=4)
        assert game.game_progress.current_level == 3
        sandbox = records.resume_sandbox(code, "web-dev", "html", Difficulty.EASY, 3)
        assert sandbox.sandbox_for(Difficulty.EASY).current_exercise == 2
