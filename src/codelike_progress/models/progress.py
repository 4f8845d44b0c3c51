"""Per (module, language) progress record models."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class Difficulty(StrEnum):
    """Difficulty tiers, unlocked strictly in order."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


DIFFICULTY_ORDER: tuple[Difficulty, ...] = (
    Difficulty.EASY,
    Difficulty.MEDIUM,
    Difficulty.HARD,
)


def progress_key(module_id: str, language_id: str) -> str:
    """Build the record key for a module/language pairing."""
    return f"{module_id}-{language_id}"


def clamp_index(index: int, total: int) -> int:
    """Clamp an index into [0, total - 1]; 0 when there is no content."""
    if total <= 0:
        return 0
    return max(0, min(index, total - 1))


class TutorialProgress(BaseModel):
    current_section: int = 0
    completed_sections: set[int] = Field(default_factory=set)
    total_sections: int = 0
    completed: bool = False

    def refresh_completed(self) -> None:
        """Mark the tutorial done once every section is; never unmarks it."""
        self.completed = self.completed or (
            self.total_sections > 0
            and len(self.completed_sections) >= self.total_sections
        )

    def resumed(self, total_sections: int) -> "TutorialProgress":
        """Copy fitted to the current content length."""
        resumed = self.model_copy(deep=True)
        resumed.total_sections = total_sections
        resumed.current_section = clamp_index(self.current_section, total_sections)
        resumed.refresh_completed()
        return resumed


class GameProgress(BaseModel):
    difficulty: Difficulty = Difficulty.EASY
    current_level: int = 0
    completed_levels: set[int] = Field(default_factory=set)
    total_levels: int = 0
    lives: int = 3
    hints: int = 3
    score: int = 0
    completed: bool = False

    def resumed(self, total_levels: int) -> "GameProgress":
        resumed = self.model_copy(deep=True)
        resumed.total_levels = total_levels
        resumed.current_level = clamp_index(self.current_level, total_levels)
        return resumed


class SandboxDifficultyProgress(BaseModel):
    current_exercise: int = 0
    completed_exercises: set[int] = Field(default_factory=set)
    total_exercises: int = 0

    def resumed(self, total_exercises: int) -> "SandboxDifficultyProgress":
        resumed = self.model_copy(deep=True)
        resumed.total_exercises = total_exercises
        resumed.current_exercise = clamp_index(self.current_exercise, total_exercises)
        return resumed


class CompletedDifficulties(BaseModel):
    """Tiers passed at the mastery threshold, per activity kind."""

    game: set[Difficulty] = Field(default_factory=set)
    sandbox: set[Difficulty] = Field(default_factory=set)


class LanguageProgressRecord(BaseModel):
    """Everything a learner has done for one module/language pairing."""

    module_id: str
    language_id: str
    tutorial_progress: TutorialProgress = Field(default_factory=TutorialProgress)
    game_progress: GameProgress = Field(default_factory=GameProgress)
    sandbox_progress: dict[Difficulty, SandboxDifficultyProgress] = Field(
        default_factory=dict
    )
    completed_difficulties: CompletedDifficulties = Field(
        default_factory=CompletedDifficulties
    )
    last_accessed: datetime = Field(default_factory=datetime.now)

    @property
    def key(self) -> str:
        return progress_key(self.module_id, self.language_id)

    def sandbox_for(self, difficulty: Difficulty) -> SandboxDifficultyProgress:
        """Sandbox progress for a tier (a fresh default when never started)."""
        return self.sandbox_progress.get(difficulty, SandboxDifficultyProgress())
