"""Learner state container coordinating guard, store and engines.

One ``ProgressTracker`` serves one learner. It caches the last known profile
and progress records, so a failed store call degrades to the in-memory state
instead of blocking the learner, and tells subscribers when something
changed.

Every operation follows the same path: validate the code, load the record,
compute the new state, persist it (XP and completion flags in one write),
re-evaluate achievements, notify subscribers.
"""

from collections.abc import Callable, Sequence
from datetime import date
from enum import StrEnum
from typing import Any

import structlog
from pydantic import BaseModel, Field

from codelike_progress.config import Settings, get_settings
from codelike_progress.models.progress import (
    CompletedDifficulties,
    Difficulty,
    GameProgress,
    LanguageProgressRecord,
    SandboxDifficultyProgress,
    TutorialProgress,
    clamp_index,
    progress_key,
)
from codelike_progress.models.user_profile import UserProfile
from codelike_progress.progress.achievements import (
    AchievementEvaluator,
    AchievementRule,
    AchievementStatus,
    build_rules,
    newly_unlocked,
)
from codelike_progress.progress.difficulty import (
    is_passing_score,
    is_unlocked,
    mastery_percent,
    next_difficulty,
    overall_completed_difficulties,
    percentage,
)
from codelike_progress.progress.session_guard import SessionGuard, SessionInvalidError
from codelike_progress.progress.similarity import MatchResult, match_submission
from codelike_progress.progress.streak import StreakResult, StreakTracker
from codelike_progress.progress.xp import XPEngine
from codelike_progress.storage.documents import DocumentStore, StorageError
from codelike_progress.storage.profile_store import ProfileStore
from codelike_progress.storage.progress_store import ProgressRecordStore

logger = structlog.get_logger()


class DifficultyLockedError(ValueError):
    """A tier was requested before the tiers below it were mastered."""


class SectionOutOfRangeError(ValueError):
    """A completion was reported for a section the tutorial does not have."""


class EventKind(StrEnum):
    REFRESH = "refresh"
    LEVEL_UP = "level_up"
    STREAK_INCREASED = "streak_increased"
    MASTERY_ACHIEVED = "mastery_achieved"
    ACHIEVEMENTS_UNLOCKED = "achievements_unlocked"


class ProgressEvent(BaseModel):
    kind: EventKind
    code: str
    key: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


Listener = Callable[[ProgressEvent], None]


class ActivityOutcome(BaseModel):
    """Result of one learner action."""

    record: LanguageProgressRecord
    xp_awarded: int = 0
    saved: bool = True
    mastered: Difficulty | None = None
    unlocked: list[str] = Field(default_factory=list)


class GameAnswerOutcome(ActivityOutcome):
    correct: bool
    finished: bool = False
    passed: bool = False
    game_over: bool = False


class SandboxOutcome(ActivityOutcome):
    results: list[MatchResult]
    correct_count: int
    total: int
    percent: int
    passed: bool


class SignInOutcome(BaseModel):
    profile: UserProfile
    streak: StreakResult
    saved: bool = True
    unlocked: list[str] = Field(default_factory=list)


class LanguageSummary(BaseModel):
    key: str
    module_id: str
    language_id: str
    tutorial_percent: int
    game_percent: int
    sandbox_percent: int
    completed_difficulties: list[Difficulty]


class ProgressTracker:
    """Explicit state container for one learner's progress.

    Args:
        documents: Persistence collaborator.
        settings: XP rewards, thresholds and the module catalog.
        rules: Achievement rules (defaults to the built-in list).
    """

    def __init__(
        self,
        documents: DocumentStore,
        settings: Settings | None = None,
        rules: Sequence[AchievementRule] | None = None,
    ):
        self.settings = settings or get_settings()
        self.profiles = ProfileStore(documents)
        self.records = ProgressRecordStore(documents)
        self.xp = XPEngine(self.profiles)
        self.streaks = StreakTracker(self.profiles, bonus_xp=self.settings.xp_streak_bonus)
        self.evaluator = AchievementEvaluator(
            rules if rules is not None else build_rules(self.settings.module_catalog)
        )
        self.guard = SessionGuard(self.profiles)
        self.profile: UserProfile | None = None
        self.progress: dict[str, LanguageProgressRecord] = {}
        self._listeners: list[Listener] = []

    # -- subscriptions -----------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, kind: EventKind, code: str, key: str | None = None, **data: Any) -> None:
        event = ProgressEvent(kind=kind, code=code, key=key, data=data)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("listener_failed", kind=kind.value)

    # -- session -----------------------------------------------------------

    def _authorize(self, code: str | None) -> str:
        """Validate the code, falling back to the cached profile on outages."""
        try:
            profile = self.guard.load_profile(code)
        except SessionInvalidError:
            self.profile = None
            self.progress = {}
            raise
        except StorageError as e:
            cached = self.profile
            if cached is not None and code is not None and cached.code == code.strip():
                logger.warning("profile_load_failed_using_cache", code=cached.code, error=str(e))
                return cached.code
            raise
        if self.profile is None or self.profile.code != profile.code:
            self.progress = {}
        self.profile = profile
        return profile.code

    def load_profile(self, code: str | None, today: date | None = None) -> UserProfile:
        """Load the profile, applying the daily streak check on the way."""
        return self.sign_in(code, today).profile

    def create_profile(self, name: str, age: int | None = None) -> UserProfile:
        profile = self.profiles.create(name, age)
        self.guard.code = profile.code
        self.profile = profile
        self.progress = {}
        return profile

    def sign_in(self, code: str | None, today: date | None = None) -> SignInOutcome:
        """Validate the code and apply the daily streak check."""
        code = self._authorize(code)
        saved = True
        streak = StreakResult(streak=self.profile.streak)
        try:
            self.profile, check_in = self.streaks.check_in(code, today)
            streak = check_in.streak
        except StorageError as e:
            logger.warning("streak_update_failed", code=code, error=str(e))
            saved = False
        if streak.increased:
            self._notify(
                EventKind.STREAK_INCREASED, code, streak=streak.streak, is_new=streak.is_new
            )
        unlocked = self.refresh_achievements(code)
        self._notify(EventKind.REFRESH, code)
        return SignInOutcome(profile=self.profile, streak=streak, saved=saved, unlocked=unlocked)

    # -- shared plumbing ---------------------------------------------------

    def _load(
        self,
        code: str,
        loader: Callable[[], LanguageProgressRecord],
        key: str,
        fallback: Callable[[], LanguageProgressRecord],
    ) -> LanguageProgressRecord:
        try:
            record = loader()
        except StorageError as e:
            logger.warning("progress_load_failed", code=code, key=key, error=str(e))
            record = self.progress.get(key) or fallback()
        self.progress[key] = record
        return record

    def _commit(self, code: str, key: str, xp: int, **groups: Any) -> tuple[bool, int]:
        """Persist field groups, paying ``xp`` in the same write.

        Returns (saved, xp actually awarded).
        """
        try:
            if xp > 0:
                self.profile, award = self.xp.award_xp(
                    code, xp, alongside=self.records.group_writer(key, **groups)
                )
                if award.leveled_up:
                    self._notify(EventKind.LEVEL_UP, code, key, level=award.new_level)
            else:
                self.records.save(code, key, **groups)
        except StorageError as e:
            logger.warning("progress_save_failed", code=code, key=key, error=str(e))
            return False, 0
        return True, xp

    def _finish(
        self, code: str, key: str, outcome: ActivityOutcome
    ) -> ActivityOutcome:
        if outcome.mastered is not None and outcome.saved:
            self._notify(
                EventKind.MASTERY_ACHIEVED, code, key, difficulty=outcome.mastered.value
            )
        outcome.unlocked = self.refresh_achievements(code)
        self._notify(EventKind.REFRESH, code, key)
        return outcome

    def _lives(self, difficulty: Difficulty) -> int:
        return self.settings.difficulty_lives.get(difficulty.value, 3)

    def _hints(self, difficulty: Difficulty) -> int:
        return self.settings.difficulty_hints.get(difficulty.value, 3)

    # -- tutorials ---------------------------------------------------------

    def open_tutorial(
        self, code: str | None, module_id: str, language_id: str, total_sections: int
    ) -> LanguageProgressRecord:
        """Resume a tutorial, clamping the stored section to the content."""
        code = self._authorize(code)
        key = progress_key(module_id, language_id)
        return self._load(
            code,
            lambda: self.records.resume_tutorial(code, module_id, language_id, total_sections),
            key,
            lambda: LanguageProgressRecord(
                module_id=module_id,
                language_id=language_id,
                tutorial_progress=TutorialProgress(total_sections=total_sections),
            ),
        )

    def complete_section(
        self,
        code: str | None,
        module_id: str,
        language_id: str,
        section_index: int,
        total_sections: int,
    ) -> ActivityOutcome:
        record = self.open_tutorial(code, module_id, language_id, total_sections)
        code = self.profile.code
        key = record.key
        tutorial = record.tutorial_progress
        if tutorial.total_sections == 0:
            return ActivityOutcome(record=record)
        if not 0 <= section_index < tutorial.total_sections:
            raise SectionOutOfRangeError(
                f"Section {section_index} outside 0..{tutorial.total_sections - 1}"
            )

        index = section_index
        xp = 0
        if index not in tutorial.completed_sections:
            tutorial.completed_sections.add(index)
            xp = self.settings.xp_tutorial_section
        tutorial.current_section = clamp_index(index + 1, tutorial.total_sections)
        tutorial.refresh_completed()

        saved, awarded = self._commit(code, key, xp, tutorial=tutorial)
        return self._finish(code, key, ActivityOutcome(record=record, xp_awarded=awarded, saved=saved))

    def goto_section(
        self,
        code: str | None,
        module_id: str,
        language_id: str,
        section_index: int,
        total_sections: int,
    ) -> ActivityOutcome:
        record = self.open_tutorial(code, module_id, language_id, total_sections)
        code = self.profile.code
        tutorial = record.tutorial_progress
        tutorial.current_section = clamp_index(section_index, tutorial.total_sections)
        saved, _ = self._commit(code, record.key, 0, tutorial=tutorial)
        self._notify(EventKind.REFRESH, code, record.key)
        return ActivityOutcome(record=record, saved=saved)

    # -- games -------------------------------------------------------------

    def start_game(
        self,
        code: str | None,
        module_id: str,
        language_id: str,
        total_levels: int,
        difficulty: Difficulty | None = None,
        restart: bool = False,
    ) -> ActivityOutcome:
        """Resume or (re)start the quiz game on a tier.

        Without ``difficulty`` the next unmastered tier is chosen (hard once
        every tier is mastered). Switching tiers or restarting starts the
        tier from its first level; nothing carries over from another tier.
        """
        code = self._authorize(code)
        key = progress_key(module_id, language_id)
        record = self._load(
            code,
            lambda: self.records.resume_game(
                code,
                module_id,
                language_id,
                total_levels,
                lives=self._lives(Difficulty.EASY),
                hints=self._hints(Difficulty.EASY),
            ),
            key,
            lambda: LanguageProgressRecord(
                module_id=module_id,
                language_id=language_id,
                game_progress=GameProgress(total_levels=total_levels),
            ),
        )
        mastered = record.completed_difficulties.game
        target = difficulty or next_difficulty(mastered) or Difficulty.HARD
        if not is_unlocked(target, mastered):
            raise DifficultyLockedError(f"{target.value} is locked until earlier tiers are mastered")

        game = record.game_progress
        if restart or target != game.difficulty or game.completed:
            record.game_progress = GameProgress(
                difficulty=target,
                total_levels=total_levels,
                lives=self._lives(target),
                hints=self._hints(target),
            )
            logger.info("game_started", code=code, key=key, difficulty=target.value)
        # Persist the resumed level count so later answers see it.
        saved, _ = self._commit(code, key, 0, game=record.game_progress)
        self._notify(EventKind.REFRESH, code, key)
        return ActivityOutcome(record=record, saved=saved)

    def answer_question(
        self, code: str | None, module_id: str, language_id: str, correct: bool
    ) -> GameAnswerOutcome:
        """Grade the answer for the current level of the active game."""
        code = self._authorize(code)
        key = progress_key(module_id, language_id)
        record = self._load(
            code,
            lambda: self.records.load(code, key) or self.records.initialize(code, module_id, language_id),
            key,
            lambda: LanguageProgressRecord(module_id=module_id, language_id=language_id),
        )
        game = record.game_progress
        if game.total_levels == 0:
            return GameAnswerOutcome(record=record, correct=correct)

        game.current_level = clamp_index(game.current_level, game.total_levels)
        level = game.current_level
        outcome = GameAnswerOutcome(record=record, correct=correct)
        xp = 0
        completed = None

        if correct:
            game.score += 100
            if level not in game.completed_levels:
                game.completed_levels.add(level)
                xp += self.settings.xp_correct_answer
            if level == game.total_levels - 1:
                outcome.finished = True
                outcome.passed = is_passing_score(
                    len(game.completed_levels), game.total_levels, self.settings.pass_threshold
                )
            if outcome.passed:
                game.completed = True
                if game.difficulty not in record.completed_difficulties.game:
                    record.completed_difficulties.game.add(game.difficulty)
                    completed = CompletedDifficulties(game={game.difficulty})
                    xp += self.settings.xp_game_completion
                    outcome.mastered = game.difficulty
            game.current_level = clamp_index(level + 1, game.total_levels)
        else:
            game.lives -= 1
            if game.lives <= 0:
                outcome.game_over = True
                game.lives = self._lives(game.difficulty)
                game.hints = self._hints(game.difficulty)

        outcome.saved, outcome.xp_awarded = self._commit(
            code, key, xp, game=game, completed=completed
        )
        if outcome.finished and not outcome.passed:
            logger.info("mastery_threshold_missed", code=code, key=key, difficulty=game.difficulty.value)
        return self._finish(code, key, outcome)

    def use_hint(self, code: str | None, module_id: str, language_id: str) -> ActivityOutcome:
        code = self._authorize(code)
        key = progress_key(module_id, language_id)
        record = self._load(
            code,
            lambda: self.records.load(code, key) or self.records.initialize(code, module_id, language_id),
            key,
            lambda: LanguageProgressRecord(module_id=module_id, language_id=language_id),
        )
        game = record.game_progress
        if game.hints <= 0:
            return ActivityOutcome(record=record)
        game.hints -= 1
        saved, _ = self._commit(code, key, 0, game=game)
        self._notify(EventKind.REFRESH, code, key)
        return ActivityOutcome(record=record, saved=saved)

    def advance_level(self, code: str | None, module_id: str, language_id: str) -> ActivityOutcome:
        """Move to the next level without answering, refilling lives."""
        code = self._authorize(code)
        key = progress_key(module_id, language_id)
        record = self._load(
            code,
            lambda: self.records.load(code, key) or self.records.initialize(code, module_id, language_id),
            key,
            lambda: LanguageProgressRecord(module_id=module_id, language_id=language_id),
        )
        game = record.game_progress
        if game.total_levels == 0:
            return ActivityOutcome(record=record)
        game.current_level = clamp_index(game.current_level + 1, game.total_levels)
        game.lives = self._lives(game.difficulty)
        saved, _ = self._commit(code, key, 0, game=game)
        self._notify(EventKind.REFRESH, code, key)
        return ActivityOutcome(record=record, saved=saved)

    # -- sandboxes ---------------------------------------------------------

    def start_sandbox(
        self,
        code: str | None,
        module_id: str,
        language_id: str,
        total_exercises: int,
        difficulty: Difficulty | None = None,
    ) -> LanguageProgressRecord:
        """Resume the sandbox on the given (or next unmastered) tier."""
        code = self._authorize(code)
        key = progress_key(module_id, language_id)
        cached = self.progress.get(key)
        mastered = cached.completed_difficulties.sandbox if cached else set()
        try:
            stored = self.records.load(code, key)
            if stored is not None:
                mastered = stored.completed_difficulties.sandbox
        except StorageError as e:
            logger.warning("progress_load_failed", code=code, key=key, error=str(e))
        target = difficulty or next_difficulty(mastered) or Difficulty.HARD
        if not is_unlocked(target, mastered):
            raise DifficultyLockedError(f"{target.value} is locked until earlier tiers are mastered")

        def fallback() -> LanguageProgressRecord:
            record = cached or LanguageProgressRecord(module_id=module_id, language_id=language_id)
            record.sandbox_progress[target] = record.sandbox_for(target).resumed(total_exercises)
            return record

        return self._load(
            code,
            lambda: self.records.resume_sandbox(code, module_id, language_id, target, total_exercises),
            key,
            fallback,
        )

    def save_sandbox_position(
        self,
        code: str | None,
        module_id: str,
        language_id: str,
        difficulty: Difficulty,
        exercise_index: int,
        total_exercises: int,
    ) -> ActivityOutcome:
        record = self.start_sandbox(code, module_id, language_id, total_exercises, difficulty)
        code = self.profile.code
        entry = record.sandbox_for(difficulty)
        entry.current_exercise = clamp_index(exercise_index, entry.total_exercises)
        record.sandbox_progress[difficulty] = entry
        saved, _ = self._commit(code, record.key, 0, sandbox={difficulty: entry})
        self._notify(EventKind.REFRESH, code, record.key)
        return ActivityOutcome(record=record, saved=saved)

    def submit_sandbox(
        self,
        code: str | None,
        module_id: str,
        language_id: str,
        difficulty: Difficulty,
        submissions: Sequence[str],
        solutions: Sequence[str],
    ) -> SandboxOutcome:
        """Grade a full exercise set of one tier against its solutions.

        Missing submissions count as empty. The tier is mastered only when
        this attempt alone reaches the pass threshold.
        """
        total = len(solutions)
        record = self.start_sandbox(code, module_id, language_id, total, difficulty)
        code = self.profile.code
        key = record.key

        results = [
            match_submission(
                submissions[i] if i < len(submissions) else "",
                solution,
                self.settings.similarity_threshold,
            )
            for i, solution in enumerate(solutions)
        ]
        correct = {i for i, result in enumerate(results) if result.accepted}
        entry = record.sandbox_for(difficulty)
        new_correct = correct - entry.completed_exercises
        entry.completed_exercises |= correct
        entry.total_exercises = total
        entry.current_exercise = clamp_index(total - 1, total)
        record.sandbox_progress[difficulty] = entry

        passed = is_passing_score(len(correct), total, self.settings.pass_threshold)
        xp = len(new_correct) * self.settings.xp_sandbox_exercise
        completed = None
        mastered = None
        if passed and difficulty not in record.completed_difficulties.sandbox:
            record.completed_difficulties.sandbox.add(difficulty)
            completed = CompletedDifficulties(sandbox={difficulty})
            xp += self.settings.xp_sandbox_completion
            mastered = difficulty

        saved, awarded = self._commit(code, key, xp, sandbox={difficulty: entry}, completed=completed)
        logger.info(
            "sandbox_graded",
            code=code,
            key=key,
            difficulty=difficulty.value,
            correct=len(correct),
            total=total,
            passed=passed,
        )
        outcome = SandboxOutcome(
            record=record,
            xp_awarded=awarded,
            saved=saved,
            mastered=mastered,
            results=results,
            correct_count=len(correct),
            total=total,
            percent=percentage(len(correct), total),
            passed=passed,
        )
        return self._finish(code, key, outcome)

    # -- profile -----------------------------------------------------------

    def empty_glass(self, code: str | None) -> UserProfile:
        code = self._authorize(code)
        self.profile = self.xp.empty_glass(code)
        self._notify(EventKind.REFRESH, code)
        return self.profile

    def update_preferences(
        self,
        code: str | None,
        drink_preference: str | None = None,
        sound_enabled: bool | None = None,
    ) -> UserProfile:
        code = self._authorize(code)

        def change(profile: UserProfile) -> None:
            if drink_preference is not None:
                profile.drink_preference = drink_preference
            if sound_enabled is not None:
                profile.sound_enabled = sound_enabled

        self.profile = self.profiles.update(code, change)
        self._notify(EventKind.REFRESH, code)
        return self.profile

    # -- aggregate views ---------------------------------------------------

    def _aggregate(self, code: str) -> tuple[UserProfile, dict[str, LanguageProgressRecord]]:
        try:
            profile = self.profiles.get(code) or self.profile
            progress = self.records.load_all(code)
        except StorageError as e:
            logger.warning("aggregate_load_failed", code=code, error=str(e))
            return self.profile, dict(self.progress)
        self.profile = profile
        self.progress.update(progress)
        return profile, progress

    def refresh_achievements(self, code: str) -> list[str]:
        """Re-evaluate achievements and store the result on the profile.

        Returns the ids unlocked by this evaluation.
        """
        profile, progress = self._aggregate(code)
        unlocked = self.evaluator.evaluate(profile, progress)
        if unlocked == profile.achievements:
            return []
        fresh = newly_unlocked(profile.achievements, unlocked)

        def change(stored: UserProfile) -> None:
            stored.achievements = unlocked

        try:
            self.profile = self.profiles.update(code, change)
        except StorageError as e:
            logger.warning("achievements_save_failed", code=code, error=str(e))
            self.profile = profile.model_copy(update={"achievements": unlocked})
        if fresh:
            logger.info("achievements_unlocked", code=code, achievements=fresh)
            self._notify(EventKind.ACHIEVEMENTS_UNLOCKED, code, achievements=fresh)
        return fresh

    def achievements(self, code: str | None) -> list[AchievementStatus]:
        code = self._authorize(code)
        profile, progress = self._aggregate(code)
        return self.evaluator.statuses(profile, progress)

    def summary(self, code: str | None) -> list[LanguageSummary]:
        """Per-language completion percentages for the dashboard."""
        code = self._authorize(code)
        _, progress = self._aggregate(code)
        summaries = []
        for key, record in sorted(progress.items()):
            tutorial = record.tutorial_progress
            tutorial_percent = (
                100
                if tutorial.completed
                else percentage(len(tutorial.completed_sections), tutorial.total_sections)
            )
            shared = mastery_percent(record.completed_difficulties)
            summaries.append(
                LanguageSummary(
                    key=key,
                    module_id=record.module_id,
                    language_id=record.language_id,
                    tutorial_percent=tutorial_percent,
                    game_percent=shared,
                    sandbox_percent=shared,
                    completed_difficulties=overall_completed_difficulties(
                        record.completed_difficulties
                    ),
                )
            )
        return summaries
