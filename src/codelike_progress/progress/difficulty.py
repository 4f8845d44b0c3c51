"""Difficulty tier progression gated behind the mastery threshold."""

from collections.abc import Iterable

from codelike_progress.models.progress import (
    DIFFICULTY_ORDER,
    CompletedDifficulties,
    Difficulty,
)

PASS_THRESHOLD = 0.75


def next_difficulty(completed: Iterable[Difficulty]) -> Difficulty | None:
    """First tier (easy -> medium -> hard) not yet mastered, or None."""
    done = set(completed)
    for difficulty in DIFFICULTY_ORDER:
        if difficulty not in done:
            return difficulty
    return None


def is_passing_score(correct: int, total: int, threshold: float = PASS_THRESHOLD) -> bool:
    """True when correct/total meets the mastery threshold."""
    if total <= 0:
        return False
    return correct / total >= threshold


def percentage(correct: int, total: int) -> int:
    if total <= 0:
        return 0
    return round(correct / total * 100)


def overall_completed_difficulties(completed: CompletedDifficulties) -> list[Difficulty]:
    """Tiers mastered in either activity, in tier order.

    Games and sandboxes share tier completion on the dashboard.
    """
    union = completed.game | completed.sandbox
    return [d for d in DIFFICULTY_ORDER if d in union]


def mastery_percent(completed: CompletedDifficulties) -> int:
    return percentage(len(overall_completed_difficulties(completed)), len(DIFFICULTY_ORDER))


def is_unlocked(difficulty: Difficulty, completed: Iterable[Difficulty]) -> bool:
    """A tier is playable once every tier below it is mastered."""
    upcoming = next_difficulty(completed)
    if upcoming is None:
        return True
    return DIFFICULTY_ORDER.index(difficulty) <= DIFFICULTY_ORDER.index(upcoming)
