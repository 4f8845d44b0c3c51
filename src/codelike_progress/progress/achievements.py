"""Achievement rules evaluated over the learner's aggregate state.

Rules are plain records in a list. The evaluator keeps no state: the
unlocked set is recomputed from the profile and all progress records on
every call. Every predicate reads a monotonic input (XP, longest streak,
completed tutorials, mastered tiers), so the unlocked set only grows.
"""

import functools
from collections.abc import Callable, Iterable, Mapping, Sequence

from pydantic import BaseModel, ConfigDict

from codelike_progress.models.progress import Difficulty, LanguageProgressRecord, progress_key
from codelike_progress.models.user_profile import UserProfile

ProgressMap = Mapping[str, LanguageProgressRecord]
Predicate = Callable[[UserProfile, ProgressMap], bool]
ModuleCatalog = Mapping[str, Sequence[str]]


class AchievementRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str
    icon: str
    predicate: Predicate


class AchievementStatus(BaseModel):
    id: str
    title: str
    description: str
    icon: str
    unlocked: bool


def _tutorial_done(progress: ProgressMap, module_id: str, language_id: str) -> bool:
    record = progress.get(progress_key(module_id, language_id))
    return record is not None and record.tutorial_progress.completed


def _any_tutorial_completed(profile: UserProfile, progress: ProgressMap) -> bool:
    return any(r.tutorial_progress.completed for r in progress.values())


def _hard_game_won(profile: UserProfile, progress: ProgressMap) -> bool:
    return any(Difficulty.HARD in r.completed_difficulties.game for r in progress.values())


def _all_tutorials_in_a_module(
    catalog: ModuleCatalog, profile: UserProfile, progress: ProgressMap
) -> bool:
    for module_id, languages in catalog.items():
        if not languages:
            continue
        if all(_tutorial_done(progress, module_id, language) for language in languages):
            return True
    return False


def _xp_above(threshold: int, profile: UserProfile, progress: ProgressMap) -> bool:
    return profile.total_xp > threshold


def _xp_at_least(threshold: int, profile: UserProfile, progress: ProgressMap) -> bool:
    return profile.total_xp >= threshold


def _any_sandbox_mastered(profile: UserProfile, progress: ProgressMap) -> bool:
    return any(r.completed_difficulties.sandbox for r in progress.values())


def _language_finished_all_ways(profile: UserProfile, progress: ProgressMap) -> bool:
    return any(
        r.tutorial_progress.completed
        and len(r.completed_difficulties.game) == 3
        and len(r.completed_difficulties.sandbox) == 3
        for r in progress.values()
    )


def _every_module_started(
    catalog: ModuleCatalog, profile: UserProfile, progress: ProgressMap
) -> bool:
    """Every module has at least one language with a completed tutorial."""
    if not catalog:
        return False
    return all(
        any(_tutorial_done(progress, module_id, language) for language in languages)
        for module_id, languages in catalog.items()
    )


def _longest_streak_at_least(days: int, profile: UserProfile, progress: ProgressMap) -> bool:
    return profile.longest_streak >= days


def _hard_tiers_at_least(count: int, profile: UserProfile, progress: ProgressMap) -> bool:
    hard = 0
    for record in progress.values():
        if Difficulty.HARD in record.completed_difficulties.game:
            hard += 1
        if Difficulty.HARD in record.completed_difficulties.sandbox:
            hard += 1
    return hard >= count


def _tutorials_completed_at_least(
    count: int, profile: UserProfile, progress: ProgressMap
) -> bool:
    return sum(1 for r in progress.values() if r.tutorial_progress.completed) >= count


def build_rules(catalog: ModuleCatalog) -> list[AchievementRule]:
    """The fixed achievement list; ``catalog`` maps module ids to language ids."""
    frozen_catalog = {module: tuple(languages) for module, languages in catalog.items()}
    p = functools.partial
    return [
        AchievementRule(
            id="first-steps",
            title="First Steps",
            description="Complete your first tutorial",
            icon="🎯",
            predicate=_any_tutorial_completed,
        ),
        AchievementRule(
            id="game-master",
            title="Game Master",
            description="Win any game on hard difficulty",
            icon="🎮",
            predicate=_hard_game_won,
        ),
        AchievementRule(
            id="scholar",
            title="Scholar",
            description="Complete all tutorials in one module",
            icon="📚",
            predicate=p(_all_tutorials_in_a_module, frozen_catalog),
        ),
        AchievementRule(
            id="speed-demon",
            title="Speed Demon",
            description="Earn 500+ XP quickly",
            icon="⚡",
            predicate=p(_xp_above, 500),
        ),
        AchievementRule(
            id="experimenter",
            title="Experimenter",
            description="Complete sandbox exercises",
            icon="🔬",
            predicate=_any_sandbox_mastered,
        ),
        AchievementRule(
            id="completionist",
            title="Completionist",
            description="Finish one language all 3 ways",
            icon="🏅",
            predicate=_language_finished_all_ways,
        ),
        AchievementRule(
            id="legend",
            title="Legend",
            description="Complete all modules",
            icon="👑",
            predicate=p(_every_module_started, frozen_catalog),
        ),
        AchievementRule(
            id="streak-master",
            title="Streak Master",
            description="Maintain a streak",
            icon="🔥",
            predicate=p(_longest_streak_at_least, 3),
        ),
        AchievementRule(
            id="hard-mode-hero",
            title="Hard Mode Hero",
            description="Complete hard difficulty challenges",
            icon="💪",
            predicate=p(_hard_tiers_at_least, 3),
        ),
        AchievementRule(
            id="xp-hunter",
            title="XP Hunter",
            description="Earn 1000 XP",
            icon="💎",
            predicate=p(_xp_at_least, 1000),
        ),
        AchievementRule(
            id="multi-linguist",
            title="Multi-Linguist",
            description="Complete tutorials in 5 languages",
            icon="🌍",
            predicate=p(_tutorials_completed_at_least, 5),
        ),
    ]


class AchievementEvaluator:
    """Generic interpreter over a list of achievement rules."""

    def __init__(self, rules: Iterable[AchievementRule]):
        self.rules: tuple[AchievementRule, ...] = tuple(rules)

    def evaluate(self, profile: UserProfile, progress: ProgressMap) -> list[str]:
        """Ids of every rule whose predicate currently holds, in rule order."""
        return [rule.id for rule in self.rules if rule.predicate(profile, progress)]

    def statuses(self, profile: UserProfile, progress: ProgressMap) -> list[AchievementStatus]:
        unlocked = set(self.evaluate(profile, progress))
        return [
            AchievementStatus(
                id=rule.id,
                title=rule.title,
                description=rule.description,
                icon=rule.icon,
                unlocked=rule.id in unlocked,
            )
            for rule in self.rules
        ]


def newly_unlocked(before: Iterable[str], after: Iterable[str]) -> list[str]:
    """Ids present in ``after`` but not in ``before``, keeping ``after`` order."""
    seen = set(before)
    return [achievement_id for achievement_id in after if achievement_id not in seen]
