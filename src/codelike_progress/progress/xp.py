"""XP and level calculation."""

import math

import structlog
from pydantic import BaseModel

from codelike_progress.models.user_profile import UserProfile
from codelike_progress.storage.documents import Mutator
from codelike_progress.storage.profile_store import ProfileStore

logger = structlog.get_logger()

# Moving from level n to n + 1 costs LEVEL_STEP_XP * n XP.
LEVEL_STEP_XP = 100
GLASS_CAPACITY = 100.0
XP_PER_GLASS_POINT = 10


def level_threshold(level: int) -> int:
    """Cumulative XP needed to reach ``level`` (level 1 needs 0)."""
    if level <= 1:
        return 0
    return LEVEL_STEP_XP * level * (level - 1) // 2


def level_from_xp(total_xp: int) -> int:
    """Highest level whose threshold is covered by ``total_xp``."""
    if total_xp <= 0:
        return 1
    # Solve 50 * L * (L - 1) <= xp for L, then correct float rounding.
    level = int((1 + math.sqrt(1 + 8 * total_xp / LEVEL_STEP_XP)) / 2)
    while level_threshold(level + 1) <= total_xp:
        level += 1
    while level > 1 and level_threshold(level) > total_xp:
        level -= 1
    return level


class LevelProgress(BaseModel):
    level: int
    next_level: int
    xp_current: int
    xp_needed: int
    xp_for_next: int
    progress_percent: int


def xp_to_next_level(total_xp: int) -> LevelProgress:
    """Get XP progress to next level."""
    level = level_from_xp(total_xp)
    current_threshold = level_threshold(level)
    next_threshold = level_threshold(level + 1)
    xp_for_level = next_threshold - current_threshold
    return LevelProgress(
        level=level,
        next_level=level + 1,
        xp_current=total_xp,
        xp_needed=next_threshold - total_xp,
        xp_for_next=xp_for_level,
        progress_percent=int((total_xp - current_threshold) / xp_for_level * 100),
    )


class XPAward(BaseModel):
    amount: int
    old_xp: int
    new_xp: int
    old_level: int
    new_level: int

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level


def apply_xp(profile: UserProfile, amount: int) -> XPAward:
    """Add ``amount`` to an in-memory profile; level and glass follow."""
    if amount < 0:
        raise ValueError(f"XP amount must be non-negative, got {amount}")
    old_xp, old_level = profile.total_xp, profile.level
    profile.total_xp += amount
    # Never let a stale stored level drag the derived level down.
    profile.level = max(profile.level, level_from_xp(profile.total_xp))
    profile.glass_progress = min(
        GLASS_CAPACITY, profile.glass_progress + amount / XP_PER_GLASS_POINT
    )
    return XPAward(
        amount=amount,
        old_xp=old_xp,
        new_xp=profile.total_xp,
        old_level=old_level,
        new_level=profile.level,
    )


class XPEngine:
    """Awards XP against the stored profile.

    Does not deduplicate: callers must only award one-off bonuses once.

    Args:
        profiles: Profile persistence.
    """

    def __init__(self, profiles: ProfileStore):
        self.profiles = profiles

    def award_xp(
        self, code: str, amount: int, alongside: Mutator | None = None
    ) -> tuple[UserProfile, XPAward]:
        """Add XP and persist total, level and glass in one write.

        Args:
            code: Learner code.
            amount: Non-negative XP amount.
            alongside: Extra document mutation written in the same write
                (e.g. the difficulty completion flag the bonus is paid for).

        Returns:
            The updated profile and the award summary.
        """
        if amount < 0:
            raise ValueError(f"XP amount must be non-negative, got {amount}")
        awards: list[XPAward] = []
        profile = self.profiles.update(
            code, lambda p: awards.append(apply_xp(p, amount)), alongside=alongside
        )
        award = awards[0]
        logger.info(
            "xp_awarded",
            code=code,
            amount=amount,
            total_xp=award.new_xp,
            level=award.new_level,
        )
        if award.leveled_up:
            logger.info("level_up", code=code, old_level=award.old_level, new_level=award.new_level)
        return profile, award

    def empty_glass(self, code: str) -> UserProfile:
        def change(profile: UserProfile) -> None:
            profile.glass_progress = 0.0

        return self.profiles.update(code, change)
