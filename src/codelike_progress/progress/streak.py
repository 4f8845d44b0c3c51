"""Daily streak tracking on the learner's local calendar day."""

from datetime import date

import structlog
from pydantic import BaseModel

from codelike_progress.models.user_profile import UserProfile
from codelike_progress.progress.xp import XPAward, apply_xp
from codelike_progress.storage.profile_store import ProfileStore

logger = structlog.get_logger()

DEFAULT_STREAK_BONUS_XP = 50


class StreakResult(BaseModel):
    streak: int
    increased: bool = False
    is_new: bool = False


def update_streak(last_active: date, streak: int, today: date) -> StreakResult:
    """Compute the streak transition for a visit on ``today``.

    Same day, or ``today`` before ``last_active`` (clock skew), leaves the
    streak alone. The next calendar day extends it; any longer gap starts
    a new streak at 1.
    """
    days_diff = (today - last_active).days
    if days_diff <= 0:
        return StreakResult(streak=streak)
    if days_diff == 1:
        return StreakResult(streak=streak + 1, increased=True)
    return StreakResult(streak=1, increased=True, is_new=True)


class CheckInResult(BaseModel):
    streak: StreakResult
    bonus: XPAward | None = None


class StreakTracker:
    """Applies streak transitions to the stored profile.

    The streak, ``last_active`` and the bonus XP are written together, so a
    second check-in on the same day sees the updated ``last_active`` and
    cannot pay the bonus twice.

    Args:
        profiles: Profile persistence.
        bonus_xp: XP paid once per streak increase.
    """

    def __init__(self, profiles: ProfileStore, bonus_xp: int = DEFAULT_STREAK_BONUS_XP):
        self.profiles = profiles
        self.bonus_xp = bonus_xp

    def check_in(
        self, code: str, today: date | None = None
    ) -> tuple[UserProfile, CheckInResult]:
        today = today or date.today()
        results: list[CheckInResult] = []

        def change(profile: UserProfile) -> None:
            result = CheckInResult(
                streak=update_streak(profile.last_active, profile.streak, today)
            )
            if result.streak.increased:
                profile.streak = result.streak.streak
                profile.longest_streak = max(profile.longest_streak, profile.streak)
                profile.last_active = today
                result.bonus = apply_xp(profile, self.bonus_xp)
            results.append(result)

        profile = self.profiles.update(code, change)
        result = results[0]
        if result.streak.increased:
            logger.info(
                "streak_increased",
                code=code,
                streak=result.streak.streak,
                is_new=result.streak.is_new,
                bonus_xp=self.bonus_xp,
            )
        return profile, result
