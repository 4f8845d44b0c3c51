"""Learner code validation in front of every read and write."""

import structlog

from codelike_progress.models.user_profile import UserProfile
from codelike_progress.storage.profile_store import ProfileStore

logger = structlog.get_logger()


class SessionInvalidError(Exception):
    """The learner code is missing or unknown; the learner must re-onboard."""


class SessionGuard:
    """Checks the learner code before progress is read or written.

    Only presence and existence are checked; the code's strength is not.
    A failed lookup clears the held code so the client is sent back to
    onboarding instead of retrying with it.

    Args:
        profiles: Profile persistence.
        code: Code presented by the client, if any.
    """

    def __init__(self, profiles: ProfileStore, code: str | None = None):
        self.profiles = profiles
        self.code = code

    def load_profile(self, code: str | None = None) -> UserProfile:
        """Return the learner's profile or raise SessionInvalidError.

        Store outages raise StorageError and leave the held code in place.
        """
        if code is not None:
            self.code = code
        candidate = (self.code or "").strip()
        if not candidate:
            self.clear()
            raise SessionInvalidError("Missing learner code")
        profile = self.profiles.get(candidate)
        if profile is None:
            logger.warning("learner_code_not_found", code=candidate)
            self.clear()
            raise SessionInvalidError("Learner code not found")
        self.code = candidate
        return profile

    def validate(self, code: str | None = None) -> str:
        return self.load_profile(code).code

    def clear(self) -> None:
        self.code = None
