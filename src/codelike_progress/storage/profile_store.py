"""User profile persistence on top of the learner document store."""

import secrets
import string
from collections.abc import Callable
from datetime import date

import structlog

from ..models.user_profile import UserProfile
from .documents import Document, DocumentStore, Mutator, StorageError

logger = structlog.get_logger()

CODE_ALPHABET = string.ascii_lowercase + string.digits
CODE_LENGTH = 8
MAX_CODE_ATTEMPTS = 10


def generate_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def read_profile(document: Document) -> UserProfile:
    return UserProfile.model_validate(document["profile"])


class ProfileStore:
    """Reads and writes the ``profile`` group of a learner document.

    Args:
        documents: Backing document store.
    """

    def __init__(self, documents: DocumentStore):
        self.documents = documents

    def get(self, code: str) -> UserProfile | None:
        document = self.documents.get(code)
        if document is None or "profile" not in document:
            return None
        return read_profile(document)

    def create(
        self, name: str, age: int | None = None, today: date | None = None
    ) -> UserProfile:
        """Create a profile under a freshly generated unique code."""
        for _ in range(MAX_CODE_ATTEMPTS):
            code = generate_code()
            if self.documents.get(code) is not None:
                continue
            profile = UserProfile(code=code, name=name, age=age)
            if today is not None:
                profile.last_active = today
            self.documents.put(
                code,
                {"profile": profile.model_dump(mode="json"), "language_progress": {}},
            )
            logger.info("profile_created", code=code)
            return profile
        raise StorageError("Failed to generate a unique code")

    def update(
        self,
        code: str,
        change: Callable[[UserProfile], None],
        alongside: Mutator | None = None,
    ) -> UserProfile:
        """Apply ``change`` to the stored profile in a single document write.

        ``alongside`` mutates other groups of the same document inside that
        write.
        """
        result: list[UserProfile] = []

        def mutate(document: Document) -> None:
            profile = read_profile(document)
            change(profile)
            document["profile"] = profile.model_dump(mode="json")
            if alongside is not None:
                alongside(document)
            result.append(profile)

        self.documents.update(code, mutate)
        return result[0]
