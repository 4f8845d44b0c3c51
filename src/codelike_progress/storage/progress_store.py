"""Progress record persistence and resume logic.

Records live under ``language_progress[<key>]`` of the learner document.
Saves are field-group granular: a tutorial save never touches game fields and
vice versa, and tiers in ``completed_difficulties`` are only ever added.
"""

from datetime import datetime

import structlog

from ..models.progress import (
    CompletedDifficulties,
    Difficulty,
    GameProgress,
    LanguageProgressRecord,
    SandboxDifficultyProgress,
    TutorialProgress,
    progress_key,
)
from .documents import Document, DocumentNotFoundError, DocumentStore, Mutator

logger = structlog.get_logger()


class ProgressRecordStore:
    """Loads and saves one progress record per (module, language) pair.

    Args:
        documents: Backing document store.
    """

    def __init__(self, documents: DocumentStore):
        self.documents = documents

    def load(self, code: str, key: str) -> LanguageProgressRecord | None:
        document = self.documents.get(code)
        if document is None:
            return None
        data = document.get("language_progress", {}).get(key)
        if data is None:
            return None
        return LanguageProgressRecord.model_validate(data)

    def load_all(self, code: str) -> dict[str, LanguageProgressRecord]:
        document = self.documents.get(code)
        if document is None:
            return {}
        return {
            key: LanguageProgressRecord.model_validate(data)
            for key, data in document.get("language_progress", {}).items()
        }

    def initialize(
        self,
        code: str,
        module_id: str,
        language_id: str,
        *,
        total_sections: int = 0,
        total_levels: int = 0,
        difficulty: Difficulty = Difficulty.EASY,
        lives: int = 3,
        hints: int = 3,
    ) -> LanguageProgressRecord:
        """Create the record with explicit defaults unless it already exists."""
        key = progress_key(module_id, language_id)
        fresh = LanguageProgressRecord(
            module_id=module_id,
            language_id=language_id,
            tutorial_progress=TutorialProgress(total_sections=total_sections),
            game_progress=GameProgress(
                difficulty=difficulty,
                total_levels=total_levels,
                lives=lives,
                hints=hints,
            ),
        )
        result: list[LanguageProgressRecord] = []

        def mutate(document: Document) -> None:
            records = document.setdefault("language_progress", {})
            if key in records:
                result.append(LanguageProgressRecord.model_validate(records[key]))
                return
            records[key] = fresh.model_dump(mode="json")
            result.append(fresh)

        self.documents.update(code, mutate)
        logger.debug("progress_initialized", code=code, key=key)
        return result[0]

    def group_writer(
        self,
        key: str,
        *,
        tutorial: TutorialProgress | None = None,
        game: GameProgress | None = None,
        sandbox: dict[Difficulty, SandboxDifficultyProgress] | None = None,
        completed: CompletedDifficulties | None = None,
    ) -> Mutator:
        """Build a document mutation that writes only the given field groups."""

        def mutate(document: Document) -> None:
            records = document.setdefault("language_progress", {})
            if key not in records:
                raise DocumentNotFoundError(f"Progress record {key!r} not initialized")
            record = records[key]
            if tutorial is not None:
                was_completed = record.get("tutorial_progress", {}).get("completed", False)
                record["tutorial_progress"] = tutorial.model_dump(mode="json")
                record["tutorial_progress"]["completed"] = tutorial.completed or was_completed
            if game is not None:
                record["game_progress"] = game.model_dump(mode="json")
            if sandbox is not None:
                stored = record.setdefault("sandbox_progress", {})
                for difficulty, entry in sandbox.items():
                    stored[difficulty.value] = entry.model_dump(mode="json")
            if completed is not None:
                merged = CompletedDifficulties.model_validate(
                    record.get("completed_difficulties", {})
                )
                merged.game |= completed.game
                merged.sandbox |= completed.sandbox
                record["completed_difficulties"] = merged.model_dump(mode="json")
            record["last_accessed"] = datetime.now().isoformat()

        return mutate

    def save(
        self,
        code: str,
        key: str,
        *,
        tutorial: TutorialProgress | None = None,
        game: GameProgress | None = None,
        sandbox: dict[Difficulty, SandboxDifficultyProgress] | None = None,
        completed: CompletedDifficulties | None = None,
    ) -> LanguageProgressRecord:
        """Persist the given field groups and return the stored record."""
        document = self.documents.update(
            code,
            self.group_writer(
                key, tutorial=tutorial, game=game, sandbox=sandbox, completed=completed
            ),
        )
        return LanguageProgressRecord.model_validate(document["language_progress"][key])

    def _load_or_initialize(
        self, code: str, module_id: str, language_id: str, **defaults
    ) -> LanguageProgressRecord:
        record = self.load(code, progress_key(module_id, language_id))
        if record is None:
            record = self.initialize(code, module_id, language_id, **defaults)
        return record

    def resume_tutorial(
        self, code: str, module_id: str, language_id: str, total_sections: int
    ) -> LanguageProgressRecord:
        """Load (or start) a record with the tutorial fitted to the content."""
        record = self._load_or_initialize(
            code, module_id, language_id, total_sections=total_sections
        )
        record.tutorial_progress = record.tutorial_progress.resumed(total_sections)
        return record

    def resume_game(
        self, code: str, module_id: str, language_id: str, total_levels: int, **defaults
    ) -> LanguageProgressRecord:
        record = self._load_or_initialize(
            code, module_id, language_id, total_levels=total_levels, **defaults
        )
        record.game_progress = record.game_progress.resumed(total_levels)
        return record

    def resume_sandbox(
        self,
        code: str,
        module_id: str,
        language_id: str,
        difficulty: Difficulty,
        total_exercises: int,
    ) -> LanguageProgressRecord:
        record = self._load_or_initialize(code, module_id, language_id)
        record.sandbox_progress[difficulty] = record.sandbox_for(difficulty).resumed(
            total_exercises
        )
        return record
