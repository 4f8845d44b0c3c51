"""REST API routes for learner profiles, progress and achievements."""

from collections.abc import Callable
from datetime import date
from typing import Literal, TypeVar

import structlog
from fastapi import APIRouter, Header, HTTPException
from pydantic import BaseModel, Field

from codelike_progress.config import get_settings
from codelike_progress.models.progress import Difficulty, LanguageProgressRecord
from codelike_progress.models.user_profile import UserProfile
from codelike_progress.progress.achievements import AchievementStatus
from codelike_progress.progress.session_guard import SessionInvalidError
from codelike_progress.progress.tracker import (
    ActivityOutcome,
    DifficultyLockedError,
    GameAnswerOutcome,
    LanguageSummary,
    ProgressTracker,
    SandboxOutcome,
    SectionOutOfRangeError,
    SignInOutcome,
)
from codelike_progress.progress.xp import LevelProgress, xp_to_next_level
from codelike_progress.storage.documents import DocumentStore, JsonFileDocumentStore, StorageError

logger = structlog.get_logger()
router = APIRouter(prefix="/api")

T = TypeVar("T")


class CreateProfileRequest(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    age: int | None = Field(default=None, ge=3, le=120)


class CheckInRequest(BaseModel):
    today: date | None = None  # learner's local calendar day


class PreferencesRequest(BaseModel):
    drink_preference: Literal["beer", "coffee", "coke"] | None = None
    sound_enabled: bool | None = None


class TutorialRequest(BaseModel):
    total_sections: int = Field(ge=0)


class GameStartRequest(BaseModel):
    total_levels: int = Field(ge=0)
    difficulty: Difficulty | None = None
    restart: bool = False


class AnswerRequest(BaseModel):
    correct: bool


class SandboxStartRequest(BaseModel):
    total_exercises: int = Field(ge=0)
    difficulty: Difficulty | None = None


class SandboxPositionRequest(BaseModel):
    difficulty: Difficulty
    exercise_index: int
    total_exercises: int = Field(ge=0)


class SandboxSubmitRequest(BaseModel):
    difficulty: Difficulty
    submissions: list[str]
    solutions: list[str]


class ProfileResponse(BaseModel):
    profile: UserProfile
    level_progress: LevelProgress


def get_document_store() -> DocumentStore:
    return JsonFileDocumentStore(get_settings().learners_dir)


def get_tracker() -> ProgressTracker:
    return ProgressTracker(get_document_store(), get_settings())


def _call(fn: Callable[..., T], *args, **kwargs) -> T:
    """Run a tracker operation, mapping domain errors to HTTP errors."""
    try:
        return fn(*args, **kwargs)
    except SessionInvalidError as e:
        raise HTTPException(
            status_code=401, detail={"message": str(e), "action": "onboarding"}
        )
    except DifficultyLockedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except SectionOutOfRangeError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except StorageError as e:
        logger.error("storage_unavailable", error=str(e))
        raise HTTPException(status_code=503, detail="Progress storage unavailable")


def _profile_response(profile: UserProfile) -> ProfileResponse:
    return ProfileResponse(profile=profile, level_progress=xp_to_next_level(profile.total_xp))


@router.post("/profiles", status_code=201)
def create_profile(request: CreateProfileRequest) -> dict:
    """Onboard a new learner and hand back their code."""
    profile = _call(get_tracker().create_profile, request.name, request.age)
    return {"code": profile.code}


@router.get("/profile")
def get_profile(x_learner_code: str | None = Header(default=None)) -> ProfileResponse:
    """Load the profile; every load also runs the daily streak check."""
    return _profile_response(_call(get_tracker().load_profile, x_learner_code))


@router.post("/profile/check-in")
def check_in(
    request: CheckInRequest, x_learner_code: str | None = Header(default=None)
) -> SignInOutcome:
    """Daily sign-in: applies the streak and its bonus."""
    return _call(get_tracker().sign_in, x_learner_code, request.today)


@router.post("/profile/glass/empty")
def empty_glass(x_learner_code: str | None = Header(default=None)) -> ProfileResponse:
    return _profile_response(_call(get_tracker().empty_glass, x_learner_code))


@router.put("/profile/preferences")
def update_preferences(
    request: PreferencesRequest, x_learner_code: str | None = Header(default=None)
) -> ProfileResponse:
    profile = _call(
        get_tracker().update_preferences,
        x_learner_code,
        drink_preference=request.drink_preference,
        sound_enabled=request.sound_enabled,
    )
    return _profile_response(profile)


@router.post("/progress/{module_id}/{language_id}/tutorial/open")
def open_tutorial(
    module_id: str,
    language_id: str,
    request: TutorialRequest,
    x_learner_code: str | None = Header(default=None),
) -> LanguageProgressRecord:
    return _call(
        get_tracker().open_tutorial, x_learner_code, module_id, language_id, request.total_sections
    )


@router.post("/progress/{module_id}/{language_id}/tutorial/sections/{index}/complete")
def complete_section(
    module_id: str,
    language_id: str,
    index: int,
    request: TutorialRequest,
    x_learner_code: str | None = Header(default=None),
) -> ActivityOutcome:
    return _call(
        get_tracker().complete_section,
        x_learner_code,
        module_id,
        language_id,
        index,
        request.total_sections,
    )


@router.post("/progress/{module_id}/{language_id}/game/start")
def start_game(
    module_id: str,
    language_id: str,
    request: GameStartRequest,
    x_learner_code: str | None = Header(default=None),
) -> ActivityOutcome:
    return _call(
        get_tracker().start_game,
        x_learner_code,
        module_id,
        language_id,
        request.total_levels,
        difficulty=request.difficulty,
        restart=request.restart,
    )


@router.post("/progress/{module_id}/{language_id}/game/answer")
def answer_question(
    module_id: str,
    language_id: str,
    request: AnswerRequest,
    x_learner_code: str | None = Header(default=None),
) -> GameAnswerOutcome:
    return _call(
        get_tracker().answer_question, x_learner_code, module_id, language_id, request.correct
    )


@router.post("/progress/{module_id}/{language_id}/game/hint")
def use_hint(
    module_id: str, language_id: str, x_learner_code: str | None = Header(default=None)
) -> ActivityOutcome:
    return _call(get_tracker().use_hint, x_learner_code, module_id, language_id)


@router.post("/progress/{module_id}/{language_id}/sandbox/start")
def start_sandbox(
    module_id: str,
    language_id: str,
    request: SandboxStartRequest,
    x_learner_code: str | None = Header(default=None),
) -> LanguageProgressRecord:
    return _call(
        get_tracker().start_sandbox,
        x_learner_code,
        module_id,
        language_id,
        request.total_exercises,
        request.difficulty,
    )


@router.put("/progress/{module_id}/{language_id}/sandbox/position")
def save_sandbox_position(
    module_id: str,
    language_id: str,
    request: SandboxPositionRequest,
    x_learner_code: str | None = Header(default=None),
) -> ActivityOutcome:
    return _call(
        get_tracker().save_sandbox_position,
        x_learner_code,
        module_id,
        language_id,
        request.difficulty,
        request.exercise_index,
        request.total_exercises,
    )


@router.post("/progress/{module_id}/{language_id}/sandbox/submit")
def submit_sandbox(
    module_id: str,
    language_id: str,
    request: SandboxSubmitRequest,
    x_learner_code: str | None = Header(default=None),
) -> SandboxOutcome:
    return _call(
        get_tracker().submit_sandbox,
        x_learner_code,
        module_id,
        language_id,
        request.difficulty,
        request.submissions,
        request.solutions,
    )


@router.get("/progress")
def progress_summary(x_learner_code: str | None = Header(default=None)) -> list[LanguageSummary]:
    return _call(get_tracker().summary, x_learner_code)


@router.get("/achievements")
def list_achievements(
    x_learner_code: str | None = Header(default=None),
) -> list[AchievementStatus]:
    return _call(get_tracker().achievements, x_learner_code)


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}
