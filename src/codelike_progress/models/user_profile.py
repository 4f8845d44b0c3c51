"""User profile model for tracking aggregate learner stats across sessions."""

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field


class UserProfile(BaseModel):
    code: str
    name: str = ""
    age: int | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    total_xp: int = 0
    level: int = 1
    streak: int = 0
    longest_streak: int = 0
    last_active: date = Field(default_factory=date.today)
    achievements: list[str] = Field(default_factory=list)
    glass_progress: float = 0.0  # 0-100
    drink_preference: Literal["beer", "coffee", "coke"] | None = None
    sound_enabled: bool = True
