"""Application configuration using pydantic-settings."""

import functools
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


def _find_project_root() -> Path:
    """Find project root by locating pyproject.toml."""
    current = Path(__file__).resolve()
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent
    return Path(__file__).resolve().parent.parent.parent


DEFAULT_MODULE_CATALOG: dict[str, list[str]] = {
    "software-dev": ["python", "javascript", "java", "cpp"],
    "web-dev": ["html", "css", "javascript", "react"],
    "data-science": ["python", "sql", "r"],
    "ai-ml": ["python", "tensorflow"],
    "mobile-app": ["kotlin", "swift", "flutter"],
    "graphics-design": ["figma", "photoshop"],
    "content-creation": ["writing", "video"],
}


class YamlSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads from settings.yaml."""

    def get_field_value(self, field_name: str) -> tuple[Any, str, bool]:
        """Not used - we implement __call__ instead."""
        return None, "", False

    def __call__(self) -> dict[str, Any]:
        """Load settings from YAML file."""
        yaml_path = _find_project_root() / "config" / "settings.yaml"
        if not yaml_path.exists():
            return {}

        with open(yaml_path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        # Flatten nested structure to match Settings field names
        flattened = {}
        if 'server' in data:
            flattened['host'] = data['server'].get('host')
            flattened['port'] = data['server'].get('port')
        if 'storage' in data:
            flattened['data_dir'] = data['storage'].get('data_dir')
        if 'mastery' in data:
            mastery = data['mastery']
            flattened['pass_threshold'] = mastery.get('pass_threshold')
            flattened['similarity_threshold'] = mastery.get('similarity_threshold')
        if 'xp' in data:
            for name, value in data['xp'].items():
                flattened[f'xp_{name}'] = value
        if 'difficulties' in data:
            flattened['difficulty_lives'] = {
                name: tier.get('lives') for name, tier in data['difficulties'].items()
            }
            flattened['difficulty_hints'] = {
                name: tier.get('hints') for name, tier in data['difficulties'].items()
            }
        if 'modules' in data:
            flattened['module_catalog'] = data['modules']

        # Remove None values
        return {k: v for k, v in flattened.items() if v is not None}


class Settings(BaseSettings):
    """Application settings loaded from environment and config files."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Storage (None -> <project_root>/data/learners)
    data_dir: Path | None = Field(default=None)

    # Mastery
    pass_threshold: float = Field(default=0.75)
    similarity_threshold: float = Field(default=0.7)

    # XP rewards
    xp_correct_answer: int = Field(default=20)
    xp_game_completion: int = Field(default=300)
    xp_sandbox_exercise: int = Field(default=20)
    xp_sandbox_completion: int = Field(default=500)
    xp_tutorial_section: int = Field(default=50)
    xp_streak_bonus: int = Field(default=50)

    # Game mechanics per difficulty
    difficulty_lives: dict[str, int] = Field(
        default_factory=lambda: {"easy": 3, "medium": 3, "hard": 3}
    )
    difficulty_hints: dict[str, int] = Field(
        default_factory=lambda: {"easy": 3, "medium": 2, "hard": 1}
    )

    # Content: module id -> language ids
    module_catalog: dict[str, list[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_MODULE_CATALOG.items()}
    )

    # Paths
    project_root: Path = Field(default_factory=_find_project_root)

    @property
    def learners_dir(self) -> Path:
        d = self.data_dir or self.project_root / "data" / "learners"
        d.mkdir(parents=True, exist_ok=True)
        return d

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings sources to include YAML file.

        Priority order (highest to lowest):
        1. init_settings (arguments passed to Settings())
        2. env_settings (environment variables)
        3. dotenv_settings (.env file)
        4. YamlSettingsSource (settings.yaml)
        5. file_secret_settings
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlSettingsSource(settings_cls),
            file_secret_settings,
        )


@functools.lru_cache
def get_settings() -> Settings:
    """Get application settings singleton."""
    return Settings()
