from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from mnemos.domain.constants import (
    DEFAULT_ARTICLE_UNLOCK_THRESHOLD,
    DEFAULT_DAILY_LIMIT,
    DEFAULT_SENTENCE_UNLOCK_THRESHOLD,
    STORE_RETRY_ATTEMPTS,
    STORE_RETRY_BASE_DELAY,
)

CONFIG_FILES = [
    Path.home() / ".config/mnemos/config.toml",
    Path.home() / ".mnemos.toml",
]


class AppConfig(BaseSettings):
    """
    Configuration model for mnemos.
    Supports loading from:
    1. Environment variables (MNEMOS_*)
    2. Config file (~/.config/mnemos/config.toml or ~/.mnemos.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="MNEMOS_",
        toml_file=CONFIG_FILES,
        extra="ignore",
    )

    # Storage
    store_backend: Literal["memory", "json"] = "json"
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".local/share/mnemos")
    lessons_file: Path | None = None
    log_dir: Path = Field(default_factory=lambda: Path.home() / ".config/mnemos/logs")

    # Store resilience
    store_retry_attempts: int = Field(default=STORE_RETRY_ATTEMPTS, ge=1)
    store_retry_base_delay: float = Field(default=STORE_RETRY_BASE_DELAY, ge=0.0)

    # Learning rules
    daily_limit: int = Field(default=DEFAULT_DAILY_LIMIT, ge=0)
    sentence_unlock_threshold: float = Field(
        default=DEFAULT_SENTENCE_UNLOCK_THRESHOLD, ge=0.0, le=1.0
    )
    article_unlock_threshold: float = Field(
        default=DEFAULT_ARTICLE_UNLOCK_THRESHOLD, ge=0.0, le=1.0
    )
    clamp_legacy_quality: bool = False

    verbose: int = 1

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        # First existing file wins
        toml_file = next((f for f in CONFIG_FILES if f.exists()), None)

        # Earlier sources take priority: CLI overrides, then env, then TOML
        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @field_validator("data_dir", "log_dir", mode="before")
    @classmethod
    def resolve_dir(cls, v: Any) -> Path:
        return Path(v).expanduser().resolve()

    @field_validator("lessons_file", mode="before")
    @classmethod
    def resolve_lessons_file(cls, v: Any) -> Path | None:
        if v:
            return Path(v).expanduser().resolve()
        return None


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/mnemos/config.toml (if exists)
    3. Environment variables (MNEMOS_*)
    4. cli_overrides (passed from Typer)
    """
    # Typer passes None for options the user did not set
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
