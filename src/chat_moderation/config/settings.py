"""Runtime settings loaded from environment variables."""

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

NonEmptyStr = Annotated[str, Field(min_length=1)]
NonNegativeFloat = Annotated[float, Field(ge=0.0)]
NonNegativeInt = Annotated[int, Field(ge=0)]
PositiveFloat = Annotated[float, Field(gt=0.0)]
PositiveInt = Annotated[int, Field(gt=0)]


class Settings(BaseSettings):
    """Environment-driven moderation engine settings."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    store_backend: Literal["database", "document"] = Field(
        default="database",
        validation_alias="STORE_BACKEND",
    )
    database_url: NonEmptyStr | None = Field(default=None, validation_alias="DATABASE_URL")
    document_store_path: NonEmptyStr = Field(
        default="moderation-db.json",
        validation_alias="DOCUMENT_STORE_PATH",
    )
    cache_ttl_group_ms: PositiveInt = Field(
        default=5 * 60 * 1000,
        validation_alias="CACHE_TTL_GROUP_MS",
    )
    cache_ttl_member_ms: PositiveInt = Field(
        default=2 * 60 * 1000,
        validation_alias="CACHE_TTL_MEMBER_MS",
    )
    cache_ttl_membership_ms: PositiveInt = Field(
        default=3 * 60 * 1000,
        validation_alias="CACHE_TTL_MEMBERSHIP_MS",
    )
    cache_ttl_punishment_ms: PositiveInt = Field(
        default=30 * 1000,
        validation_alias="CACHE_TTL_PUNISHMENT_MS",
    )
    cache_ttl_blacklist_ms: PositiveInt = Field(
        default=10 * 60 * 1000,
        validation_alias="CACHE_TTL_BLACKLIST_MS",
    )
    cache_sweep_interval_seconds: PositiveFloat = Field(
        default=60.0,
        validation_alias="CACHE_SWEEP_INTERVAL_SECONDS",
    )
    activity_debounce_ms: NonNegativeInt = Field(
        default=2000,
        validation_alias="ACTIVITY_DEBOUNCE_MS",
    )
    outbound_dedupe_window_seconds: NonNegativeFloat = Field(
        default=3.0,
        validation_alias="OUTBOUND_DEDUPE_WINDOW_SECONDS",
    )
    default_timeout_ms: PositiveInt = Field(
        default=10 * 60 * 1000,
        validation_alias="DEFAULT_TIMEOUT_MS",
    )
    auto_register_groups: bool = Field(default=True, validation_alias="AUTO_REGISTER_GROUPS")
    commands_require_admin: bool = Field(
        default=True,
        validation_alias="COMMANDS_REQUIRE_ADMIN",
    )
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    @model_validator(mode="after")
    def _require_database_url_for_database_backend(self) -> "Settings":
        if self.store_backend == "database" and self.database_url is None:
            raise ValueError("DATABASE_URL is required when STORE_BACKEND=database")
        return self


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Load and cache application settings."""

    return Settings()
