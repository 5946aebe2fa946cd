"""Runtime settings, read from PKGPLAN_* environment variables and overridden by CLI flags."""

from __future__ import annotations

from typing import Annotated, Any, ClassVar, List, Optional

from pydantic import Field, PositiveInt, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

ENV_PREFIX = "PKGPLAN_"


class Settings(BaseSettings):
    """Validated settings for the pkgplan command line."""

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        extra="ignore",
        populate_by_name=True,
    )

    mongo_uri: Optional[str] = Field(default=None, description="MongoDB connection URI.")
    database: str = Field(default="packages", description="Database holding the source collections.")
    collections: Annotated[List[str], NoDecode] = Field(
        default_factory=list,
        validation_alias="PKGPLAN_SOURCES",
        description="MongoDB collections used as sources, highest priority first (comma separated).",
    )
    feed_files: Annotated[List[str], NoDecode] = Field(
        default_factory=list,
        validation_alias="PKGPLAN_FEEDS",
        description="JSON feed files used as sources (comma separated).",
    )
    max_workers: PositiveInt = Field(default=4, description="Concurrent source queries.")
    cache_size: int = Field(default=10_000, ge=0, description="Documents cached per MongoDB feed.")
    log_level: str = Field(default="INFO", description="Minimum log level.")
    log_json: bool = Field(default=False, description="Emit JSON log lines.")

    @field_validator("collections", "feed_files", mode="before")
    @classmethod
    def _split_list(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [v.strip() for v in value.split(",") if v.strip()]
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.upper()
        return value
