"""Application configuration."""

import logging
from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from flatwiki.core.models import ParserMode

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    data_dir: Path = Path("data/pages")
    main_page: str = "Main_page"
    all_page: str = "All_pages"
    parser: ParserMode = Field(
        default=ParserMode.MEDIAWIKI,
        validation_alias=AliasChoices("flatwiki_parser", "parser"),
    )
    username: str = "user"
    password: str = "password"
    debug: bool = False
    app_title: str = "FlatWiki"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="FLATWIKI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("parser", mode="before")
    @classmethod
    def _fallback_parser(cls, value: object) -> ParserMode:
        """Unknown parser modes render as MediaWiki."""
        mode = ParserMode.resolve(value)
        raw = value.strip().lower() if isinstance(value, str) else value
        if raw not in (None, "", mode.value):
            logger.warning("Unknown parser mode %r, using %s", value, mode.value)
        return mode


settings = Settings()
