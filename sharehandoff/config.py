"""Configuration for the share handoff pipeline."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Literal, Sequence

from dotenv import load_dotenv
from pydantic import Field, HttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Share-sheet and host processes both read the same .env.
load_dotenv()


def _split_list(value: str | Sequence[str] | None) -> list[str]:
    """Lowercased entries of a `;` or `,` separated setting."""
    if value is None:
        return []
    items = re.split(r"[;,]", value) if isinstance(value, str) else value
    return [item.strip().lower() for item in items if item.strip()]


class Settings(BaseSettings):
    """App configuration derived from environment variables."""

    share_root: Path | None = Field(None, alias="SHARE_ROOT")
    share_scheme: str = Field("duggy", alias="SHARE_SCHEME")
    share_host: str = Field("share", alias="SHARE_HOST")
    share_accepted_schemes_raw: str = Field("duggy;app.duggy", alias="SHARE_ACCEPTED_SCHEMES")

    mailbox_backend: Literal["directory", "sqlite"] = Field("directory", alias="MAILBOX_BACKEND")
    mailbox_db: Path | None = Field(None, alias="MAILBOX_DB")

    inline_max_length: int = Field(2048, alias="INLINE_MAX_LENGTH")
    host_check_delay_ms: int = Field(500, alias="HOST_CHECK_DELAY_MS")

    notify_url: HttpUrl | None = Field(None, alias="NOTIFY_URL")
    notify_token: str | None = Field(None, alias="NOTIFY_TOKEN")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator(
        "share_root",
        "mailbox_db",
        "notify_url",
        "notify_token",
        mode="before",
    )
    @classmethod
    def _empty_str_to_none(cls, value):
        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    @field_validator("share_scheme", "share_host", mode="before")
    @classmethod
    def _normalize_address_part(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @model_validator(mode="after")
    def _validate_address(self):
        if not self.share_scheme:
            raise ValueError("SHARE_SCHEME must not be empty.")
        if not self.share_host:
            raise ValueError("SHARE_HOST must not be empty.")
        if self.inline_max_length <= 0:
            raise ValueError("INLINE_MAX_LENGTH must be positive.")
        if self.host_check_delay_ms < 0:
            raise ValueError("HOST_CHECK_DELAY_MS must not be negative.")
        return self

    @property
    def share_accepted_schemes(self) -> list[str]:
        """Schemes the host answers to; the trigger scheme is always included."""
        schemes = _split_list(self.share_accepted_schemes_raw)
        if self.share_scheme not in schemes:
            schemes.insert(0, self.share_scheme)
        return schemes

    @property
    def host_check_delay(self) -> float:
        return self.host_check_delay_ms / 1000.0

    @property
    def mailbox_db_path(self) -> Path | None:
        if self.mailbox_db is not None:
            return self.mailbox_db
        if self.share_root is None:
            return None
        return self.share_root / "SharedData" / "mailbox.db"
