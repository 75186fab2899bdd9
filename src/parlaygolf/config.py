"""Environment-driven configuration helpers for ParlayLab Golf."""

from __future__ import annotations

import logging
import os
from functools import lru_cache

from pydantic import AnyUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or .env files."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_url: AnyUrl | str = Field(default="sqlite:///./parlaygolf.db")
    log_level: str = Field(default="INFO")

    datagolf_api_key: str = Field(default="", validation_alias="DATAGOLF_API_KEY")
    datagolf_base_url: str = Field(default="https://feeds.datagolf.com")
    datagolf_timeout_seconds: float = Field(default=15.0, gt=0.0)
    datagolf_retry_attempts: int = Field(default=3, ge=1, le=10)
    datagolf_retry_wait_seconds: float = Field(default=1.0, ge=0.0)

    completion_threshold: float = Field(default=0.8, gt=0.0, le=1.0)
    min_completed_players: int = Field(default=1, ge=1)
    settlement_max_workers: int = Field(default=4, ge=1, le=32)

    parlaygolf_api_key: str = Field(default="", validation_alias="PARLAYGOLF_API_KEY")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()  # type: ignore[call-arg]


def get_datagolf_api_key() -> str:
    """Return the DataGolf feed key or raise a helpful error."""

    key = os.getenv("DATAGOLF_API_KEY") or get_settings().datagolf_api_key
    if not key:
        raise RuntimeError(
            "DATAGOLF_API_KEY is not configured. "
            "Set it in .env for local dev or as a deployment secret."
        )
    return key


def get_api_access_key() -> str:
    key = os.getenv("PARLAYGOLF_API_KEY") or get_settings().parlaygolf_api_key
    if not key:
        raise RuntimeError(
            "PARLAYGOLF_API_KEY is not configured. Set it in your environment or deployment secrets."
        )
    return key


def configure_logging(level: str | None = None) -> None:
    """Install a root handler for CLI and server entry points."""

    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
