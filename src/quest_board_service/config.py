"""
Configuration management for the quest board service.

Loads configuration from YAML with ZERO defaults.
Every value must be explicitly specified or startup fails.
"""

from __future__ import annotations

import os
from decimal import Decimal
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field


class ServiceConfig(BaseModel):
    """Service identity configuration."""

    model_config = ConfigDict(extra="forbid")
    name: str
    version: str


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    model_config = ConfigDict(extra="forbid")
    host: str
    port: int
    log_level: str


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(extra="forbid")
    level: str
    directory: str


class DatabaseConfig(BaseModel):
    """Database configuration."""

    model_config = ConfigDict(extra="forbid")
    path: str
    busy_timeout_ms: int = Field(ge=0)
    max_transaction_attempts: int = Field(ge=1)
    retry_backoff_seconds: float = Field(ge=0)


class WalletConfig(BaseModel):
    """Wallet amounts, given as decimal strings with two fractional digits."""

    model_config = ConfigDict(extra="forbid")
    signup_credit: Decimal = Field(ge=0)
    max_top_up: Decimal = Field(gt=0)


class QuestsConfig(BaseModel):
    """Quest posting and listing limits."""

    model_config = ConfigDict(extra="forbid")
    max_title_length: int = Field(gt=0)
    max_description_length: int = Field(gt=0)
    default_list_limit: int = Field(gt=0)
    max_list_limit: int = Field(gt=0)


class RatingsConfig(BaseModel):
    """Rating submission limits."""

    model_config = ConfigDict(extra="forbid")
    max_review_length: int = Field(gt=0)


class AdminConfig(BaseModel):
    """Identities allowed to approve new members."""

    model_config = ConfigDict(extra="forbid")
    user_ids: list[str]


class RequestConfig(BaseModel):
    """Request handling configuration."""

    model_config = ConfigDict(extra="forbid")
    max_body_size: int


class Settings(BaseModel):
    """
    Root configuration container.

    All fields are REQUIRED. No defaults exist.
    Missing fields cause immediate startup failure.
    """

    model_config = ConfigDict(extra="forbid")
    service: ServiceConfig
    server: ServerConfig
    logging: LoggingConfig
    database: DatabaseConfig
    wallet: WalletConfig
    quests: QuestsConfig
    ratings: RatingsConfig
    admin: AdminConfig
    request: RequestConfig


def get_config_path() -> Path:
    """Determine configuration file path."""
    env_path = os.environ.get("CONFIG_PATH")
    if env_path:
        return Path(env_path)
    return Path(__file__).resolve().parents[2] / "config.yaml"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache settings from config.yaml.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the file does not hold a YAML mapping.
        pydantic.ValidationError: If any section is missing or malformed.
    """
    config_path = get_config_path()
    raw = yaml.safe_load(config_path.read_text())
    if not isinstance(raw, dict):
        msg = f"Invalid config file: {config_path}"
        raise ValueError(msg)
    return Settings(**raw)


def clear_settings_cache() -> None:
    """Drop the cached settings so the next call reloads from disk."""
    get_settings.cache_clear()
