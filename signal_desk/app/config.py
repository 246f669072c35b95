"""Configuration loading and validation."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError

API_KEY_ENV = "GOLD_API_KEY"


class DatabaseConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    path: str = "data/signals.db"


class PriceFeedConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    endpoint: str = "https://www.goldapi.io/api/XAU/USD"
    symbol: str = "XAUUSD"
    api_key: str = ""
    timeout_sec: float = Field(default=10.0, gt=0)
    cache_ttl_sec: float = Field(default=25.0, ge=0)
    fallback_base_price: float = Field(default=2050.0, gt=0)


class RefreshConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    interval_sec: float = Field(default=30.0, gt=0)
    pnl_tolerance: float = Field(default=0.01, ge=0)


class LevelsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sl_percent: float = Field(default=2.0, gt=0, lt=100)
    tp_pips: tuple[float, float, float] = (50.0, 100.0, 200.0)
    pip_value: float = Field(default=0.01, gt=0)


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    dir: str = "logs"
    level: str = Field(default="INFO", pattern=r"^(TRACE|DEBUG|INFO|SUCCESS|WARNING|ERROR|CRITICAL)$")


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(default="local", min_length=1)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    price_feed: PriceFeedConfig = Field(default_factory=PriceFeedConfig)
    refresh: RefreshConfig = Field(default_factory=RefreshConfig)
    levels: LevelsConfig = Field(default_factory=LevelsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(path: str | Path = "config.yml") -> AppConfig:
    """Load configuration from YAML file, validate schema and apply env overrides."""
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file '{config_path}' not found. Copy config.yml.example to config.yml first."
        )

    with config_path.open("r", encoding="utf-8") as fh:
        raw_data = yaml.safe_load(fh) or {}

    try:
        config = AppConfig.model_validate(raw_data)
    except ValidationError as exc:
        raise ValueError(f"Invalid config '{config_path}': {exc}") from exc

    return apply_env_overrides(config)


def apply_env_overrides(config: AppConfig) -> AppConfig:
    load_dotenv()
    api_key = os.getenv(API_KEY_ENV)
    if api_key:
        config.price_feed.api_key = api_key.strip()
    return config
