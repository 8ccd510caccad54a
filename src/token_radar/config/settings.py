"""Configuration management for the token radar pipeline."""

from __future__ import annotations

import os
import tomllib
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, cast

from pydantic import AnyHttpUrl, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..utils.constants import (
    DEFAULT_PAGE_SIZE,
    PRICE_WINDOW_SIZE,
    UPDATE_INTERVAL_PRESETS,
    WATCHLIST_KEY,
)

DEFAULT_CONFIG_FILE = Path("config/app.toml")
CONFIG_FILE_ENV_VAR = "APP_CONFIG_FILE"
MODE_ENV_VAR = "RADAR_MODE"


class AppMode(str, Enum):
    """Supported runtime profiles."""

    LIVE = "live"
    DEMO = "demo"


class StorageBackend(str, Enum):
    """Key-value backends available for the watchlist."""

    SQLITE = "sqlite"
    JSON = "json"


def _resolve_config_path() -> Path:
    env_value = os.getenv(CONFIG_FILE_ENV_VAR)
    if env_value:
        candidate = Path(env_value)
        if not candidate.is_absolute():
            candidate = Path.cwd() / candidate
        return candidate
    return Path.cwd() / DEFAULT_CONFIG_FILE


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = {**base}
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(cast(Dict[str, Any], result[key]), value)
        else:
            result[key] = value
    return result


def _select_profile(data: Dict[str, Any]) -> Dict[str, Any]:
    if not data:
        return {}
    base_section = cast(Dict[str, Any], data.get("default", {}))
    requested_mode = os.getenv(MODE_ENV_VAR)
    if not requested_mode:
        mode_section = base_section.get("mode")
        if isinstance(mode_section, dict):
            requested_mode = cast(str, mode_section.get("active", AppMode.LIVE.value))
        elif isinstance(mode_section, str):
            requested_mode = mode_section
    requested_mode = (requested_mode or AppMode.LIVE.value).lower()

    if requested_mode in data and requested_mode != "default":
        return _deep_merge(base_section, cast(Dict[str, Any], data[requested_mode]))
    if base_section:
        return base_section
    return data


def _load_toml_config() -> Tuple[Dict[str, Any], Optional[Path]]:
    path = _resolve_config_path()
    if not path.exists():
        return {}, None
    with path.open("rb") as handle:
        payload = tomllib.load(handle)
    if not isinstance(payload, dict):
        return {}, path
    merged = dict(_select_profile(payload))
    mode_section = merged.get("mode")
    if isinstance(mode_section, dict):
        mode_section = dict(mode_section)
        mode_section.setdefault("config_file", str(path))
        merged["mode"] = mode_section
    else:
        merged["mode"] = {"config_file": str(path)}
    return merged, path


class ModeConfig(BaseModel):
    """Runtime profile selection."""

    active: AppMode = Field(default=AppMode.LIVE)
    config_file: Optional[Path] = None


class FeedConfig(BaseModel):
    """Websocket subscription to the new-token feed."""

    url: str = Field(default="wss://pumpportal.fun/api/data")
    subscribe_method: str = Field(default="subscribeNewToken")
    reconnect_delay_seconds: float = Field(default=3.0, ge=0.0, le=300.0)
    open_timeout_seconds: float = Field(default=10.0, ge=1.0, le=120.0)
    ping_interval_seconds: Optional[float] = Field(default=20.0, ge=1.0)


class MetadataConfig(BaseModel):
    """Off-band metadata and detail lookups."""

    http_timeout: float = Field(default=10.0, ge=1.0, le=45.0)
    max_concurrent_fetches: int = Field(default=16, ge=1, le=256)
    ipfs_gateway: AnyHttpUrl = Field(default="https://ipfs.io/ipfs/")
    details_base_url: AnyHttpUrl = Field(default="https://pumpapi.fun/api")
    details_cache_ttl_seconds: int = Field(default=120, ge=0)
    user_agent: str = Field(default="token-radar/1.0")


class PipelineConfig(BaseModel):
    """Flush cadence, price ticks and view defaults."""

    update_interval_seconds: int = Field(default=1)
    price_tick_seconds: float = Field(default=1.0, gt=0.0, le=60.0)
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=500)

    @field_validator("update_interval_seconds")
    @classmethod
    def _known_preset(cls, value: int) -> int:
        if value not in UPDATE_INTERVAL_PRESETS:
            raise ValueError(
                f"update_interval_seconds must be one of {sorted(UPDATE_INTERVAL_PRESETS)}"
            )
        return value


class SimulationConfig(BaseModel):
    """Placeholder market fields and the synthetic price walk."""

    simulate_market_fields: bool = True
    seed: Optional[int] = Field(default=None, ge=0)
    price_window: int = Field(default=PRICE_WINDOW_SIZE, ge=1, le=1_000)
    price_perturbation_pct: float = Field(default=0.05, gt=0.0, lt=1.0)
    max_liquidity: float = Field(default=200.0, gt=0.0)
    max_holders: int = Field(default=1_000, ge=1)
    max_contract_age_days: int = Field(default=30, ge=0)
    max_price_volatility_pct: float = Field(default=30.0, ge=0.0)
    top_holder_count: int = Field(default=5, ge=1, le=20)


class StorageConfig(BaseModel):
    """Local key-value persistence for the watchlist."""

    backend: StorageBackend = Field(default=StorageBackend.SQLITE)
    database_path: Path = Field(default=Path("data/token_radar.sqlite3"))
    json_path: Path = Field(default=Path("data/watchlist.json"))
    watchlist_key: str = Field(default=WATCHLIST_KEY)


class MonitoringConfig(BaseModel):
    """Logging configuration."""

    log_level: str = Field(default="INFO")
    json_logs: bool = True


class DashboardConfig(BaseModel):
    """Collaborator API server."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8080, ge=1, le=65535)
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class AppConfig(BaseSettings):
    """Aggregated application configuration."""

    mode: ModeConfig = Field(default_factory=ModeConfig)
    feed: FeedConfig = Field(default_factory=FeedConfig)
    metadata: MetadataConfig = Field(default_factory=MetadataConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    dashboard: DashboardConfig = Field(default_factory=DashboardConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        def file_settings(_: Optional[BaseSettings] = None) -> Dict[str, Any]:
            payload, _ = _load_toml_config()
            return payload

        # Environment variables win over the static config file.
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_settings,
            file_secret_settings,
        )


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    """Create a cached application configuration object."""

    return AppConfig()


__all__ = [
    "AppConfig",
    "AppMode",
    "DashboardConfig",
    "FeedConfig",
    "MetadataConfig",
    "ModeConfig",
    "MonitoringConfig",
    "PipelineConfig",
    "SimulationConfig",
    "StorageBackend",
    "StorageConfig",
    "get_app_config",
]
