"""Configuration management with Pydantic and YAML support."""

from __future__ import annotations

import os
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreBackend(str, Enum):
    """Where day documents are read from."""

    FIRESTORE = "firestore"
    DIRECTORY = "directory"


class BatteryUnit(str, Enum):
    """How a device's ``batteryLevel`` value is interpreted."""

    AUTO = "auto"  # > 1 means percent, otherwise fraction
    FRACTION = "fraction"  # 0..1
    PERCENT = "percent"  # 0..100


class UnknownEventAction(str, Enum):
    """Thread action given to events whose type was not recognised."""

    OPEN = "OPEN"
    CLOSE = "CLOSE"
    UNKNOWN = "UNKNOWN"


class StoreConfig(BaseModel):
    """Document store configuration."""

    backend: StoreBackend = StoreBackend.FIRESTORE
    project_id: str = Field(default="", description="Firestore project id")
    database: str = Field(default="(default)")
    endpoint: str = Field(
        default="https://firestore.googleapis.com", description="REST endpoint, or an emulator"
    )
    api_key: str | None = Field(default=None, description="Web API key for the REST endpoint")
    collection: str = Field(default="sanary_monitor", description="Root collection of devices")
    directory: Path | None = Field(default=None, description="Root of a local JSON export")
    poll_interval_seconds: float = Field(default=15.0, gt=0, description="Live subscription poll")
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    page_size: int = Field(default=300, ge=1, le=1000)


class PipelineConfig(BaseModel):
    """Usage reconstruction thresholds and policies."""

    usage_grace_ms: int = Field(default=60_000, ge=0, description="Clock skew allowance on deltas")
    session_noise_floor_ms: int = Field(default=60_000, ge=0)
    unterminated_session_cap_ms: int = Field(
        default=3_600_000, ge=0, description="Length given to a past day's unclosed session"
    )
    cluster_gap_ms: int = Field(default=120_000, gt=0, description="Max gap inside one activity")
    cluster_noise_floor_ms: int = Field(default=10_000, ge=0)
    min_cluster_duration_ms: int = Field(default=1_000, ge=0)
    unknown_event_action: UnknownEventAction = UnknownEventAction.CLOSE
    battery_unit: BatteryUnit = BatteryUnit.AUTO
    timezone: str = Field(default="UTC", description="Zone that decides which day is today")
    strict_documents: bool = Field(default=True, description="Fail the day on a malformed document")

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone '{v}'") from e
        return v


class WebConfig(BaseModel):
    """Web API configuration."""

    host: str = Field(default="127.0.0.1", description="Bind to localhost only")
    port: int = Field(default=8080, ge=1024, le=65535)


class Config(BaseSettings):
    """Main application configuration."""

    model_config = SettingsConfigDict(
        env_prefix="USAGE_LENS_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Paths
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".local/share/usage-lens")
    log_dir: Path = Field(default_factory=lambda: Path.home() / ".local/state/usage-lens/logs")
    config_dir: Path = Field(default_factory=lambda: Path.home() / ".config/usage-lens")

    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")

    # Sub-configurations
    store: StoreConfig = Field(default_factory=StoreConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    web: WebConfig = Field(default_factory=WebConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment wins over the YAML values passed as init data
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @property
    def db_path(self) -> Path:
        """Path to the local state database."""
        return self.data_dir / "usage_lens.db"

    @property
    def config_file(self) -> Path:
        """Path to YAML config file."""
        return self.config_dir / "config.yaml"

    def ensure_directories(self) -> None:
        """Create all required directories."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.config_dir.mkdir(parents=True, exist_ok=True)

        os.chmod(self.data_dir, 0o700)

    @classmethod
    def load(cls, config_path: Path | None = None) -> Config:
        """Load configuration from YAML file, environment variables, and defaults.

        Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values
        """
        config_path = config_path or Path.home() / ".config/usage-lens/config.yaml"

        yaml_config: dict[str, Any] = {}
        if config_path.exists():
            with open(config_path) as f:
                yaml_config = yaml.safe_load(f) or {}

        return cls(**yaml_config)

    def save(self, config_path: Path | None = None) -> None:
        """Save current configuration to YAML file."""
        config_path = config_path or self.config_file
        config_path.parent.mkdir(parents=True, exist_ok=True)

        # API key stays in the environment
        data = self.model_dump(
            mode="json",
            exclude={"store": {"api_key"}},
            exclude_none=True,
        )

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

        os.chmod(config_path, 0o600)


@lru_cache
def get_config() -> Config:
    """Get cached configuration instance."""
    return Config.load()
