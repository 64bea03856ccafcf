"""Configuration management with persistence."""

import json
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_CONFIG_PATH = Path.home() / ".icaowx" / "config.json"


class FeedConfig(BaseModel):
    """Configuration for one upstream CSV feed."""
    enabled: bool = True
    url: str
    interval_seconds: int = Field(default=60, ge=10, le=7 * 86400, description="Delay after a finished run before the next one")


def _metar_feed() -> FeedConfig:
    return FeedConfig(url="https://aviationweather.gov/data/cache/metars.cache.csv")


def _taf_feed() -> FeedConfig:
    return FeedConfig(url="https://aviationweather.gov/data/cache/tafs.cache.csv")


def _airport_feed() -> FeedConfig:
    return FeedConfig(url="https://ourairports.com/data/airports.csv", interval_seconds=86400)


class FeedsConfig(BaseModel):
    """Configuration for all feeds."""
    metar: FeedConfig = Field(default_factory=_metar_feed)
    taf: FeedConfig = Field(default_factory=_taf_feed)
    airports: FeedConfig = Field(default_factory=_airport_feed)


class FetchConfig(BaseModel):
    """Configuration for outbound feed requests."""
    connect_timeout_seconds: float = Field(default=60.0, gt=0.0, le=600.0)
    total_timeout_seconds: float = Field(default=60.0, gt=0.0, le=600.0)
    user_agent: str = "icaowx/1.0"


class StorageConfig(BaseModel):
    """Configuration for the key-value backend."""
    backend: str = "valkey"  # valkey, memory
    host: str = "localhost"
    port: int = Field(default=6379, ge=1, le=65535)
    database_id: int = Field(default=0, ge=0)
    max_active: int = Field(default=10000, ge=1, description="Maximum number of commands in flight")
    request_timeout_ms: int = Field(default=5000, ge=100, le=60000)

    @field_validator('backend')
    @classmethod
    def validate_backend(cls, v):
        if v not in ["valkey", "memory"]:
            raise ValueError("backend must be one of: valkey, memory")
        return v


class ServerConfig(BaseModel):
    """Configuration for the HTTP API."""
    host: str = "127.0.0.1"
    port: int = Field(default=9990, ge=1024, le=65535)
    enable_cors: bool = True
    pretty_json: bool = True
    max_locations: int = Field(default=16, ge=1, le=256)
    # Kept for existing clients; "application/json" is the standard value.
    json_content_type: str = "application-json"
    static_dir: Optional[str] = None
    run_updater: bool = True


class LoggingConfig(BaseModel):
    """Configuration for logging."""
    level: str = "INFO"
    file: Optional[str] = None

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        v = v.upper()
        if v not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            raise ValueError("level must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL")
        return v


class AppConfig(BaseModel):
    """Main application configuration."""
    feeds: FeedsConfig = Field(default_factory=FeedsConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "AppConfig":
        """Load configuration from file."""
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        if config_path.exists():
            with open(config_path, "r") as f:
                data = json.load(f)
            return cls(**data)
        else:
            # Create default config
            config = cls()
            config.save(config_path)
            return config

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save configuration to file."""
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return self.model_dump()
