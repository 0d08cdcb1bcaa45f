"""Application configuration.

Values come from (highest priority first) keyword arguments, environment
variables prefixed with ``SLIDEFOX_`` (nested with ``__``, e.g.
``SLIDEFOX_RUNTIME__API_KEY``) and an optional ``config.yaml``.
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "SLIDEFOX_CONFIG"


class RuntimeConfig(BaseModel):
    """Remote agent runtime that hosts the presentation agent."""

    base_url: str = Field(default="http://localhost:8080", description="Agent runtime API base URL")
    api_key: str = Field(default="", description="Agent runtime API key")
    agent_id: str = Field(default="", description="Id of the presentation agent")
    image_tool_name: str = Field(default="generate_image", description="Name of the runtime's image generation tool")
    register_slide_tools: bool = Field(default=True, description="Expose the slide store tools on every trigger")
    request_timeout: int = Field(default=300, description="Trigger stream timeout in seconds")


class StoreConfig(BaseModel):
    max_sessions: int | None = Field(default=None, description="Evict least recently used presentations above this")


class RateLimitConfig(BaseModel):
    enabled: bool = False
    redis_url: str | None = Field(default=None, description="Redis URL; in-memory window when unset")
    limit: int = Field(default=20, description="Requests allowed per window")
    window_seconds: int = Field(default=3600, description="Sliding window length")
    prefix: str = "slidefox"


class ExportConfig(BaseModel):
    page_mode: Literal["fixed", "native"] = "fixed"
    fetch_timeout: float = 30.0


class RefetchConfig(BaseModel):
    """Debounce of store snapshot refetches while the chat streams."""

    streaming_delay: float = 1.0
    settled_delay: float = 0.1


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8010
    log_level: str = "INFO"
    history_path: str = Field(default="data/history.json", description="Local session history file")


class GlobalConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SLIDEFOX_", env_nested_delimiter="__", extra="ignore")

    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)
    refetch: RefetchConfig = Field(default_factory=RefetchConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "GlobalConfig":
        """Load a YAML config file. Environment variables still take priority."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        settings = cls()
        merged = _deep_merge(data, settings.model_dump(exclude_unset=True))
        return cls.model_validate(merged)


def _deep_merge(base: dict, override: dict) -> dict:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


@lru_cache
def get_config() -> GlobalConfig:
    path = os.environ.get(CONFIG_PATH_ENV, "config.yaml")
    if Path(path).exists():
        logger.info(f"Loading configuration from {path}")
        return GlobalConfig.from_yaml(path)
    return GlobalConfig()


def setup_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or get_config().server.log_level).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
