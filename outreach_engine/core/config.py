"""
Configuration Management
Loads engine settings from YAML files and environment variables
"""
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings
import yaml


logger = logging.getLogger(__name__)


class EngineSettings(BaseSettings):
    """Engine settings loaded from environment (and .env)"""

    environment: str = "development"
    debug: bool = False
    config_dir: Optional[str] = None  # Overrides the packaged YAML directory

    # Lead generation pacing
    lead_retry_interval_hours: int = 6
    lead_daily_retry_hour: int = 9
    lead_daily_retry_minute: int = 0
    lead_fetch_page_size: int = 100
    lead_max_page_attempts: int = 10
    default_leads_per_day: int = 50
    default_search_source: str = "apollo_io"

    # Scheduler
    scheduler_interval_seconds: int = 60
    max_concurrent_campaigns: int = 5
    campaign_lease_ttl_seconds: int = 900

    # Workflow
    condition_lookback: int = 10
    strict_step_types: bool = False

    # Calendar-day boundary for the daily gate
    timezone: str = "UTC"

    # Connections
    supabase_url: Optional[str] = None
    supabase_service_key: Optional[str] = None
    redis_url: str = "redis://localhost:6379"
    step_executor_url: str = "http://localhost:8000/api/v1/campaign-steps/execute"
    lead_source_urls: Dict[str, str] = {}
    # Sources that drop exclude_ids server-side; the rest are deduplicated locally
    server_side_exclusion_sources: List[str] = []
    service_api_key: Optional[str] = None
    http_timeout_seconds: float = 30.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


def _read_yaml(path: Path) -> Dict[str, Any]:
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _merge_into(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    for key, value in override.items():
        if isinstance(base.get(key), dict) and isinstance(value, dict):
            _merge_into(base[key], value)
        else:
            base[key] = value


def _expand_env(value: Any) -> Any:
    """Replace "${VAR}" strings with the variable's value when it is set"""
    if isinstance(value, dict):
        return {key: _expand_env(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_env(item) for item in value]
    if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
        return os.getenv(value[2:-1], value)
    return value


class ConfigManager:
    """
    Layered YAML configuration: default.yaml, then {environment}.yaml.

    The YAML files ship inside the package; CONFIG_DIR points at a
    deployment-specific directory instead.
    """

    PACKAGE_CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"

    def __init__(self, env: str = "development", config_dir: Optional[Path] = None):
        self.env = env
        self.config_dir = Path(config_dir) if config_dir else self.PACKAGE_CONFIG_DIR

        merged: Dict[str, Any] = {}
        for name in ("default", env):
            path = self.config_dir / f"{name}.yaml"
            if path.exists():
                _merge_into(merged, _read_yaml(path))

        if not merged:
            logger.warning(f"No engine YAML found in {self.config_dir}, using built-in defaults")
        self._config: Dict[str, Any] = _expand_env(merged)

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Look up a value by dotted path
        Example: config.get("engine.lead_fetch_page_size") -> 100
        """
        value: Any = self._config
        for key in key_path.split("."):
            if not isinstance(value, dict) or key not in value:
                return default
            value = value[key]
        return value


class EngineConfig(BaseModel):
    """
    Immutable engine configuration passed into the scheduler and services.

    Built once at startup; business code never reads the environment.
    """
    lead_retry_interval_hours: int = Field(default=6, gt=0)
    lead_daily_retry_hour: int = Field(default=9, ge=0, le=23)
    lead_daily_retry_minute: int = Field(default=0, ge=0, le=59)
    lead_fetch_page_size: int = Field(default=100, gt=0)
    lead_max_page_attempts: int = Field(default=10, gt=0)
    default_leads_per_day: int = Field(default=50, gt=0)
    default_search_source: str = "apollo_io"
    scheduler_interval_seconds: int = Field(default=60, gt=0)
    max_concurrent_campaigns: int = Field(default=5, gt=0)
    campaign_lease_ttl_seconds: int = Field(default=900, gt=0)
    condition_lookback: int = Field(default=10, gt=0)
    strict_step_types: bool = False
    timezone: str = "UTC"

    model_config = {"frozen": True}

    @classmethod
    def from_sources(
        cls,
        settings: EngineSettings,
        config_manager: Optional[ConfigManager] = None
    ) -> "EngineConfig":
        """
        Combine YAML defaults with environment settings.

        Values from the `engine:` YAML section override the built-in defaults;
        variables explicitly set in the environment override both.
        """
        values = {name: getattr(settings, name) for name in cls.model_fields}

        yaml_engine = config_manager.get("engine", {}) if config_manager else {}
        for name, value in (yaml_engine or {}).items():
            if name in cls.model_fields and name not in settings.model_fields_set:
                values[name] = value

        return cls(**values)


@lru_cache()
def get_settings() -> EngineSettings:
    """Get cached engine settings"""
    return EngineSettings()


def load_engine_config(settings: Optional[EngineSettings] = None) -> EngineConfig:
    """Build the engine configuration for the current environment"""
    settings = settings or get_settings()
    return EngineConfig.from_sources(settings, ConfigManager(env=settings.environment, config_dir=settings.config_dir))
