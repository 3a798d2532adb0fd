"""Configuration management for NewRelic Exporter"""
import re
from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0, None: 1.0}

# Dotted YAML configuration keys mapped onto settings fields
YAML_KEYS = {
    "api.key": "api_key",
    "api.server": "api_server",
    "api.period": "period",
    "api.timeout": "timeout",
    "api.service": "service",
    "api.apps": "apps",
    "api.metric-filters": "metric_filters",
    "api.value-filters": "value_filters",
    "api.app-list-cache-time": "app_list_cache_time",
    "api.metric-names-cache-time": "metric_names_cache_time",
    "api.debug-proxy-address": "debug_proxy_address",
    "web.telemetry-path": "metrics_path",
}


def parse_duration(value: Any) -> float:
    """Parse a duration given as seconds or as a string like '30s', '5m', '500ms'"""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if isinstance(value, str):
        match = _DURATION_RE.match(value)
        if match:
            amount, unit = match.groups()
            return float(amount) * _DURATION_UNITS[unit]
    raise ValueError(f"Invalid duration: {value!r}")


class StaticApplication(BaseModel):
    """Application listed in configuration instead of discovered through the API"""
    id: int
    name: str


class Config(BaseSettings):
    """Configuration class with Pydantic validation and environment-based settings"""

    model_config = SettingsConfigDict(env_prefix="NEWRELIC_", case_sensitive=False)

    # NewRelic API settings
    api_key: str = Field(..., description="NewRelic REST API key (required)")
    api_server: str = Field(default="https://api.newrelic.com", description="NewRelic API base URL")
    period: int = Field(default=60, ge=0, description="Metric data period in seconds")
    timeout: float = Field(default=5.0, gt=0, description="Per-request timeout in seconds")
    service: str = Field(default="applications", description="NewRelic service to query")
    apps: List[StaticApplication] = Field(default_factory=list, description="Static application list")
    metric_filters: Annotated[List[str], NoDecode] = Field(default_factory=list, description="Metric name filters")
    value_filters: Annotated[List[str], NoDecode] = Field(default_factory=list, description="Metric value filters")

    # Cache settings
    app_list_cache_time: float = Field(default=3600.0, ge=0, description="Application list cache TTL in seconds")
    metric_names_cache_time: float = Field(default=3600.0, ge=0, description="Metric names cache TTL in seconds")

    # Concurrency
    max_workers: int = Field(default=16, ge=1, description="Max concurrent requests per fan-out")

    # Debugging
    debug_proxy_address: Optional[str] = Field(default=None, description="Insecure debug proxy URL")

    # Exposition server settings
    metrics_path: str = Field(default="/metrics", description="Metrics endpoint path")
    metrics_host: str = Field(default="0.0.0.0", description="Metrics server host")
    metrics_port: int = Field(default=9126, ge=1, le=65535, description="Metrics server port")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO", description="Log level")
    log_file: Optional[Path] = Field(default=None, description="Optional log file path")

    # Service settings
    service_name: str = Field(default="newrelic-exporter", description="Service name")
    service_version: str = Field(default="0.3.0", description="Service version")

    @field_validator("api_key", "service")
    @classmethod
    def validate_required(cls, v):
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v

    @field_validator("timeout", "app_list_cache_time", "metric_names_cache_time", mode="before")
    @classmethod
    def parse_durations(cls, v):
        return parse_duration(v)

    @field_validator("metric_filters", "value_filters", mode="before")
    @classmethod
    def parse_filters(cls, v):
        """Parse comma-separated list of filters"""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v or []

    @field_validator("metrics_path")
    @classmethod
    def validate_metrics_path(cls, v):
        if not v.startswith("/"):
            raise ValueError("metrics_path must start with '/'")
        return v

    @field_validator("log_file")
    @classmethod
    def ensure_log_directory(cls, v):
        """Ensure parent directory exists for the log file"""
        if isinstance(v, Path):
            v.parent.mkdir(parents=True, exist_ok=True)
        return v

    def has_static_apps(self) -> bool:
        """Check if the application list is configured statically"""
        return bool(self.apps)

    @property
    def listen_address(self) -> str:
        return f"{self.metrics_host}:{self.metrics_port}"


def _split_listen_address(address: str) -> Dict[str, Any]:
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"Invalid listen address: {address!r}")
    return {"metrics_host": host or "0.0.0.0", "metrics_port": int(port)}


def load_config(path: Path, **overrides: Any) -> Config:
    """Load configuration from a YAML file using the exporter's dotted keys"""
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ValueError(f"Config file {path} must contain a mapping")

    values: Dict[str, Any] = {}
    for key, value in raw.items():
        if key == "web.listen-address":
            values.update(_split_listen_address(str(value)))
        elif key in YAML_KEYS:
            values[YAML_KEYS[key]] = value
        else:
            raise ValueError(f"Unknown config key: {key}")

    values.update(overrides)
    return Config(**values)
