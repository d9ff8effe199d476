"""
GPU Monitoring Configuration

Endpoint, listener and logging settings for the API server.
Override with environment variables for flexibility.
"""

import os
from dataclasses import dataclass, field
from typing import List


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass
class MonitorConfig:
    """Configuration for the GPU monitoring API."""

    # Prometheus (upstream metrics backend)
    prometheus_url: str = "http://localhost:9090"

    # Listener
    host: str = "0.0.0.0"
    port: int = 8080

    # Timeouts in seconds
    query_timeout: float = 30.0
    health_timeout: float = 5.0

    # Frontend
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    static_dir: str = "./static"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    def __post_init__(self):
        # Load from environment variables
        self.prometheus_url = os.getenv("PROMETHEUS_URL") or self.prometheus_url
        self.host = os.getenv("HOST") or self.host
        self.port = _env_int("PORT", self.port)
        self.query_timeout = _env_float("QUERY_TIMEOUT", self.query_timeout)
        self.health_timeout = _env_float("HEALTH_TIMEOUT", self.health_timeout)
        self.static_dir = os.getenv("STATIC_DIR") or self.static_dir
        self.log_level = (os.getenv("GPU_MONITOR_LOG_LEVEL") or self.log_level).upper()
        self.log_json = os.getenv("GPU_MONITOR_LOG_JSON", str(self.log_json)).lower() == "true"

        origins = os.getenv("CORS_ORIGINS")
        if origins:
            self.cors_origins = [o.strip() for o in origins.split(",") if o.strip()]


def get_config() -> MonitorConfig:
    """Build configuration from the current environment."""
    return MonitorConfig()
