"""Atrium configuration, read from environment variables.

Intervals and timeouts are given in milliseconds in the environment, matching
the ``settings`` block of the services document, and exposed in seconds.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _getenv_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def _getenv_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class AppConfig:
    host: str = "0.0.0.0"
    port: int = 3000
    data_dir: Path = Path("./data")
    config_path: Path | None = None
    container_name: str = "atrium"
    discovery_enabled: bool = False
    network_scan_enabled: bool = False
    health_check_interval_ms: int = 30000
    discovery_interval_ms: int = 60000
    health_check_timeout_ms: int = 5000
    service_info_timeout_ms: int = 3000
    health_check_delay_s: float = 5.0
    discovery_delay_s: float = 10.0
    scan_concurrency: int = 16
    session_ttl_s: int = 86400
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "AppConfig":
        config_path = os.environ.get("ATRIUM_CONFIG_PATH")
        return cls(
            host=os.environ.get("ATRIUM_HOST", "0.0.0.0"),
            port=_getenv_int("ATRIUM_PORT", 3000),
            data_dir=Path(os.environ.get("ATRIUM_DATA_DIR", "./data")),
            config_path=Path(config_path) if config_path else None,
            container_name=os.environ.get("ATRIUM_CONTAINER_NAME", "atrium"),
            discovery_enabled=_getenv_bool("SERVICE_DISCOVERY_ENABLED"),
            network_scan_enabled=_getenv_bool("NETWORK_SCAN_ENABLED"),
            health_check_interval_ms=_getenv_int("HEALTH_CHECK_INTERVAL", 30000),
            discovery_interval_ms=_getenv_int("DISCOVERY_INTERVAL", 60000),
            health_check_timeout_ms=_getenv_int("HEALTH_CHECK_TIMEOUT", 5000),
            service_info_timeout_ms=_getenv_int("SERVICE_INFO_TIMEOUT", 3000),
            scan_concurrency=_getenv_int("SCAN_CONCURRENCY", 16),
            session_ttl_s=_getenv_int("SESSION_TTL", 86400),
            log_level=os.environ.get("ATRIUM_LOG_LEVEL", "INFO").upper(),
        )

    @property
    def services_path(self) -> Path:
        """Location of the services document."""
        return self.config_path or self.data_dir / "services.json"

    @property
    def health_check_interval(self) -> float:
        return self.health_check_interval_ms / 1000

    @property
    def discovery_interval(self) -> float:
        return self.discovery_interval_ms / 1000

    @property
    def health_check_timeout(self) -> float:
        return self.health_check_timeout_ms / 1000

    @property
    def service_info_timeout(self) -> float:
        return self.service_info_timeout_ms / 1000
