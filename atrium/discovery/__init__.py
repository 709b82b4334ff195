"""atrium.discovery — service registry, network scanner and health checks.

Exports:
    ServiceRecord         — dataclass for one registered service
    ServiceStatus         — unknown / active / inactive
    ServiceRegistry       — query/filter facade shared by handlers and tasks
    ConfigStore           — atomic JSON persistence of the services document
    NetworkScanner        — periodic probe-based discovery
    HealthCheckScheduler  — periodic liveness checks
    DiscoveryRuntime      — wires the registry and both tasks together
"""

from __future__ import annotations

from atrium.discovery.config_store import ConfigStore
from atrium.discovery.errors import (
    ConfigParseError,
    DuplicateIdError,
    NotFoundError,
    PersistenceError,
    ProbeTimeoutError,
    ProbeTransportError,
    RegistryError,
)
from atrium.discovery.health import HealthCheckScheduler
from atrium.discovery.models import Category, ServiceRecord, ServiceSpec, ServiceStatus
from atrium.discovery.registry import ServiceRegistry
from atrium.discovery.runtime import DiscoveryRuntime
from atrium.discovery.scanner import NetworkScanner

__all__ = [
    "Category",
    "ConfigParseError",
    "ConfigStore",
    "DiscoveryRuntime",
    "DuplicateIdError",
    "HealthCheckScheduler",
    "NetworkScanner",
    "NotFoundError",
    "PersistenceError",
    "ProbeTimeoutError",
    "ProbeTransportError",
    "RegistryError",
    "ServiceRecord",
    "ServiceRegistry",
    "ServiceSpec",
    "ServiceStatus",
]
