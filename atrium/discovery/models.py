"""Data model for the service registry.

:class:`ServiceRecord` and :class:`Category` are plain dataclasses that
round-trip through the camelCase JSON document written by
:class:`~atrium.discovery.config_store.ConfigStore`.  :class:`ServiceInfoPayload`
is the pydantic model used to parse the optional ``/service-info`` endpoint of
a probed service.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_ICON = "🔧"
DEFAULT_CATEGORY = "external"
DEFAULT_ROLES: tuple[str, ...] = ("user",)
DEFAULT_HEALTH_PATH = "/health"

# Known service ids → icon.  Anything else gets DEFAULT_ICON.
ICON_MAP: dict[str, str] = {
    "product-service": "📦",
    "user-service": "👤",
    "order-service": "🛒",
    "payment-service": "💳",
    "notification-service": "📧",
    "analytics-service": "📊",
}


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def default_icon(service_id: str) -> str:
    return ICON_MAP.get(service_id, DEFAULT_ICON)


def _as_list(data: dict[str, Any], key: str) -> list[Any]:
    """Value of *key* in *data* as a list; missing or null is empty."""
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"'{key}' must be a list, got {type(value).__name__}")
    return value


def _as_object(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"'{key}' must be an object, got {type(value).__name__}")
    return value


class ServiceStatus(str, enum.Enum):
    UNKNOWN = "unknown"
    ACTIVE = "active"
    INACTIVE = "inactive"


# attribute name → key in the persisted document
_RECORD_KEYS: dict[str, str] = {
    "id": "id",
    "name": "name",
    "description": "description",
    "url": "url",
    "external_url": "externalUrl",
    "icon": "icon",
    "category": "category",
    "status": "status",
    "required_roles": "requiredRoles",
    "is_internal": "isInternal",
    "is_auto_discovered": "isAutoDiscovered",
    "health_check": "healthCheck",
    "features": "features",
    "host": "host",
    "port": "port",
    "discovered_at": "discoveredAt",
    "last_seen": "lastSeen",
    "last_checked": "lastChecked",
    "last_updated": "lastUpdated",
}


@dataclass
class ServiceRecord:
    """A statically configured or discovered service.

    Records held by the store are never mutated in place; updates go through
    :func:`dataclasses.replace` so concurrent readers see either the old or
    the new record.
    """

    id: str
    name: str = ""
    description: str = ""
    url: str = ""
    external_url: str | None = None
    icon: str = DEFAULT_ICON
    category: str = DEFAULT_CATEGORY
    status: ServiceStatus = ServiceStatus.UNKNOWN
    required_roles: list[str] = field(default_factory=list)
    is_internal: bool = False
    is_auto_discovered: bool = False
    health_check: str | None = None
    features: list[str] = field(default_factory=list)
    host: str | None = None
    port: int | None = None
    discovered_at: str | None = None
    last_seen: str | None = None
    last_checked: str | None = None
    last_updated: str | None = None
    # Keys from the document this model does not know about; written back as-is.
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_public(self) -> bool:
        return not self.required_roles

    def health_url(self) -> str:
        return self.url.rstrip("/") + (self.health_check or DEFAULT_HEALTH_PATH)

    def visible_to(self, roles: set[str] | frozenset[str]) -> bool:
        """True when *roles* intersects ``required_roles`` or the record is public."""
        return self.is_public or bool(roles.intersection(self.required_roles))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for attr, key in _RECORD_KEYS.items():
            value = getattr(self, attr)
            if value is None:
                continue
            if isinstance(value, ServiceStatus):
                value = value.value
            elif isinstance(value, list):
                if attr == "features" and not value:
                    continue
                value = list(value)
            data[key] = value
        for key, value in self.extra.items():
            data.setdefault(key, value)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ServiceRecord":
        if not isinstance(data, dict):
            raise TypeError(f"service entry must be an object, got {type(data).__name__}")
        if not data.get("id"):
            raise ValueError("service entry is missing 'id'")
        known = set(_RECORD_KEYS.values())
        kwargs: dict[str, Any] = {}
        for attr, key in _RECORD_KEYS.items():
            if key in data:
                kwargs[attr] = data[key]
        kwargs["id"] = str(kwargs["id"])
        kwargs["status"] = ServiceStatus(kwargs.get("status", ServiceStatus.UNKNOWN.value))
        kwargs["required_roles"] = [str(r) for r in _as_list(data, "requiredRoles")]
        kwargs["features"] = [str(f) for f in _as_list(data, "features")]
        if kwargs.get("port") is not None:
            kwargs["port"] = int(kwargs["port"])
        kwargs["extra"] = {k: v for k, v in data.items() if k not in known}
        return cls(**kwargs)


@dataclass
class Category:
    id: str
    name: str
    description: str = ""
    icon: str = ""
    order: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "order": self.order,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Category":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", data["id"])),
            description=str(data.get("description", "")),
            icon=str(data.get("icon", "")),
            order=int(data.get("order", 0)),
        )


@dataclass
class Settings:
    """Discovery settings stored alongside the services.  Intervals are in ms."""

    auto_discovery: bool = True
    network_scan_enabled: bool = True
    scan_ports: list[int] = field(
        default_factory=lambda: [3000, 3001, 3002, 3003, 3004, 3005, 8000, 8080, 9000]
    )
    health_check_interval: int = 30000
    discovery_interval: int = 60000
    max_retries: int = 3
    timeout: int = 5000

    def to_dict(self) -> dict[str, Any]:
        return {
            "autoDiscovery": self.auto_discovery,
            "networkScanEnabled": self.network_scan_enabled,
            "scanPorts": list(self.scan_ports),
            "healthCheckInterval": self.health_check_interval,
            "discoveryInterval": self.discovery_interval,
            "maxRetries": self.max_retries,
            "timeout": self.timeout,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Settings":
        defaults = cls()
        return cls(
            auto_discovery=bool(data.get("autoDiscovery", defaults.auto_discovery)),
            network_scan_enabled=bool(
                data.get("networkScanEnabled", defaults.network_scan_enabled)
            ),
            scan_ports=(
                [int(p) for p in _as_list(data, "scanPorts")]
                if data.get("scanPorts") is not None
                else defaults.scan_ports
            ),
            health_check_interval=int(
                data.get("healthCheckInterval", defaults.health_check_interval)
            ),
            discovery_interval=int(data.get("discoveryInterval", defaults.discovery_interval)),
            max_retries=int(data.get("maxRetries", defaults.max_retries)),
            timeout=int(data.get("timeout", defaults.timeout)),
        )


@dataclass
class ConfigDocument:
    """In-memory form of the persisted services document."""

    internal_services: list[ServiceRecord] = field(default_factory=list)
    external_services: list[ServiceRecord] = field(default_factory=list)
    categories: list[Category] = field(default_factory=list)
    settings: Settings = field(default_factory=Settings)

    def to_dict(self) -> dict[str, Any]:
        return {
            "internalServices": [s.to_dict() for s in self.internal_services],
            "externalServices": [s.to_dict() for s in self.external_services],
            "categories": [c.to_dict() for c in self.categories],
            "settings": self.settings.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConfigDocument":
        return cls(
            internal_services=[
                ServiceRecord.from_dict(s) for s in _as_list(data, "internalServices")
            ],
            external_services=[
                ServiceRecord.from_dict(s) for s in _as_list(data, "externalServices")
            ],
            categories=[Category.from_dict(c) for c in _as_list(data, "categories")],
            settings=Settings.from_dict(_as_object(data, "settings")),
        )


class ServiceInfoPayload(BaseModel):
    """Self-description returned by ``GET /service-info``.

    Every field is optional; :meth:`to_record` applies the fallback rules for
    whatever the service left out.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str | None = None
    name: str | None = None
    description: str | None = None
    icon: str | None = None
    category: str | None = None
    required_roles: list[str] | None = Field(default=None, alias="requiredRoles")
    health_check: str | None = Field(default=None, alias="healthCheck")
    features: list[str] | None = None

    def to_record(
        self,
        fallback_id: str,
        url: str,
        host: str,
        port: int,
        now: str,
    ) -> ServiceRecord:
        service_id = self.id or fallback_id
        return ServiceRecord(
            id=service_id,
            name=self.name or f"External service ({fallback_id})",
            description=self.description or f"Service discovered on port {port}",
            url=url,
            external_url=f"/external/{service_id}",
            icon=self.icon or default_icon(fallback_id),
            category=self.category or DEFAULT_CATEGORY,
            status=ServiceStatus.ACTIVE,
            required_roles=list(
                self.required_roles if self.required_roles is not None else DEFAULT_ROLES
            ),
            is_internal=False,
            is_auto_discovered=True,
            health_check=self.health_check,
            features=list(self.features or []),
            host=host,
            port=port,
            discovered_at=now,
            last_seen=now,
        )


class ServiceSpec(BaseModel):
    """Fields accepted when an external service is registered by hand."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str = ""
    description: str = ""
    url: str = ""
    external_url: str | None = Field(default=None, alias="externalUrl")
    icon: str = DEFAULT_ICON
    category: str = DEFAULT_CATEGORY
    required_roles: list[str] = Field(default_factory=list, alias="requiredRoles")
    health_check: str | None = Field(default=None, alias="healthCheck")
    features: list[str] = Field(default_factory=list)
    host: str | None = None
    port: int | None = None

    def to_record(self, now: str) -> ServiceRecord:
        return ServiceRecord(
            id=self.id.strip(),
            name=self.name or self.id.strip(),
            description=self.description,
            url=self.url,
            external_url=self.external_url,
            icon=self.icon,
            category=self.category,
            status=ServiceStatus.UNKNOWN,
            required_roles=list(self.required_roles),
            is_internal=False,
            is_auto_discovered=False,
            health_check=self.health_check,
            features=list(self.features),
            host=self.host,
            port=self.port,
            last_updated=now,
        )
