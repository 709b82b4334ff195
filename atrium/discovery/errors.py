"""Error taxonomy for the service registry."""

from __future__ import annotations


class RegistryError(Exception):
    """Base error for registry operations."""


class DuplicateIdError(RegistryError):
    """Raised when a service id is already taken in either partition."""

    def __init__(self, service_id: str) -> None:
        super().__init__(f"Service id already registered: {service_id}")
        self.service_id = service_id


class NotFoundError(RegistryError):
    """Raised when a lookup names an unknown service id."""

    def __init__(self, service_id: str) -> None:
        super().__init__(f"Service not found: {service_id}")
        self.service_id = service_id


class ConfigParseError(RegistryError):
    """Raised when the persisted services document cannot be parsed."""


class PersistenceError(RegistryError):
    """Raised when the services document cannot be written."""


class ProbeError(Exception):
    """Base error for a failed HTTP probe."""


class ProbeTimeoutError(ProbeError):
    """Raised when a probe exceeds its timeout."""


class ProbeTransportError(ProbeError):
    """Raised on connection/transport failures during a probe."""
