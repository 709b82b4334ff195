"""In-memory service record store.

Two partitions share one id namespace: the *internal* partition holds the
statically configured services seeded at startup, the *external* partition
holds manually registered and auto-discovered services.
"""

from __future__ import annotations

import dataclasses
import threading

from atrium.discovery.errors import DuplicateIdError
from atrium.discovery.models import ServiceRecord, ServiceStatus


class ServiceStore:
    """Thread-safe, dict-backed registry of :class:`ServiceRecord` objects.

    Every mutating call takes the lock for its whole check-and-write, and
    records are swapped rather than edited so that a concurrent reader gets
    either the previous or the updated record.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._internal: dict[str, ServiceRecord] = {}
        self._external: dict[str, ServiceRecord] = {}

    # ------------------------------------------------------------------ #
    # Mutations
    # ------------------------------------------------------------------ #

    def upsert_internal(self, record: ServiceRecord) -> ServiceRecord:
        """Insert or replace *record* in the internal partition.

        Raises:
            DuplicateIdError: the id already belongs to an external service.
        """
        record = dataclasses.replace(record, is_internal=True, is_auto_discovered=False)
        with self._lock:
            if record.id in self._external:
                raise DuplicateIdError(record.id)
            self._internal[record.id] = record
        return record

    def upsert_external(self, record: ServiceRecord) -> tuple[ServiceRecord, bool]:
        """Insert or replace *record* in the external partition.

        When the id is already held by an auto-discovered record only the
        liveness fields (``status``, ``last_seen``, ``last_checked``) are taken
        from *record*; display metadata keeps its first-seen values.

        Returns:
            ``(stored_record, created)``.

        Raises:
            DuplicateIdError: the id belongs to an internal service.
        """
        record = dataclasses.replace(record, is_internal=False)
        with self._lock:
            if record.id in self._internal:
                raise DuplicateIdError(record.id)
            existing = self._external.get(record.id)
            if existing is not None and existing.is_auto_discovered:
                updated = dataclasses.replace(
                    existing,
                    status=record.status,
                    last_seen=record.last_seen or existing.last_seen,
                    last_checked=record.last_checked or existing.last_checked,
                )
                self._external[record.id] = updated
                return updated, False
            self._external[record.id] = record
            return record, existing is None

    def insert_external(self, record: ServiceRecord) -> ServiceRecord:
        """Insert *record* only if its id is unused in both partitions."""
        record = dataclasses.replace(record, is_internal=False)
        with self._lock:
            if record.id in self._internal or record.id in self._external:
                raise DuplicateIdError(record.id)
            self._external[record.id] = record
        return record

    def set_status(
        self,
        service_id: str,
        status: ServiceStatus,
        checked_at: str,
    ) -> ServiceRecord | None:
        """Record a probe outcome for an external service.

        Returns the updated record, or ``None`` if *service_id* is not in the
        external partition (internal services are never touched).
        """
        with self._lock:
            existing = self._external.get(service_id)
            if existing is None:
                return None
            changes: dict = {"status": status, "last_checked": checked_at}
            if status is ServiceStatus.ACTIVE:
                changes["last_seen"] = checked_at
            updated = dataclasses.replace(existing, **changes)
            self._external[service_id] = updated
            return updated

    def remove(self, service_id: str) -> bool:
        """Remove an external service.  Internal or unknown ids return ``False``."""
        with self._lock:
            return self._external.pop(service_id, None) is not None

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def get(self, service_id: str) -> ServiceRecord | None:
        with self._lock:
            return self._internal.get(service_id) or self._external.get(service_id)

    def all(self) -> list[ServiceRecord]:
        """All records, internal first, each partition in insertion order."""
        with self._lock:
            return [*self._internal.values(), *self._external.values()]

    def all_internal(self) -> list[ServiceRecord]:
        with self._lock:
            return list(self._internal.values())

    def all_external(self) -> list[ServiceRecord]:
        with self._lock:
            return list(self._external.values())

    def __contains__(self, service_id: object) -> bool:
        with self._lock:
            return service_id in self._internal or service_id in self._external

    def __len__(self) -> int:
        with self._lock:
            return len(self._internal) + len(self._external)
