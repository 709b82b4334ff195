"""Service registry facade.

:class:`ServiceRegistry` is the one object request handlers, the scanner and
the health-check scheduler share.  It owns the in-memory
:class:`~atrium.discovery.store.ServiceStore` and writes every
external-partition change through the
:class:`~atrium.discovery.config_store.ConfigStore`.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Iterable

from atrium.discovery.config_store import ConfigStore, default_document
from atrium.discovery.errors import (
    ConfigParseError,
    DuplicateIdError,
    NotFoundError,
    PersistenceError,
)
from atrium.discovery.models import (
    Category,
    ConfigDocument,
    ServiceRecord,
    ServiceSpec,
    ServiceStatus,
    Settings,
    utcnow,
)
from atrium.discovery.store import ServiceStore

logger = logging.getLogger(__name__)


class ServiceRegistry:
    """Query/filter facade over the service store.

    Args:
        config_store: Persistence adapter for the services document.
        document:     Already-loaded document to seed from.  Use
                      :meth:`bootstrap` to load it from *config_store*.
    """

    def __init__(
        self,
        config_store: ConfigStore,
        document: ConfigDocument | None = None,
    ) -> None:
        self._config_store = config_store
        self._store = ServiceStore()
        self._persist_lock = threading.Lock()
        document = document or default_document()
        self._categories: list[Category] = list(document.categories)
        self._settings: Settings = document.settings
        self._seed(document)

    @classmethod
    def bootstrap(cls, config_store: ConfigStore) -> "ServiceRegistry":
        """Load the persisted document and build a registry from it.

        A corrupt document is logged and replaced by the defaults in memory;
        the file itself is only overwritten by the next successful save.
        """
        try:
            document = config_store.load()
        except ConfigParseError as exc:
            logger.warning(
                "Services document %s is unreadable (%s); using defaults",
                config_store.path, exc,
            )
            document = default_document()
        registry = cls(config_store, document)
        logger.info(
            "Service registry loaded: %d internal, %d external",
            len(registry.list_internal()), len(registry.list_external()),
        )
        return registry

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def list_all(self) -> list[ServiceRecord]:
        """Every service, internal first."""
        return self._store.all()

    def list_internal(self) -> list[ServiceRecord]:
        return self._store.all_internal()

    def list_external(self) -> list[ServiceRecord]:
        return self._store.all_external()

    def list_active(self) -> list[ServiceRecord]:
        return [s for s in self._store.all() if s.status is ServiceStatus.ACTIVE]

    def list_for_roles(self, roles: Iterable[str]) -> list[ServiceRecord]:
        """Active services visible to a caller holding *roles*.

        A service with no ``required_roles`` is public and always included.
        """
        caller = frozenset(roles)
        return [s for s in self.list_active() if s.visible_to(caller)]

    def get_service(self, service_id: str) -> ServiceRecord:
        record = self._store.get(service_id)
        if record is None:
            raise NotFoundError(service_id)
        return record

    def list_categories(self) -> list[Category]:
        return sorted(self._categories, key=lambda c: (c.order, c.id))

    @property
    def settings(self) -> Settings:
        return self._settings

    def __contains__(self, service_id: object) -> bool:
        return service_id in self._store

    # ------------------------------------------------------------------ #
    # Mutations
    # ------------------------------------------------------------------ #

    def register_external(self, spec: ServiceSpec | dict[str, Any]) -> ServiceRecord:
        """Register an external service by hand.

        The new record starts as ``unknown`` until the health-check scheduler
        probes it.

        Raises:
            ValueError:       ``spec.id`` is empty.
            DuplicateIdError: the id is already registered.
            PersistenceError: the document could not be saved (the
                              registration is rolled back).
        """
        if isinstance(spec, dict):
            spec = ServiceSpec.model_validate(spec)
        if not spec.id or not spec.id.strip():
            raise ValueError("service id must not be empty")
        record = self._store.insert_external(spec.to_record(utcnow()))
        try:
            self.persist()
        except PersistenceError:
            self._store.remove(record.id)
            raise
        logger.info("External service registered: %s", record.id)
        return record

    def unregister(self, service_id: str) -> bool:
        """Remove an external service.  Returns False if nothing was removed.

        Raises:
            PersistenceError: the document could not be saved (the removal is
                              rolled back).
        """
        previous = self._store.get(service_id)
        if not self._store.remove(service_id):
            return False
        try:
            self.persist()
        except PersistenceError:
            if previous is not None:
                self._store.upsert_external(previous)
            raise
        logger.info("Service removed: %s", service_id)
        return True

    # ------------------------------------------------------------------ #
    # Scanner / scheduler hooks
    # ------------------------------------------------------------------ #

    def record_discovery(self, record: ServiceRecord) -> tuple[ServiceRecord, bool]:
        """Store a service the scanner found answering its health probe.

        New ids are persisted immediately.  Known ids, whether discovered
        earlier or registered by hand, only get their liveness fields
        refreshed.

        Returns:
            ``(stored_record, created)``.

        Raises:
            DuplicateIdError: the id belongs to an internal service.
            PersistenceError: a newly discovered service could not be saved;
                              it stays registered in memory.
        """
        existing = self._store.get(record.id)
        if existing is not None and not existing.is_internal and not existing.is_auto_discovered:
            refreshed = self._store.set_status(
                record.id, ServiceStatus.ACTIVE, record.last_seen or utcnow()
            )
            if refreshed is not None:
                return refreshed, False
        stored, created = self._store.upsert_external(record)
        if created:
            logger.info("New service discovered: %s (%s)", stored.id, stored.url)
            self.persist()
        return stored, created

    def record_health(self, service_id: str, healthy: bool) -> ServiceRecord | None:
        """Apply a health-check outcome.  Returns None for unknown/internal ids."""
        before = self._store.get(service_id)
        status = ServiceStatus.ACTIVE if healthy else ServiceStatus.INACTIVE
        updated = self._store.set_status(service_id, status, utcnow())
        if updated is None:
            return None
        if before is not None and before.status is not status:
            logger.info("%s: %s -> %s", service_id, before.status.value, status.value)
        return updated

    def persist(self) -> None:
        """Write the full document (internal seeds, externals, categories, settings)."""
        with self._persist_lock:
            document = ConfigDocument(
                internal_services=self._store.all_internal(),
                external_services=self._store.all_external(),
                categories=list(self._categories),
                settings=self._settings,
            )
            self._config_store.save(document)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _seed(self, document: ConfigDocument) -> None:
        for record in document.internal_services:
            self._store.upsert_internal(record)
        for record in document.external_services:
            try:
                self._store.insert_external(record)
            except DuplicateIdError:
                logger.warning("Skipping duplicate service id in document: %s", record.id)
