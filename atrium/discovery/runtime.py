"""Wires the registry, the prober and both background tasks together."""

from __future__ import annotations

import asyncio
import logging

from atrium.config import AppConfig
from atrium.discovery.config_store import ConfigStore
from atrium.discovery.containers import ContainerLister, default_lister
from atrium.discovery.health import HealthCheckScheduler
from atrium.discovery.prober import HttpProber
from atrium.discovery.registry import ServiceRegistry
from atrium.discovery.scanner import NetworkScanner

logger = logging.getLogger(__name__)


class DiscoveryRuntime:
    """Owns the background tasks for one :class:`ServiceRegistry`.

    The health-check scheduler runs when discovery is enabled; the network
    scanner additionally requires network scanning to be enabled both in
    :class:`AppConfig` and in the document's settings.  Both tasks share one
    stop token.
    """

    def __init__(
        self,
        config: AppConfig,
        registry: ServiceRegistry | None = None,
        prober: HttpProber | None = None,
        containers: ContainerLister | None = None,
    ) -> None:
        self.config = config
        self.registry = registry or ServiceRegistry.bootstrap(ConfigStore(config.services_path))
        self.prober = prober or HttpProber(
            timeout=config.health_check_timeout,
            info_timeout=config.service_info_timeout,
        )
        self._containers = containers
        self._stop = asyncio.Event()
        self.health: HealthCheckScheduler | None = None
        self.scanner: NetworkScanner | None = None

    @property
    def scan_allowed(self) -> bool:
        settings = self.registry.settings
        return (
            self.config.network_scan_enabled
            and settings.auto_discovery
            and settings.network_scan_enabled
        )

    async def start(self) -> None:
        if not self.config.discovery_enabled:
            logger.info("Service discovery disabled; background tasks not started")
            return
        self._stop.clear()
        self.health = HealthCheckScheduler(
            self.registry,
            self.prober,
            interval=self.config.health_check_interval,
            initial_delay=self.config.health_check_delay_s,
            timeout=self.config.health_check_timeout,
            stop_event=self._stop,
        )
        await self.health.start()
        if self.scan_allowed:
            self.scanner = NetworkScanner(
                self.registry,
                self.prober,
                containers=self._containers or default_lister(),
                self_name=self.config.container_name,
                self_port=self.config.port,
                interval=self.config.discovery_interval,
                initial_delay=self.config.discovery_delay_s,
                concurrency=self.config.scan_concurrency,
                stop_event=self._stop,
            )
            await self.scanner.start()

    async def stop(self) -> None:
        """Signal both tasks, cancel in-flight passes and close the prober."""
        self._stop.set()
        for task in (self.scanner, self.health):
            if task is not None:
                await task.stop()
        await self.prober.aclose()
