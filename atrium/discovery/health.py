"""Health-check scheduler — periodic liveness probes for external services."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from atrium.discovery.models import ServiceRecord, ServiceStatus
from atrium.discovery.periodic import PeriodicTask
from atrium.discovery.prober import HttpProber
from atrium.discovery.registry import ServiceRegistry

logger = logging.getLogger(__name__)


class HealthCheckScheduler(PeriodicTask):
    """Probes every non-internal service and flips it ``active``/``inactive``.

    Internal services are never probed.  All probes of a pass run
    concurrently, so one unreachable service costs at most one timeout.
    """

    name = "health-check"

    def __init__(
        self,
        registry: ServiceRegistry,
        prober: HttpProber,
        interval: float = 30.0,
        initial_delay: float = 5.0,
        timeout: float | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        super().__init__(interval, initial_delay, stop_event)
        self.registry = registry
        self.prober = prober
        self.timeout = timeout

    async def run_once(self) -> dict[str, Any]:
        return await self.check_once()

    async def check_once(self) -> dict[str, Any]:
        """Run one health-check pass.

        Returns: ``{checked, active, inactive}``
        """
        targets = [s for s in self.registry.list_all() if not s.is_internal]
        outcomes = await asyncio.gather(*(self.check_service(s) for s in targets))
        stats = {
            "checked": sum(1 for o in outcomes if o is not None),
            "active": outcomes.count(ServiceStatus.ACTIVE),
            "inactive": outcomes.count(ServiceStatus.INACTIVE),
        }
        logger.debug(
            "Health check complete: %d checked, %d active, %d inactive",
            stats["checked"], stats["active"], stats["inactive"],
        )
        return stats

    async def check_service(self, service: ServiceRecord) -> ServiceStatus | None:
        """Probe one service and record the outcome.

        Returns the new status, or None if the service disappeared meanwhile.
        """
        url = service.health_url()
        healthy = await self.prober.check_health(url, self.timeout)
        if not healthy:
            logger.warning("%s health check failed (%s)", service.id, url)
        updated = self.registry.record_health(service.id, healthy)
        return updated.status if updated is not None else None
