"""Tests for HealthCheckScheduler — status transitions and probe isolation."""

from __future__ import annotations

import time

from atrium.discovery.health import HealthCheckScheduler
from atrium.discovery.models import ServiceStatus


class TestCheckOnce:
    async def test_internal_services_never_probed(self, registry, prober, network):
        scheduler = HealthCheckScheduler(registry, prober)
        stats = await scheduler.check_once()
        assert stats == {"checked": 0, "active": 0, "inactive": 0}
        assert network.calls == []
        assert all(s.status is ServiceStatus.ACTIVE for s in registry.list_internal())

    async def test_success_marks_active(self, registry, prober, network):
        network.endpoints["wiki:3001"] = {}
        registry.register_external({"id": "wiki", "url": "http://wiki:3001"})
        stats = await HealthCheckScheduler(registry, prober).check_once()
        assert stats["active"] == 1
        record = registry.get_service("wiki")
        assert record.status is ServiceStatus.ACTIVE
        assert record.last_checked is not None
        assert network.calls == ["http://wiki:3001/health"]

    async def test_failure_marks_inactive(self, registry, prober, network):
        network.endpoints["wiki:3001"] = {"health": 500}
        registry.register_external({"id": "wiki", "url": "http://wiki:3001"})
        await HealthCheckScheduler(registry, prober).check_once()
        assert registry.get_service("wiki").status is ServiceStatus.INACTIVE

    async def test_unreachable_marks_inactive(self, registry, prober):
        registry.register_external({"id": "gone", "url": "http://gone:9999"})
        await HealthCheckScheduler(registry, prober).check_once()
        assert registry.get_service("gone").status is ServiceStatus.INACTIVE

    async def test_missing_url_marks_inactive(self, registry, prober):
        registry.register_external({"id": "nourl"})
        await HealthCheckScheduler(registry, prober).check_once()
        assert registry.get_service("nourl").status is ServiceStatus.INACTIVE

    async def test_custom_health_path(self, registry, prober, network):
        network.endpoints["api:8000"] = {"health": 404, "paths": {"/status/live": 200}}
        registry.register_external(
            {"id": "api", "url": "http://api:8000", "healthCheck": "/status/live"}
        )
        await HealthCheckScheduler(registry, prober).check_once()
        assert registry.get_service("api").status is ServiceStatus.ACTIVE
        assert network.calls == ["http://api:8000/status/live"]

    async def test_recovers_after_failure(self, registry, prober, network):
        network.endpoints["wiki:3001"] = {"health": 503}
        registry.register_external({"id": "wiki", "url": "http://wiki:3001"})
        scheduler = HealthCheckScheduler(registry, prober)
        await scheduler.check_once()
        assert registry.get_service("wiki").status is ServiceStatus.INACTIVE
        network.endpoints["wiki:3001"] = {}
        await scheduler.check_once()
        assert registry.get_service("wiki").status is ServiceStatus.ACTIVE

    async def test_slow_service_does_not_delay_others(self, registry, prober, network):
        network.endpoints["slow:1"] = {"delay": 5}
        for n in range(5):
            network.endpoints[f"fast{n}:1"] = {}
            registry.register_external({"id": f"fast{n}", "url": f"http://fast{n}:1"})
        registry.register_external({"id": "slow", "url": "http://slow:1"})

        scheduler = HealthCheckScheduler(registry, prober, timeout=0.3)
        started = time.monotonic()
        stats = await scheduler.check_once()
        elapsed = time.monotonic() - started

        assert stats == {"checked": 6, "active": 5, "inactive": 1}
        assert registry.get_service("slow").status is ServiceStatus.INACTIVE
        # one timeout for the whole pass, not one per service
        assert elapsed < 2.0

    async def test_service_removed_mid_pass(self, registry, prober, network):
        network.endpoints["wiki:3001"] = {}
        registry.register_external({"id": "wiki", "url": "http://wiki:3001"})
        scheduler = HealthCheckScheduler(registry, prober)
        service = registry.get_service("wiki")
        registry.unregister("wiki")
        assert await scheduler.check_service(service) is None
        assert "wiki" not in registry
