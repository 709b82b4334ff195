"""Tests for PeriodicTask loops and DiscoveryRuntime start/stop."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from atrium.config import AppConfig
from atrium.discovery.containers import NullContainerLister
from atrium.discovery.periodic import PeriodicTask
from atrium.discovery.runtime import DiscoveryRuntime


class _Counter(PeriodicTask):
    name = "counter"

    def __init__(self, *args, fail_first: bool = False, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.passes = 0
        self.concurrent = 0
        self.max_concurrent = 0
        self.fail_first = fail_first

    async def run_once(self) -> dict:
        self.concurrent += 1
        self.max_concurrent = max(self.max_concurrent, self.concurrent)
        try:
            self.passes += 1
            if self.fail_first and self.passes == 1:
                raise RuntimeError("boom")
            await asyncio.sleep(0.01)
            return {"passes": self.passes}
        finally:
            self.concurrent -= 1


class _Hanging(PeriodicTask):
    name = "hanging"

    async def run_once(self) -> dict:
        await asyncio.sleep(3600)
        return {}


class TestPeriodicTask:
    def test_initial_state(self):
        task = _Counter(interval=30)
        assert task.running is False
        assert task.last_run is None
        assert task.interval == 30

    async def test_start_and_stop(self):
        task = _Counter(interval=0.01)
        await task.start()
        assert task.running is True
        await asyncio.sleep(0.1)
        await task.stop()
        assert task.running is False
        assert task.passes >= 2
        assert task.last_run is not None

    async def test_stop_is_idempotent(self):
        task = _Counter(interval=1)
        await task.stop()
        assert task.running is False

    async def test_double_start(self):
        task = _Counter(interval=60, initial_delay=60)
        await task.start()
        first = task._task
        await task.start()
        assert task._task is first
        await task.stop()

    async def test_initial_delay(self):
        task = _Counter(interval=0.01, initial_delay=60)
        await task.start()
        await asyncio.sleep(0.05)
        assert task.passes == 0
        await task.stop()

    async def test_passes_never_overlap(self):
        task = _Counter(interval=0)
        await task.start()
        await asyncio.sleep(0.1)
        await task.stop()
        assert task.max_concurrent == 1

    async def test_failed_pass_does_not_end_loop(self):
        task = _Counter(interval=0.01, fail_first=True)
        await task.start()
        await asyncio.sleep(0.1)
        await task.stop()
        assert task.passes >= 2
        assert task.last_result is not None

    async def test_shared_stop_token(self):
        token = asyncio.Event()
        a = _Counter(interval=0.01, stop_event=token)
        b = _Counter(interval=0.01, stop_event=token)
        await a.start()
        await b.start()
        await asyncio.sleep(0.05)
        token.set()
        await asyncio.sleep(0.05)
        assert a.running is False
        assert b.running is False

    async def test_stop_abandons_in_flight_pass(self):
        task = _Hanging(interval=1)
        await task.start()
        await asyncio.sleep(0.01)
        await asyncio.wait_for(task.stop(), timeout=1)
        assert task.running is False


class TestDiscoveryRuntime:
    def _config(self, tmp_path, **kwargs) -> AppConfig:
        kwargs.setdefault("health_check_delay_s", 60)
        kwargs.setdefault("discovery_delay_s", 60)
        return AppConfig(data_dir=tmp_path, **kwargs)

    async def test_disabled_starts_nothing(self, tmp_path):
        runtime = DiscoveryRuntime(self._config(tmp_path))
        await runtime.start()
        assert runtime.health is None
        assert runtime.scanner is None
        await runtime.stop()

    async def test_health_only(self, tmp_path):
        runtime = DiscoveryRuntime(self._config(tmp_path, discovery_enabled=True))
        await runtime.start()
        assert runtime.health is not None and runtime.health.running
        assert runtime.scanner is None
        await runtime.stop()
        assert not runtime.health.running

    async def test_health_and_scan(self, tmp_path):
        runtime = DiscoveryRuntime(
            self._config(tmp_path, discovery_enabled=True, network_scan_enabled=True),
            containers=NullContainerLister(),
        )
        await runtime.start()
        assert runtime.scanner is not None and runtime.scanner.running
        assert runtime.scanner.self_port == 3000
        assert runtime.scanner.concurrency == 16
        await runtime.stop()
        assert not runtime.scanner.running

    async def test_scan_concurrency_from_config(self, tmp_path):
        config = self._config(
            tmp_path, discovery_enabled=True, network_scan_enabled=True, scan_concurrency=3
        )
        runtime = DiscoveryRuntime(config, containers=NullContainerLister())
        await runtime.start()
        assert runtime.scanner.concurrency == 3
        await runtime.stop()

    async def test_document_settings_can_disable_scan(self, tmp_path):
        config = self._config(tmp_path, discovery_enabled=True, network_scan_enabled=True)
        runtime = DiscoveryRuntime(config, containers=NullContainerLister())
        runtime.registry.settings.network_scan_enabled = False
        await runtime.start()
        assert runtime.scanner is None
        await runtime.stop()

    async def test_stop_closes_prober(self, tmp_path):
        runtime = DiscoveryRuntime(self._config(tmp_path))
        runtime.prober.aclose = AsyncMock()
        await runtime.stop()
        runtime.prober.aclose.assert_awaited_once()

    def test_bootstraps_document(self, tmp_path):
        runtime = DiscoveryRuntime(self._config(tmp_path))
        assert (tmp_path / "services.json").is_file()
        assert len(runtime.registry.list_internal()) == 3


@pytest.fixture(autouse=True)
def _quiet_env(monkeypatch):
    for name in ("SERVICE_DISCOVERY_ENABLED", "NETWORK_SCAN_ENABLED"):
        monkeypatch.delenv(name, raising=False)
