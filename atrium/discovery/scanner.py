"""Network discovery scanner.

Probes every peer container on the shared network plus the loopback host
across a list of ports.  Anything answering ``GET /health`` with 200 is
registered; ``GET /service-info`` supplies display metadata when the service
offers it.

Absence is the normal case here, so misses are only logged at debug level.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from atrium.discovery.containers import ContainerLister, NullContainerLister
from atrium.discovery.errors import DuplicateIdError, PersistenceError
from atrium.discovery.models import ServiceInfoPayload, ServiceRecord, utcnow
from atrium.discovery.periodic import PeriodicTask
from atrium.discovery.prober import HttpProber
from atrium.discovery.registry import ServiceRegistry

logger = logging.getLogger(__name__)

LOOPBACK_HOSTS: tuple[str, ...] = ("localhost", "127.0.0.1")


@dataclass(frozen=True)
class Candidate:
    """One host × port pair to probe."""

    host: str
    port: int
    fallback_id: str

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


class NetworkScanner(PeriodicTask):
    """Periodic HTTP probe-based service discovery.

    Args:
        registry:     Registry new services are recorded in.
        prober:       Shared HTTP probe client.
        containers:   Source of peer container names.
        scan_ports:   Ports tried on every candidate host.
        self_name:    This process's container name (never probed).
        self_port:    This process's listening port (skipped on loopback).
        interval:     Seconds between passes.
        initial_delay: Seconds before the first pass, to let peers boot.
        concurrency:  Maximum probes in flight at once.
        stop_event:   Shared cancellation token.
    """

    name = "network-scanner"

    def __init__(
        self,
        registry: ServiceRegistry,
        prober: HttpProber,
        containers: ContainerLister | None = None,
        scan_ports: list[int] | None = None,
        self_name: str | None = None,
        self_port: int | None = None,
        interval: float = 60.0,
        initial_delay: float = 10.0,
        concurrency: int = 16,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        super().__init__(interval, initial_delay, stop_event)
        self.registry = registry
        self.prober = prober
        self.containers = containers or NullContainerLister()
        self.scan_ports = list(scan_ports if scan_ports is not None else registry.settings.scan_ports)
        self.self_name = self_name
        self.self_port = self_port
        self.concurrency = max(1, concurrency)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def run_once(self) -> dict[str, Any]:
        return await self.scan_once()

    async def scan_once(self) -> dict[str, Any]:
        """Run one discovery pass.

        Returns: ``{candidates, responders, discovered, refreshed}``
        """
        candidates = await self.candidates()
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(candidate: Candidate) -> str | None:
            async with semaphore:
                return await self.check_candidate(candidate)

        results = await asyncio.gather(*(_bounded(c) for c in candidates))

        stats = {
            "candidates": len(candidates),
            "responders": sum(1 for r in results if r is not None),
            "discovered": results.count("discovered"),
            "refreshed": results.count("refreshed"),
        }
        logger.info(
            "Network scan complete: %d candidates, %d responders, %d new",
            stats["candidates"], stats["responders"], stats["discovered"],
        )
        return stats

    async def candidates(self) -> list[Candidate]:
        """Every peer container and loopback host paired with every scan port."""
        try:
            names = await self.containers.list_peer_containers()
        except Exception as exc:
            logger.warning("Container listing failed, scanning loopback only: %s", exc)
            names = []

        result: list[Candidate] = []
        for name in dict.fromkeys(names):
            if name == self.self_name:
                continue
            for port in self.scan_ports:
                result.append(Candidate(host=name, port=port, fallback_id=name))
        for host in LOOPBACK_HOSTS:
            for port in self.scan_ports:
                if port == self.self_port:
                    continue
                result.append(Candidate(host=host, port=port, fallback_id=f"local-{port}"))
        return result

    async def check_candidate(self, candidate: Candidate) -> str | None:
        """Probe one candidate and record it if it is alive.

        Returns ``"discovered"``, ``"refreshed"``, ``"skipped"`` or ``None``
        when nothing answered.
        """
        if not await self.prober.probe_base(candidate.base_url):
            return None

        payload = await self.prober.fetch_service_info(candidate.base_url)
        record = self.build_record(candidate, payload)
        try:
            # record_discovery may block on a document save
            _, created = await asyncio.to_thread(self.registry.record_discovery, record)
        except DuplicateIdError:
            logger.debug("%s answers as internal service %s; ignored", candidate.base_url, record.id)
            return "skipped"
        except PersistenceError as exc:
            logger.error("Discovered %s but could not save it: %s", record.id, exc)
            return "discovered"
        return "discovered" if created else "refreshed"

    @staticmethod
    def build_record(candidate: Candidate, payload: ServiceInfoPayload | None) -> ServiceRecord:
        payload = payload or ServiceInfoPayload()
        return payload.to_record(
            fallback_id=candidate.fallback_id,
            url=candidate.base_url,
            host=candidate.host,
            port=candidate.port,
            now=utcnow(),
        )
