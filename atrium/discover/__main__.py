"""Atrium one-shot service discovery.

Usage::

    python -m atrium.discover [--config PATH] [--ports 3001,8080] [--health]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from atrium.config import AppConfig
from atrium.discovery.config_store import ConfigStore
from atrium.discovery.containers import default_lister
from atrium.discovery.health import HealthCheckScheduler
from atrium.discovery.prober import HttpProber
from atrium.discovery.registry import ServiceRegistry
from atrium.discovery.scanner import NetworkScanner


def _parse_ports(raw: str) -> list[int]:
    try:
        return [int(p) for p in raw.split(",") if p.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port list: {raw!r}")


async def _run(args: argparse.Namespace, config: AppConfig) -> ServiceRegistry:
    registry = ServiceRegistry.bootstrap(ConfigStore(args.config or config.services_path))
    async with HttpProber(
        timeout=config.health_check_timeout,
        info_timeout=config.service_info_timeout,
    ) as prober:
        scanner = NetworkScanner(
            registry,
            prober,
            containers=default_lister(),
            scan_ports=args.ports,
            self_name=config.container_name,
            self_port=config.port,
        )
        stats = await scanner.scan_once()
        print(
            f"Scanned {stats['candidates']} endpoints: "
            f"{stats['responders']} responded, {stats['discovered']} new."
        )
        if args.health:
            health = HealthCheckScheduler(registry, prober, timeout=config.health_check_timeout)
            result = await health.check_once()
            print(
                f"Health check: {result['active']} active, "
                f"{result['inactive']} inactive of {result['checked']}."
            )
    return registry


def _print_table(registry: ServiceRegistry) -> None:
    rows = [
        (s.id, s.status.value, "internal" if s.is_internal else "external", s.url)
        for s in registry.list_all()
    ]
    header = ("ID", "STATUS", "KIND", "URL")
    widths = [max(len(str(r[i])) for r in [header, *rows]) for i in range(len(header))]
    print("  ".join(h.ljust(w) for h, w in zip(header, widths)))
    for row in rows:
        print("  ".join(str(c).ljust(w) for c, w in zip(row, widths)))


def main() -> None:
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")

    parser = argparse.ArgumentParser(
        prog="python -m atrium.discover",
        description="Run one Atrium network scan and print the service registry",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        type=Path,
        default=None,
        help="Services document (default: $ATRIUM_CONFIG_PATH or ./data/services.json)",
    )
    parser.add_argument(
        "--ports",
        type=_parse_ports,
        default=None,
        help="Comma-separated ports to scan (default: scanPorts from the document)",
    )
    parser.add_argument(
        "--health",
        action="store_true",
        help="Also run one health-check pass over external services",
    )
    args = parser.parse_args()

    try:
        registry = asyncio.run(_run(args, AppConfig.from_env()))
    except KeyboardInterrupt:
        print("\n\nDiscovery cancelled.")
        sys.exit(1)
    _print_table(registry)


if __name__ == "__main__":
    main()
