"""Peer container enumeration for the network scanner.

The scanner only needs container *names* on the shared network; how they are
listed depends on the environment.  :class:`DockerCliLister` shells out to
``docker ps``; :class:`NullContainerLister` is used where no container runtime
is available.
"""

from __future__ import annotations

import abc
import asyncio
import logging
import shutil

logger = logging.getLogger(__name__)


class ContainerListError(Exception):
    """Raised when the container runtime cannot be queried."""


class ContainerLister(abc.ABC):
    """Abstract source of peer container names."""

    @abc.abstractmethod
    async def list_peer_containers(self) -> list[str]:
        raise NotImplementedError


class NullContainerLister(ContainerLister):
    async def list_peer_containers(self) -> list[str]:
        return []


class StaticContainerLister(ContainerLister):
    """Fixed list of peer names (useful for compose setups without a docker socket)."""

    def __init__(self, names: list[str]) -> None:
        self.names = [n for n in names if n]

    async def list_peer_containers(self) -> list[str]:
        return list(self.names)


class DockerCliLister(ContainerLister):
    """Lists running containers via ``docker ps --format {{.Names}}``."""

    def __init__(self, docker_bin: str = "docker", timeout: float = 10.0) -> None:
        self.docker_bin = docker_bin
        self.timeout = timeout

    async def list_peer_containers(self) -> list[str]:
        try:
            proc = await asyncio.create_subprocess_exec(
                self.docker_bin, "ps", "--format", "{{.Names}}",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise ContainerListError(f"cannot run {self.docker_bin}: {exc}") from exc
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            proc.kill()
            raise ContainerListError("docker ps timed out") from exc
        if proc.returncode != 0:
            raise ContainerListError(
                f"docker ps exited {proc.returncode}: {stderr.decode(errors='replace').strip()}"
            )
        return [line.strip() for line in stdout.decode().splitlines() if line.strip()]


def default_lister() -> ContainerLister:
    """Docker CLI lister when ``docker`` is on PATH, else a no-op lister."""
    if shutil.which("docker"):
        return DockerCliLister()
    logger.info("docker CLI not found; container scan disabled")
    return NullContainerLister()
