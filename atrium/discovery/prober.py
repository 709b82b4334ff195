"""HTTP probe client used by the scanner and the health-check scheduler.

Uses httpx for async HTTP.  Every request is bounded by a total timeout;
timeouts and transport failures surface as :class:`ProbeTimeoutError` /
:class:`ProbeTransportError` from :meth:`HttpProber.get`, while the
higher-level helpers fold them into a plain "absent" answer.
"""

from __future__ import annotations

import asyncio
import logging

import httpx
from pydantic import ValidationError

from atrium.discovery.errors import ProbeError, ProbeTimeoutError, ProbeTransportError
from atrium.discovery.models import DEFAULT_HEALTH_PATH, ServiceInfoPayload

logger = logging.getLogger(__name__)

SERVICE_INFO_PATH = "/service-info"


class HttpProber:
    """Thin async wrapper around :class:`httpx.AsyncClient` for liveness probes.

    A single client is reused across probes for connection pooling.  Call
    :meth:`aclose` (or use as an async context manager) when done.

    Args:
        timeout:      Per-probe timeout for health checks, in seconds.
        info_timeout: Timeout for ``/service-info`` fetches, in seconds.
        transport:    Optional httpx transport (tests pass a ``MockTransport``).
    """

    def __init__(
        self,
        timeout: float = 5.0,
        info_timeout: float = 3.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self.info_timeout = info_timeout
        # Probes go straight to peers; never through an env-configured proxy.
        self._client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=False,
            trust_env=False,
            transport=transport,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client and free resources."""
        await self._client.aclose()

    async def __aenter__(self) -> "HttpProber":
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def get(self, url: str, timeout: float | None = None) -> httpx.Response:
        """GET *url* within *timeout* seconds overall.

        Raises:
            ProbeTimeoutError:   the request did not finish in time.
            ProbeTransportError: connection refused, DNS failure, etc.
        """
        limit = self.timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(self._client.get(url, timeout=limit), timeout=limit)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise ProbeTimeoutError(f"GET {url} timed out after {limit}s") from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise ProbeTransportError(f"GET {url} failed: {exc}") from exc

    async def check_health(self, url: str, timeout: float | None = None) -> bool:
        """Return True only when *url* answers 200 within the timeout."""
        try:
            response = await self.get(url, timeout)
        except ProbeError as exc:
            logger.debug("probe miss: %s", exc)
            return False
        if response.status_code != 200:
            logger.debug("probe miss: %s -> HTTP %d", url, response.status_code)
            return False
        return True

    async def probe_base(self, base_url: str) -> bool:
        """Health-check a bare ``scheme://host:port`` address."""
        return await self.check_health(base_url.rstrip("/") + DEFAULT_HEALTH_PATH)

    async def fetch_service_info(self, base_url: str) -> ServiceInfoPayload | None:
        """Fetch and parse ``/service-info``.

        Missing endpoints, non-200 answers and payloads that are not a JSON
        object matching :class:`ServiceInfoPayload` all return ``None``.
        """
        url = base_url.rstrip("/") + SERVICE_INFO_PATH
        try:
            response = await self.get(url, self.info_timeout)
        except ProbeError as exc:
            logger.debug("no service-info: %s", exc)
            return None
        if response.status_code != 200:
            return None
        try:
            data = response.json()
        except ValueError:
            logger.debug("service-info at %s is not JSON", url)
            return None
        if not isinstance(data, dict):
            return None
        try:
            return ServiceInfoPayload.model_validate(data)
        except ValidationError as exc:
            logger.debug("service-info at %s rejected: %s", url, exc)
            return None
