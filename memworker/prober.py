"""Single-shot liveness and readiness probes against the worker."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from memworker.endpoint import WorkerEndpoint
from memworker.fetcher import DEFAULT_TIMEOUT_MS, FetchStatus, fetch_with_timeout

logger = logging.getLogger(__name__)

HEALTH_PATH = "/api/health"
READINESS_PATH = "/api/readiness"


@dataclass
class ProbeResult:
    """Result of one probe attempt."""

    reachable: bool
    ready: bool
    http_status: int | None = None
    status: FetchStatus = FetchStatus.RESPONDED


class Prober:
    """Health and readiness checks. One request per call, no retries.

    Reachable means the process accepts connections. Ready means it has
    finished initializing and can serve business requests; a worker can be
    reachable but not ready.
    """

    def __init__(
        self,
        endpoint: WorkerEndpoint,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.endpoint = endpoint
        self.timeout_ms = timeout_ms
        self.transport = transport

    async def probe_health(self, port: int | None = None) -> ProbeResult:
        """GET the health endpoint. Ready is never claimed from liveness alone."""
        url = f"{self.endpoint.base_url(port)}{HEALTH_PATH}"
        result = await fetch_with_timeout(url, self.timeout_ms, transport=self.transport)
        return ProbeResult(
            reachable=result.ok,
            ready=False,
            http_status=result.status_code,
            status=result.status,
        )

    async def probe_readiness(self, port: int | None = None) -> ProbeResult:
        """GET the readiness endpoint.

        Any response at all proves the process is reachable; only a 2xx
        proves it is ready.
        """
        url = f"{self.endpoint.base_url(port)}{READINESS_PATH}"
        result = await fetch_with_timeout(url, self.timeout_ms, transport=self.transport)
        return ProbeResult(
            reachable=result.status == FetchStatus.RESPONDED,
            ready=result.ok,
            http_status=result.status_code,
            status=result.status,
        )

    async def is_reachable(self, port: int | None = None) -> bool:
        return (await self.probe_health(port)).reachable

    async def is_ready(self, port: int | None = None) -> bool:
        return (await self.probe_readiness(port)).ready
