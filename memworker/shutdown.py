"""Best-effort administrative shutdown of a running worker."""

from __future__ import annotations

import logging

import httpx

from memworker.endpoint import WorkerEndpoint
from memworker.fetcher import DEFAULT_TIMEOUT_MS, FetchStatus, fetch_with_timeout

logger = logging.getLogger(__name__)

SHUTDOWN_PATH = "/api/admin/shutdown"


async def http_shutdown(
    endpoint: WorkerEndpoint,
    port: int,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    """Ask the worker on port to shut down.

    A refused connection means the worker was already stopped. That still
    returns False since this request stopped nothing; callers combine it with
    Supervisor.wait_for_port_free() to decide overall success.

    Args:
        endpoint: Shared worker endpoint
        port: Worker port
        timeout_ms: Per-request timeout
        transport: Optional httpx transport

    Returns:
        True if the worker acknowledged the request with a 2xx
    """
    host = endpoint.resolve_connect_host()
    url = f"{endpoint.base_url(port)}{SHUTDOWN_PATH}"
    result = await fetch_with_timeout(url, timeout_ms, method="POST", transport=transport)

    if result.status == FetchStatus.REFUSED:
        logger.debug(f"Worker already stopped ({host}:{port})")
        return False
    if result.status == FetchStatus.TIMED_OUT:
        logger.warning(f"Shutdown request timed out ({host}:{port})")
        return False
    if result.status == FetchStatus.FAILED:
        logger.debug(f"Shutdown request failed ({host}:{port}): {result.error}")
        return False
    if not result.ok:
        logger.warning(f"Shutdown request returned error ({host}:{port}): status={result.status_code}")
        return False

    logger.info(f"Worker acknowledged shutdown ({host}:{port})")
    return True
