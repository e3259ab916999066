"""Single HTTP request bounded by a hard timeout."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

logger = logging.getLogger(__name__)

# Health-class calls (health, readiness, version, shutdown)
DEFAULT_TIMEOUT_MS = 3000


class FetchStatus(str, Enum):
    """How a bounded request ended."""

    RESPONDED = "responded"
    TIMED_OUT = "timed_out"
    REFUSED = "refused"
    FAILED = "failed"


@dataclass
class FetchResult:
    """Outcome of fetch_with_timeout.

    response is only set when status is RESPONDED. Non-2xx responses are
    still RESPONDED; callers inspect ok / status_code themselves.
    """

    status: FetchStatus
    response: httpx.Response | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.response is not None and self.response.is_success

    @property
    def status_code(self) -> int | None:
        return self.response.status_code if self.response is not None else None


async def fetch_with_timeout(
    url: str,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    *,
    method: str = "GET",
    json: Any = None,
    headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FetchResult:
    """Issue one request and race it against a timer.

    Never raises for timeouts or transport errors; they come back as
    TIMED_OUT, REFUSED (nothing listening) or FAILED.

    Args:
        url: Full request URL
        timeout_ms: Hard deadline for the whole request
        method: HTTP method
        json: Optional JSON body
        headers: Optional request headers
        transport: Optional httpx transport (used to substitute the network)

    Returns:
        FetchResult describing the outcome
    """
    timeout_s = timeout_ms / 1000
    try:
        async with httpx.AsyncClient(timeout=timeout_s, transport=transport) as client:
            response = await asyncio.wait_for(
                client.request(method, url, json=json, headers=headers),
                timeout=timeout_s,
            )
    except asyncio.TimeoutError:
        logger.debug(f"{method} {url} timed out after {timeout_ms}ms")
        return FetchResult(status=FetchStatus.TIMED_OUT, error=f"timed out after {timeout_ms}ms")
    except httpx.TimeoutException as e:
        logger.debug(f"{method} {url} timed out: {e}")
        return FetchResult(status=FetchStatus.TIMED_OUT, error=str(e))
    except httpx.ConnectError as e:
        logger.debug(f"{method} {url} connection refused: {e}")
        return FetchResult(status=FetchStatus.REFUSED, error=str(e))
    except httpx.HTTPError as e:
        logger.debug(f"{method} {url} failed: {e}")
        return FetchResult(status=FetchStatus.FAILED, error=str(e))

    return FetchResult(status=FetchStatus.RESPONDED, response=response)
