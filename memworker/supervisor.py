"""Bounded polling over the prober: is the worker usable, and has it reached a state."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from memworker.prober import Prober
from memworker.version import ManifestError, VersionReconciler

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ensure_running: 15 x 200ms, about 3 seconds so hooks never block long
ENSURE_MAX_ATTEMPTS = 15
ENSURE_POLL_INTERVAL_MS = 200

WAIT_POLL_INTERVAL_MS = 500
HEALTH_TIMEOUT_MS = 30000
PORT_FREE_TIMEOUT_MS = 10000


@dataclass(frozen=True)
class PollPolicy:
    """Bounds for a polling loop.

    Attributes:
        interval_ms: Sleep between attempts
        deadline_ms: Wall-clock limit measured from the start of the loop
        max_attempts: Limit on the number of probe calls
    """

    interval_ms: int
    deadline_ms: int | None = None
    max_attempts: int | None = None

    def __post_init__(self) -> None:
        if self.deadline_ms is None and self.max_attempts is None:
            raise ValueError("PollPolicy needs deadline_ms or max_attempts")


async def poll_until(
    probe: Callable[[], Awaitable[T]],
    policy: PollPolicy,
    predicate: Callable[[T], bool] = bool,
    label: str = "condition",
) -> bool:
    """Call probe until predicate(result) holds or the policy is exhausted.

    Attempts never overlap: the next one starts only after the previous
    result (success, failure or timeout) is known. A new attempt starts only
    while the elapsed time is under the deadline.

    Args:
        probe: Coroutine function performing a single attempt
        policy: Interval and bounds
        predicate: Success test applied to each probe result
        label: Description used in log messages

    Returns:
        True on the first successful attempt, False when the bounds run out
    """
    start = time.monotonic()
    attempt = 0

    while True:
        if policy.deadline_ms is not None and (time.monotonic() - start) * 1000 >= policy.deadline_ms:
            return False

        attempt += 1
        if predicate(await probe()):
            return True

        if policy.max_attempts is not None and attempt >= policy.max_attempts:
            return False

        logger.debug(f"Waiting for {label}, will retry (attempt {attempt})")
        await asyncio.sleep(policy.interval_ms / 1000)


class Supervisor:
    """Answers "can I use the worker right now" and "did it reach state X in time".

    Every operation returns a bool. A False result means the caller should
    carry on without the worker, not abort.
    """

    def __init__(
        self,
        prober: Prober,
        reconciler: VersionReconciler,
        ensure_policy: PollPolicy | None = None,
        wait_interval_ms: int = WAIT_POLL_INTERVAL_MS,
    ):
        """Initialize the supervisor.

        Args:
            prober: Single-shot health/readiness prober
            reconciler: Version reconciler used after ensure_running succeeds
            ensure_policy: Attempt budget for ensure_running
            wait_interval_ms: Sleep between attempts in the wait_* operations
        """
        self.prober = prober
        self.reconciler = reconciler
        self.ensure_policy = ensure_policy or PollPolicy(
            interval_ms=ENSURE_POLL_INTERVAL_MS,
            max_attempts=ENSURE_MAX_ATTEMPTS,
        )
        self.wait_interval_ms = wait_interval_ms

    async def ensure_running(self) -> bool:
        """Poll readiness until the worker is usable or the attempt budget is spent."""
        ready = await poll_until(
            self.prober.is_ready,
            self.ensure_policy,
            label="worker readiness",
        )
        if ready:
            await self._log_version_check()
            return True

        budget_ms = self.ensure_policy.interval_ms * (self.ensure_policy.max_attempts or 0)
        logger.warning(
            f"Worker not reachable at {self.prober.endpoint.resolve_url()} after {budget_ms}ms "
            "- memory features disabled for this session"
        )
        return False

    async def wait_for_health(self, port: int, timeout_ms: int = HEALTH_TIMEOUT_MS) -> bool:
        """Wait for a freshly started worker to pass its readiness check."""
        return await poll_until(
            lambda: self.prober.is_ready(port),
            PollPolicy(interval_ms=self.wait_interval_ms, deadline_ms=timeout_ms),
            label=f"worker ready on port {port}",
        )

    async def wait_for_port_free(self, port: int, timeout_ms: int = PORT_FREE_TIMEOUT_MS) -> bool:
        """Wait until nothing answers health checks on port."""
        return await poll_until(
            lambda: self.prober.is_reachable(port),
            PollPolicy(interval_ms=self.wait_interval_ms, deadline_ms=timeout_ms),
            predicate=_is_false,
            label=f"port {port} to be free",
        )

    async def _log_version_check(self) -> None:
        # Report only: restarting a stale worker belongs to the lifecycle manager
        try:
            check = await self.reconciler.check_version_match()
        except ManifestError as e:
            logger.warning(f"Skipping worker version check: {e}")
            return

        if not check.matches:
            logger.debug(
                f"Worker version mismatch: plugin={check.expected_version} "
                f"worker={check.observed_version} (worker start command handles restart)"
            )


def _is_false(value: Any) -> bool:
    return not value
