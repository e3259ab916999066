"""Tests for the supervisor and the bounded-poll primitive."""

import asyncio
import logging
import time

import httpx
import pytest

from memworker.prober import Prober
from memworker.supervisor import PollPolicy, Supervisor, poll_until
from memworker.version import VersionReconciler


def _flip_transport(free_after_s: float) -> httpx.MockTransport:
    """Health answers until free_after_s has passed, then connections are refused."""
    start = time.monotonic()

    def handler(request):
        if time.monotonic() - start >= free_after_s:
            raise httpx.ConnectError("Connection refused", request=request)
        return httpx.Response(200, json={"status": "ok"})

    return httpx.MockTransport(handler)


class TestPollPolicy:
    """Test policy validation."""

    def test_requires_a_bound(self):
        with pytest.raises(ValueError):
            PollPolicy(interval_ms=100)


class TestPollUntil:
    """Test the bounded-poll primitive."""

    @pytest.mark.asyncio
    async def test_stops_on_first_success(self):
        calls = []

        async def probe():
            calls.append(1)
            return len(calls) >= 3

        assert await poll_until(probe, PollPolicy(interval_ms=1, max_attempts=10)) is True
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_attempt_budget(self):
        calls = []

        async def probe():
            calls.append(1)
            return False

        assert await poll_until(probe, PollPolicy(interval_ms=1, max_attempts=4)) is False
        assert len(calls) == 4

    @pytest.mark.asyncio
    async def test_custom_predicate(self):
        async def probe():
            return "busy"

        assert await poll_until(probe, PollPolicy(interval_ms=1, max_attempts=2), predicate=lambda v: v == "idle") is False

    @pytest.mark.asyncio
    async def test_attempts_never_overlap(self):
        """Each attempt finishes before the next one starts."""
        in_flight = 0
        max_in_flight = 0

        async def probe():
            nonlocal in_flight, max_in_flight
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
            await asyncio.sleep(0.02)
            in_flight -= 1
            return False

        await poll_until(probe, PollPolicy(interval_ms=1, deadline_ms=150))
        assert max_in_flight == 1

    @pytest.mark.asyncio
    async def test_deadline_uses_wall_clock(self):
        """Slow attempts count against the deadline."""
        calls = []

        async def probe():
            calls.append(1)
            await asyncio.sleep(0.1)
            return False

        start = time.monotonic()
        assert await poll_until(probe, PollPolicy(interval_ms=10, deadline_ms=250)) is False
        elapsed_ms = (time.monotonic() - start) * 1000

        assert elapsed_ms >= 250
        assert len(calls) <= 3


class TestEnsureRunning:
    """Test the short attempt-budget readiness check."""

    @pytest.mark.asyncio
    async def test_ready_immediately(self, make_supervisor, worker_state, worker_transport):
        supervisor = make_supervisor(worker_transport)
        assert await supervisor.ensure_running() is True
        assert worker_state.readiness_calls == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("n", [2, 5, 15])
    async def test_ready_on_nth_attempt(self, make_supervisor, worker_state, worker_transport, n):
        """Returns True on the Nth attempt and stops polling there."""
        worker_state.ready_after = n
        supervisor = make_supervisor(worker_transport)

        assert await supervisor.ensure_running() is True
        assert worker_state.readiness_calls == n

    @pytest.mark.asyncio
    async def test_timing_with_default_interval(self, endpoint, manifest_path, worker_state, worker_transport):
        """Success on attempt N takes at least (N-1) x 200ms."""
        worker_state.ready_after = 3
        supervisor = Supervisor(
            Prober(endpoint, transport=worker_transport),
            VersionReconciler(endpoint, manifest_path=manifest_path, transport=worker_transport),
        )

        start = time.monotonic()
        assert await supervisor.ensure_running() is True
        elapsed_ms = (time.monotonic() - start) * 1000

        assert elapsed_ms >= 2 * 200
        assert elapsed_ms < 15 * 200

    @pytest.mark.asyncio
    async def test_never_ready_returns_false(self, make_supervisor, worker_state, worker_transport):
        worker_state.ready_after = 1000
        supervisor = make_supervisor(worker_transport)

        assert await supervisor.ensure_running() is False
        assert worker_state.readiness_calls == 15

    @pytest.mark.asyncio
    async def test_unreachable_within_budget(self, endpoint, manifest_path, refused_transport):
        """With the default budget the whole check stays under 15 x 200ms plus slack."""
        supervisor = Supervisor(
            Prober(endpoint, transport=refused_transport),
            VersionReconciler(endpoint, manifest_path=manifest_path, transport=refused_transport),
        )

        start = time.monotonic()
        assert await supervisor.ensure_running() is False
        elapsed_ms = (time.monotonic() - start) * 1000

        assert elapsed_ms >= 14 * 200
        assert elapsed_ms < 15 * 200 + 1000

    @pytest.mark.asyncio
    async def test_failure_logs_warning(self, make_supervisor, refused_transport, caplog):
        supervisor = make_supervisor(refused_transport, interval_ms=10)

        with caplog.at_level(logging.WARNING, logger="memworker.supervisor"):
            await supervisor.ensure_running()

        assert "http://127.0.0.1:37777" in caplog.text
        assert "150ms" in caplog.text

    @pytest.mark.asyncio
    async def test_version_checked_after_success(self, make_supervisor, worker_state, worker_transport):
        supervisor = make_supervisor(worker_transport)

        await supervisor.ensure_running()

        paths = [path for _, path, _ in worker_state.requests]
        assert paths == ["/api/readiness", "/api/version"]

    @pytest.mark.asyncio
    async def test_version_mismatch_only_logged(self, make_supervisor, worker_state, worker_transport, caplog):
        """A stale worker is reported, never restarted from here."""
        worker_state.version = "0.9.0"
        supervisor = make_supervisor(worker_transport)

        with caplog.at_level(logging.DEBUG, logger="memworker.supervisor"):
            assert await supervisor.ensure_running() is True

        assert "mismatch" in caplog.text
        methods = {method for method, _, _ in worker_state.requests}
        assert methods == {"GET"}

    @pytest.mark.asyncio
    async def test_missing_manifest_does_not_fail(self, endpoint, tmp_path, worker_transport, caplog):
        supervisor = Supervisor(
            Prober(endpoint, transport=worker_transport),
            VersionReconciler(endpoint, manifest_path=tmp_path / "missing.json", transport=worker_transport),
        )

        with caplog.at_level(logging.WARNING, logger="memworker.supervisor"):
            assert await supervisor.ensure_running() is True

        assert "Skipping worker version check" in caplog.text

    @pytest.mark.asyncio
    async def test_undecodable_manifest_does_not_fail(self, endpoint, tmp_path, worker_transport, caplog):
        """A manifest that isn't UTF-8 is reported, and the ready worker still counts as ready."""
        manifest = tmp_path / "package.json"
        manifest.write_bytes(b'{"version": "\xff"}')
        supervisor = Supervisor(
            Prober(endpoint, transport=worker_transport),
            VersionReconciler(endpoint, manifest_path=manifest, transport=worker_transport),
        )

        with caplog.at_level(logging.WARNING, logger="memworker.supervisor"):
            assert await supervisor.ensure_running() is True

        assert "Skipping worker version check" in caplog.text


class TestWaitForHealth:
    """Test waiting for a fresh worker to boot."""

    @pytest.mark.asyncio
    async def test_becomes_ready(self, make_supervisor, worker_state, worker_transport):
        worker_state.ready_after = 3
        supervisor = make_supervisor(worker_transport)

        assert await supervisor.wait_for_health(37777, timeout_ms=2000) is True
        assert worker_state.readiness_calls == 3

    @pytest.mark.asyncio
    async def test_times_out_after_deadline(self, endpoint, manifest_path, refused_transport):
        """Never-ready worker returns False only after the full deadline."""
        supervisor = Supervisor(
            Prober(endpoint, transport=refused_transport),
            VersionReconciler(endpoint, manifest_path=manifest_path, transport=refused_transport),
        )

        start = time.monotonic()
        assert await supervisor.wait_for_health(37777, 1000) is False
        elapsed_ms = (time.monotonic() - start) * 1000

        assert elapsed_ms >= 1000
        assert elapsed_ms < 1000 + 1000

    @pytest.mark.asyncio
    async def test_reachable_is_not_enough(self, make_supervisor, worker_state, worker_transport):
        """Health alone never satisfies wait_for_health."""
        worker_state.ready_after = 10_000
        supervisor = make_supervisor(worker_transport)

        assert await supervisor.wait_for_health(37777, timeout_ms=200) is False
        paths = {path for _, path, _ in worker_state.requests}
        assert paths == {"/api/readiness"}


class TestWaitForPortFree:
    """Test waiting for a stopped worker to release its port."""

    @pytest.mark.asyncio
    async def test_port_in_use_for_whole_deadline(self, make_supervisor, worker_transport):
        supervisor = make_supervisor(worker_transport)

        start = time.monotonic()
        assert await supervisor.wait_for_port_free(37777, 1000) is False
        assert (time.monotonic() - start) * 1000 >= 1000

    @pytest.mark.asyncio
    async def test_port_frees_midway(self, endpoint, manifest_path):
        """Port flips to free after 300ms; detected before the deadline."""
        transport = _flip_transport(0.3)
        supervisor = Supervisor(
            Prober(endpoint, transport=transport),
            VersionReconciler(endpoint, manifest_path=manifest_path, transport=transport),
            wait_interval_ms=50,
        )

        start = time.monotonic()
        assert await supervisor.wait_for_port_free(37777, 1000) is True
        elapsed_ms = (time.monotonic() - start) * 1000

        assert 300 <= elapsed_ms < 1000

    @pytest.mark.asyncio
    async def test_unhealthy_answer_counts_as_free(self, make_supervisor, worker_state, worker_transport):
        worker_state.healthy = False
        supervisor = make_supervisor(worker_transport)

        assert await supervisor.wait_for_port_free(37777, 1000) is True

    @pytest.mark.asyncio
    async def test_free_immediately(self, make_supervisor, refused_transport):
        supervisor = make_supervisor(refused_transport)
        assert await supervisor.wait_for_port_free(37777) is True
