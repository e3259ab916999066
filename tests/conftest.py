"""Pytest configuration and fixtures for memworker tests."""

import json
from dataclasses import dataclass, field
from pathlib import Path

import httpx
import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from memworker.endpoint import WorkerEndpoint
from memworker.prober import Prober
from memworker.settings import WorkerSettings
from memworker.supervisor import PollPolicy, Supervisor
from memworker.version import VersionReconciler


@dataclass
class FakeWorkerState:
    """Knobs and recordings for the fake worker."""

    healthy: bool = True
    ready_after: int = 1  # readiness succeeds from this call on
    readiness_calls: int = 0
    version: object = "1.2.3"
    shutdown_status: int = 200
    observation_status: int = 200
    requests: list[tuple[str, str, object]] = field(default_factory=list)


def build_fake_worker(state: FakeWorkerState) -> FastAPI:
    """FastAPI stand-in for the worker's HTTP contract."""
    app = FastAPI()

    async def _record(request: Request) -> None:
        body = await request.body()
        state.requests.append((request.method, request.url.path, json.loads(body) if body else None))

    @app.get("/api/health")
    async def health(request: Request):
        await _record(request)
        if not state.healthy:
            return JSONResponse({"status": "down"}, status_code=503)
        return {"status": "ok"}

    @app.get("/api/readiness")
    async def readiness(request: Request):
        await _record(request)
        state.readiness_calls += 1
        if state.readiness_calls < state.ready_after:
            return JSONResponse({"status": "initializing"}, status_code=503)
        return {"status": "ready"}

    @app.get("/api/version")
    async def version(request: Request):
        await _record(request)
        return {"version": state.version}

    @app.post("/api/admin/shutdown")
    async def shutdown(request: Request):
        await _record(request)
        return JSONResponse({"ok": state.shutdown_status == 200}, status_code=state.shutdown_status)

    @app.post("/api/sessions/observations")
    async def observations(request: Request):
        await _record(request)
        return JSONResponse({"ok": True}, status_code=state.observation_status)

    @app.post("/api/sessions/summarize")
    async def summarize(request: Request):
        await _record(request)
        return {"ok": True}

    return app


@pytest.fixture
def refused_transport() -> httpx.MockTransport:
    """Transport where every connection is refused."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("[Errno 111] Connection refused", request=request)

    return httpx.MockTransport(handler)


@pytest.fixture
def worker_state() -> FakeWorkerState:
    return FakeWorkerState()


@pytest.fixture
def worker_transport(worker_state: FakeWorkerState) -> httpx.ASGITransport:
    """Transport that routes requests into the fake worker app."""
    return httpx.ASGITransport(app=build_fake_worker(worker_state))


@pytest.fixture
def settings() -> WorkerSettings:
    return WorkerSettings(CLAUDE_MEM_WORKER_HOST="127.0.0.1", CLAUDE_MEM_WORKER_PORT="37777")


@pytest.fixture
def endpoint(settings: WorkerSettings, monkeypatch: pytest.MonkeyPatch) -> WorkerEndpoint:
    monkeypatch.delenv("CLAUDE_MEM_WORKER_URL", raising=False)
    return WorkerEndpoint(settings_loader=lambda: settings)


@pytest.fixture
def manifest_path(tmp_path: Path) -> Path:
    """Installed plugin manifest at version 1.2.3."""
    path = tmp_path / "plugin" / "package.json"
    path.parent.mkdir()
    path.write_text(json.dumps({"name": "memworker", "version": "1.2.3"}))
    return path


@pytest.fixture
def make_supervisor(endpoint: WorkerEndpoint, manifest_path: Path):
    """Build a Supervisor over a given transport with fast polling."""

    def _make(transport, interval_ms: int = 10, max_attempts: int = 15, wait_interval_ms: int = 20):
        prober = Prober(endpoint, timeout_ms=500, transport=transport)
        reconciler = VersionReconciler(endpoint, manifest_path=manifest_path, timeout_ms=500, transport=transport)
        return Supervisor(
            prober,
            reconciler,
            ensure_policy=PollPolicy(interval_ms=interval_ms, max_attempts=max_attempts),
            wait_interval_ms=wait_interval_ms,
        )

    return _make
