"""Worker address resolution with a memoized host/port."""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable

import httpx

from memworker.settings import SettingsError, WorkerSettings, load_settings

logger = logging.getLogger(__name__)

WORKER_URL_ENV = "CLAUDE_MEM_WORKER_URL"
WILDCARD_HOST = "0.0.0.0"
LOOPBACK_HOST = "127.0.0.1"
LOCAL_HOSTS = (LOOPBACK_HOST, "localhost")


def _check_url(url: str) -> None:
    """Raise SettingsError unless url is an absolute http(s) URL httpx can parse."""
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, ValueError) as e:
        raise SettingsError(f"{WORKER_URL_ENV} is not a valid URL: {url!r}: {e}") from e
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise SettingsError(f"{WORKER_URL_ENV} must be an http(s) URL: {url!r}")


class WorkerEndpoint:
    """Resolves where the worker lives.

    Host and port are read from settings once and memoized until
    invalidate_cache() is called. The CLAUDE_MEM_WORKER_URL override is read
    from the environment on every call and always wins over host:port.
    """

    def __init__(self, settings_loader: Callable[[], WorkerSettings] = load_settings):
        """Initialize the endpoint.

        Args:
            settings_loader: Callable returning fresh WorkerSettings
        """
        self._settings_loader = settings_loader
        self._lock = threading.Lock()
        self._host: str | None = None
        self._port: int | None = None

    def resolve_host(self) -> str:
        """Bind host the worker listens on (may be a wildcard)."""
        with self._lock:
            if self._host is None:
                self._host = self._settings_loader().worker_host
            return self._host

    def resolve_connect_host(self) -> str:
        """Host a client should connect to. A wildcard bind maps to loopback."""
        host = self.resolve_host()
        if host == WILDCARD_HOST:
            return LOOPBACK_HOST
        return host

    def resolve_port(self) -> int:
        """Worker port. Raises SettingsError if the setting is not an integer."""
        with self._lock:
            if self._port is None:
                raw = self._settings_loader().worker_port
                try:
                    self._port = int(str(raw).strip(), 10)
                except ValueError as e:
                    raise SettingsError(f"CLAUDE_MEM_WORKER_PORT is not an integer: {raw!r}") from e
            return self._port

    def resolve_url(self) -> str:
        """Base URL for all worker calls."""
        env_url = os.environ.get(WORKER_URL_ENV, "").strip().rstrip("/")
        if env_url:
            _check_url(env_url)
            return env_url
        return f"http://{self.resolve_connect_host()}:{self.resolve_port()}"

    def base_url(self, port: int | None = None) -> str:
        """Base URL for a specific port, or resolve_url() when port is None."""
        if port is None:
            return self.resolve_url()
        return f"http://{self.resolve_connect_host()}:{port}"

    def is_remote(self) -> bool:
        """True when the worker is configured to bind somewhere other than this host."""
        return self.resolve_host() not in LOCAL_HOSTS

    def invalidate_cache(self) -> None:
        """Forget memoized host and port so the next call re-reads settings."""
        with self._lock:
            self._host = None
            self._port = None
        logger.debug("Worker endpoint cache cleared")


# Global endpoint instance
_endpoint_instance: WorkerEndpoint | None = None


def get_endpoint() -> WorkerEndpoint:
    """Get or create the process-wide endpoint instance.

    Returns:
        WorkerEndpoint instance
    """
    global _endpoint_instance
    if _endpoint_instance is None:
        _endpoint_instance = WorkerEndpoint()
    return _endpoint_instance
