"""Detect a worker still running code from an older plugin install."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

import httpx
from pydantic import ValidationError

from memworker.endpoint import WorkerEndpoint
from memworker.fetcher import DEFAULT_TIMEOUT_MS, fetch_with_timeout
from memworker.schemas import VersionInfo
from memworker.settings import DEFAULT_PLUGIN_ROOT

logger = logging.getLogger(__name__)

VERSION_PATH = "/api/version"
DEFAULT_MANIFEST_PATH = DEFAULT_PLUGIN_ROOT / "package.json"


class ManifestError(Exception):
    """Raised when the installed plugin manifest is missing or malformed."""

    pass


@dataclass
class VersionCheckResult:
    """Installed plugin version compared with the version the worker reports.

    observed_version is None when the worker's version could not be
    determined; that counts as a match.
    """

    matches: bool
    expected_version: str
    observed_version: str | None


class VersionReconciler:
    """Compares installed and running versions. Reports only, never restarts."""

    def __init__(
        self,
        endpoint: WorkerEndpoint,
        manifest_path: Path | str | None = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the reconciler.

        Args:
            endpoint: Shared worker endpoint
            manifest_path: Installed plugin package.json
            timeout_ms: Per-request timeout for the version call
            transport: Optional httpx transport
        """
        self.endpoint = endpoint
        self.manifest_path = Path(manifest_path) if manifest_path else DEFAULT_MANIFEST_PATH
        self.timeout_ms = timeout_ms
        self.transport = transport

    def installed_version(self) -> str:
        """Read the version of the locally installed plugin.

        Raises:
            ManifestError: If the manifest is missing, not JSON, or has no
                string "version" field
        """
        try:
            manifest = json.loads(self.manifest_path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise ManifestError(f"Plugin manifest not found: {self.manifest_path}") from e
        except (OSError, ValueError) as e:
            # ValueError covers bad JSON and bad UTF-8
            raise ManifestError(f"Plugin manifest unreadable: {self.manifest_path}: {e}") from e

        version = manifest.get("version") if isinstance(manifest, dict) else None
        if not isinstance(version, str):
            raise ManifestError(f"Plugin manifest has no version string: {self.manifest_path}")
        return version

    async def running_version(self, port: int | None = None) -> str | None:
        """Ask the worker which version it runs. None when that can't be determined."""
        url = f"{self.endpoint.base_url(port)}{VERSION_PATH}"
        result = await fetch_with_timeout(url, self.timeout_ms, transport=self.transport)
        if not result.ok:
            logger.debug(f"Could not fetch worker version from {url} ({result.status.value})")
            return None

        try:
            return VersionInfo.model_validate(result.response.json()).version
        except (ValueError, ValidationError) as e:
            logger.debug(f"Unexpected /api/version body: {e}")
            return None

    async def check_version_match(self, port: int | None = None) -> VersionCheckResult:
        """Compare installed and running versions as exact strings."""
        expected = self.installed_version()
        observed = await self.running_version(port)

        # Unknown running version is not evidence of a mismatch
        if observed is None:
            return VersionCheckResult(matches=True, expected_version=expected, observed_version=None)

        return VersionCheckResult(
            matches=expected == observed,
            expected_version=expected,
            observed_version=observed,
        )
