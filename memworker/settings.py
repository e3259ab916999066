"""Settings for reaching the worker, loaded from settings.json and the environment."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path.home() / ".claude-mem"
DEFAULT_PLUGIN_ROOT = Path.home() / ".claude" / "plugins" / "marketplaces" / "memworker"
SETTINGS_FILENAME = "settings.json"


class SettingsError(Exception):
    """Raised when a setting cannot be coerced to the type it needs."""

    pass


class WorkerSettings(BaseModel):
    """Worker settings as stored on disk.

    Every value is a string, exactly as it appears in settings.json. Consumers
    coerce to the type they need.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    worker_host: str = Field(default="127.0.0.1", alias="CLAUDE_MEM_WORKER_HOST")
    worker_port: str = Field(default="37777", alias="CLAUDE_MEM_WORKER_PORT")
    data_dir: str = Field(default=str(DEFAULT_DATA_DIR), alias="CLAUDE_MEM_DATA_DIR")
    log_level: str = Field(default="INFO", alias="CLAUDE_MEM_LOG_LEVEL")
    health_timeout_ms: str = Field(default="3000", alias="CLAUDE_MEM_HEALTH_TIMEOUT_MS")
    plugin_root: str = Field(default=str(DEFAULT_PLUGIN_ROOT), alias="CLAUDE_MEM_PLUGIN_ROOT")

    @property
    def manifest_path(self) -> Path:
        """Path to the installed plugin's package.json."""
        return Path(self.plugin_root).expanduser() / "package.json"

    def timeout_ms(self) -> int:
        """Per-call timeout for health-class requests."""
        return _parse_int("CLAUDE_MEM_HEALTH_TIMEOUT_MS", self.health_timeout_ms)


def _parse_int(key: str, raw: str) -> int:
    try:
        return int(str(raw).strip(), 10)
    except ValueError as e:
        raise SettingsError(f"{key} is not an integer: {raw!r}") from e


def default_settings_path() -> Path:
    """Locate settings.json, honouring CLAUDE_MEM_DATA_DIR from the environment."""
    data_dir = os.environ.get("CLAUDE_MEM_DATA_DIR") or str(DEFAULT_DATA_DIR)
    return Path(data_dir).expanduser() / SETTINGS_FILENAME


def _env_overrides() -> dict[str, str]:
    overrides = {}
    for field in WorkerSettings.model_fields.values():
        value = os.environ.get(field.alias or "")
        if value:
            overrides[field.alias] = value
    return overrides


def load_settings(path: Path | str | None = None) -> WorkerSettings:
    """Load settings: defaults, then settings.json, then environment variables.

    A missing file means defaults. A file that cannot be read or parsed is
    logged and ignored.

    Args:
        path: Explicit settings.json path (defaults to <data dir>/settings.json)

    Returns:
        WorkerSettings with string values
    """
    settings_path = Path(path) if path else default_settings_path()
    values: dict[str, str] = {}

    if settings_path.exists():
        try:
            raw = json.loads(settings_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read {settings_path}, using defaults: {e}")
            raw = {}
        if isinstance(raw, dict):
            # Stored values are strings; tolerate numbers written by hand
            values = {k: str(v) for k, v in raw.items() if isinstance(v, (str, int, float))}
        else:
            logger.warning(f"Ignoring {settings_path}: expected a JSON object")

    values.update(_env_overrides())
    return WorkerSettings.model_validate(values)
