"""CLI for memworker - hook entry points and worker supervision commands."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass

import click
import httpx
from pydantic import ValidationError

from memworker import __version__
from memworker.endpoint import WorkerEndpoint
from memworker.handlers import HookInputError, handle_observation, handle_summarize
from memworker.prober import Prober
from memworker.schemas import HookInput
from memworker.settings import SettingsError, WorkerSettings, load_settings
from memworker.shutdown import http_shutdown
from memworker.supervisor import HEALTH_TIMEOUT_MS, PORT_FREE_TIMEOUT_MS, Supervisor
from memworker.version import ManifestError, VersionReconciler

logger = logging.getLogger(__name__)


@dataclass
class WorkerContext:
    """Object graph shared by all commands of one invocation."""

    settings: WorkerSettings
    endpoint: WorkerEndpoint
    supervisor: Supervisor
    timeout_ms: int
    transport: httpx.AsyncBaseTransport | None = None

    @property
    def reconciler(self) -> VersionReconciler:
        return self.supervisor.reconciler


def build_context(
    settings_loader: Callable[[], WorkerSettings] = load_settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> WorkerContext:
    """Wire endpoint, prober, reconciler and supervisor from one settings loader."""
    settings = settings_loader()
    timeout_ms = settings.timeout_ms()
    endpoint = WorkerEndpoint(settings_loader=settings_loader)
    prober = Prober(endpoint, timeout_ms=timeout_ms, transport=transport)
    reconciler = VersionReconciler(
        endpoint,
        manifest_path=settings.manifest_path,
        timeout_ms=timeout_ms,
        transport=transport,
    )
    return WorkerContext(
        settings=settings,
        endpoint=endpoint,
        supervisor=Supervisor(prober, reconciler),
        timeout_ms=timeout_ms,
        transport=transport,
    )


@click.group()
@click.version_option(version=__version__, prog_name="memworker")
@click.option("--log-level", default=None, help="Override CLAUDE_MEM_LOG_LEVEL")
@click.pass_context
def main(ctx: click.Context, log_level: str | None) -> None:
    """memworker - talk to the Claude memory worker.

    Health-checks the local worker, forwards hook events to it, and stops it.
    """
    try:
        if ctx.obj is None:
            ctx.obj = build_context()
        level = (log_level or ctx.obj.settings.log_level).upper()
    except SettingsError as e:
        raise click.ClickException(str(e)) from e

    # Logs go to stderr; hook stdout must stay pure JSON
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@main.command()
@click.argument("event", type=click.Choice(["observation", "summarize"]))
@click.pass_obj
def hook(obj: WorkerContext, event: str) -> None:
    """Handle a Claude Code hook event read from stdin.

    \b
    Example hooks.json command:
        memworker hook observation
    """
    raw = click.get_text_stream("stdin").read()
    try:
        hook_input = HookInput.model_validate(json.loads(raw) if raw.strip() else {})
    except (json.JSONDecodeError, ValidationError) as e:
        raise click.ClickException(f"Invalid hook input: {e}") from e

    try:
        if event == "observation":
            result = asyncio.run(
                handle_observation(hook_input, obj.endpoint, obj.timeout_ms, obj.transport)
            )
        else:
            result = asyncio.run(
                handle_summarize(hook_input, obj.supervisor, obj.timeout_ms, obj.transport)
            )
    except (HookInputError, FileNotFoundError, SettingsError) as e:
        raise click.ClickException(str(e)) from e

    click.echo(result.to_json())


@main.command()
@click.pass_obj
def status(obj: WorkerContext) -> None:
    """Check whether the worker is ready and running the installed version."""

    async def _status() -> bool:
        ready = await obj.supervisor.ensure_running()
        click.echo(f"Worker: {obj.endpoint.resolve_url()}")
        click.echo(f"Remote: {'yes' if obj.endpoint.is_remote() else 'no'}")
        click.echo(f"Ready: {'yes' if ready else 'no'}")
        if not ready:
            return False

        try:
            check = await obj.reconciler.check_version_match()
        except ManifestError as e:
            click.echo(f"Version: unknown ({e})")
            return True

        observed = check.observed_version or "unknown"
        verdict = "match" if check.matches else "MISMATCH"
        click.echo(f"Version: plugin {check.expected_version}, worker {observed} ({verdict})")
        return True

    try:
        ready = asyncio.run(_status())
    except SettingsError as e:
        raise click.ClickException(str(e)) from e
    if not ready:
        raise SystemExit(1)


@main.command()
@click.option("--port", "-p", type=int, default=None, help="Worker port (defaults to settings)")
@click.option("--timeout-ms", default=HEALTH_TIMEOUT_MS, help="How long to wait")
@click.pass_obj
def wait(obj: WorkerContext, port: int | None, timeout_ms: int) -> None:
    """Wait for a freshly started worker to become ready."""
    try:
        if port is None:
            port = obj.endpoint.resolve_port()
    except SettingsError as e:
        raise click.ClickException(str(e)) from e

    if asyncio.run(obj.supervisor.wait_for_health(port, timeout_ms)):
        click.echo(f"Worker ready on port {port}")
        return

    click.echo(f"Worker on port {port} not ready after {timeout_ms}ms", err=True)
    raise SystemExit(1)


@main.command()
@click.option("--port", "-p", type=int, default=None, help="Worker port (defaults to settings)")
@click.option("--timeout-ms", default=PORT_FREE_TIMEOUT_MS, help="How long to wait for the port")
@click.pass_obj
def stop(obj: WorkerContext, port: int | None, timeout_ms: int) -> None:
    """Ask the worker to shut down and wait for its port to be released."""
    try:
        if port is None:
            port = obj.endpoint.resolve_port()
    except SettingsError as e:
        raise click.ClickException(str(e)) from e

    async def _stop() -> tuple[bool, bool]:
        acknowledged = await http_shutdown(obj.endpoint, port, obj.timeout_ms, obj.transport)
        freed = await obj.supervisor.wait_for_port_free(port, timeout_ms)
        return acknowledged, freed

    acknowledged, freed = asyncio.run(_stop())
    if freed:
        click.echo(f"Worker stopped (port {port} free)" if acknowledged else f"Worker not running (port {port} free)")
        return

    click.echo(f"Port {port} still in use after {timeout_ms}ms", err=True)
    raise SystemExit(1)


if __name__ == "__main__":
    main()
