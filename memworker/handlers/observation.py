"""PostToolUse handler: send tool usage to the worker for storage."""

from __future__ import annotations

import json
import logging

import httpx

from memworker.endpoint import WorkerEndpoint
from memworker.fetcher import DEFAULT_TIMEOUT_MS, fetch_with_timeout
from memworker.handlers.base import HookInputError
from memworker.schemas import HookInput, HookResult, ObservationPayload

logger = logging.getLogger(__name__)

OBSERVATIONS_PATH = "/api/sessions/observations"


def _format_tool(tool_name: str, tool_input: object) -> str:
    """Short one-line description of a tool call for logs."""
    if tool_input is None:
        return tool_name
    preview = tool_input if isinstance(tool_input, str) else json.dumps(tool_input, default=str)
    if len(preview) > 80:
        preview = preview[:77] + "..."
    return f"{tool_name}({preview})"


async def handle_observation(
    hook_input: HookInput,
    endpoint: WorkerEndpoint,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    transport: httpx.AsyncBaseTransport | None = None,
) -> HookResult:
    """Forward one tool use to the worker.

    Readiness is not checked here; the worker was started at SessionStart and
    this hook fires on every matched tool call.

    Raises:
        HookInputError: If tool_name or cwd is missing
    """
    if not hook_input.tool_name:
        raise HookInputError("observation handler requires tool_name")
    if not hook_input.cwd:
        raise HookInputError(
            f"Missing cwd in PostToolUse hook input for session {hook_input.session_id}, "
            f"tool {hook_input.tool_name}"
        )

    logger.info(f"PostToolUse: {_format_tool(hook_input.tool_name, hook_input.tool_input)}")

    payload = ObservationPayload(
        content_session_id=hook_input.session_id,
        tool_name=hook_input.tool_name,
        tool_input=hook_input.tool_input,
        tool_response=hook_input.tool_response,
        cwd=hook_input.cwd,
    )
    result = await fetch_with_timeout(
        f"{endpoint.resolve_url()}{OBSERVATIONS_PATH}",
        timeout_ms,
        method="POST",
        json=payload.model_dump(by_alias=True, mode="json"),
        transport=transport,
    )

    if result.response is None:
        logger.warning(f"PostToolUse: worker unavailable ({result.status.value}), observation not stored")
    elif not result.ok:
        logger.warning(f"PostToolUse: observation storage failed ({result.status_code})")
    else:
        logger.debug(f"Observation sent for {hook_input.tool_name}")

    return HookResult()
