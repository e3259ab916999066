"""Stop handler: ask the worker to summarize the session."""

from __future__ import annotations

import logging

import httpx

from memworker.fetcher import DEFAULT_TIMEOUT_MS, fetch_with_timeout
from memworker.handlers.base import HookInputError
from memworker.schemas import HookInput, HookResult, SummarizePayload
from memworker.supervisor import Supervisor
from memworker.transcript import extract_last_message

logger = logging.getLogger(__name__)

SUMMARIZE_PATH = "/api/sessions/summarize"


async def handle_summarize(
    hook_input: HookInput,
    supervisor: Supervisor,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    transport: httpx.AsyncBaseTransport | None = None,
) -> HookResult:
    """Send the last assistant message to the worker for summarization.

    If the worker is not usable the hook continues without a summary.

    Raises:
        HookInputError: If transcript_path is missing
    """
    if not await supervisor.ensure_running():
        return HookResult()

    if not hook_input.transcript_path:
        raise HookInputError(f"Missing transcriptPath in Stop hook input for session {hook_input.session_id}")

    # User entries in transcripts are mostly tool results; the prompt itself is
    # already stored by the worker, so only the assistant side is sent.
    last_assistant_message = extract_last_message(
        hook_input.transcript_path, "assistant", strip_system_reminders=True
    )

    worker_url = supervisor.prober.endpoint.resolve_url()
    logger.info(
        f"Stop: requesting summary from {worker_url} "
        f"(has last assistant message: {bool(last_assistant_message)})"
    )

    payload = SummarizePayload(
        content_session_id=hook_input.session_id,
        last_assistant_message=last_assistant_message,
    )
    result = await fetch_with_timeout(
        f"{worker_url}{SUMMARIZE_PATH}",
        timeout_ms,
        method="POST",
        json=payload.model_dump(by_alias=True),
        transport=transport,
    )

    if result.response is None:
        logger.warning(f"Stop: worker unavailable ({result.status.value}), summary not stored")
    elif not result.ok:
        logger.warning(f"Stop: summary request failed ({result.status_code})")
    else:
        logger.debug("Summary request sent")

    return HookResult()
