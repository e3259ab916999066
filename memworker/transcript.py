"""Read the last message of a given role from a Claude Code JSONL transcript."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

SYSTEM_REMINDER_RE = re.compile(r"<system-reminder>.*?</system-reminder>", re.DOTALL)


def _message_text(entry: dict[str, Any]) -> str:
    """Flatten a transcript entry's message content into plain text."""
    message = entry.get("message")
    content = message.get("content") if isinstance(message, dict) else None

    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            block.get("text", "")
            for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        ]
        return "\n".join(p for p in parts if p)
    return ""


def extract_last_message(
    transcript_path: Path | str,
    role: str,
    strip_system_reminders: bool = False,
) -> str:
    """Return the text of the last transcript entry whose type is role.

    Args:
        transcript_path: Path to the session's JSONL transcript
        role: "assistant" or "user"
        strip_system_reminders: Remove <system-reminder> blocks from the text

    Returns:
        Message text, or "" if no entry of that role has text

    Raises:
        FileNotFoundError: If the transcript does not exist
    """
    path = Path(transcript_path)
    if not path.exists():
        raise FileNotFoundError(f"Transcript not found: {path}")

    last_text = ""
    with path.open(encoding="utf-8", errors="replace") as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                logger.debug(f"Skipping malformed transcript line {line_num} in {path}")
                continue
            if not isinstance(entry, dict) or entry.get("type") != role:
                continue
            text = _message_text(entry)
            if text:
                last_text = text

    if strip_system_reminders:
        last_text = SYSTEM_REMINDER_RE.sub("", last_text).strip()
    return last_text
