"""Pydantic schemas for hook input/output and worker request/response bodies."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# --- Hook contracts ---


class HookInput(BaseModel):
    """Normalized Claude Code hook payload read from stdin."""

    model_config = ConfigDict(extra="ignore")

    session_id: str = Field(default="", description="Claude Code session ID")
    hook_event_name: str | None = None
    cwd: str | None = None
    tool_name: str | None = None
    tool_input: Any = None
    tool_response: Any = None
    transcript_path: str | None = None


class HookResult(BaseModel):
    """Hook response printed to stdout for Claude Code."""

    model_config = ConfigDict(populate_by_name=True)

    continue_: bool = Field(default=True, alias="continue")
    suppress_output: bool = Field(default=True, alias="suppressOutput")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


# --- Worker request bodies ---


class ObservationPayload(BaseModel):
    """Body for POST /api/sessions/observations."""

    model_config = ConfigDict(populate_by_name=True)

    content_session_id: str = Field(..., alias="contentSessionId")
    tool_name: str
    tool_input: Any = None
    tool_response: Any = None
    cwd: str


class SummarizePayload(BaseModel):
    """Body for POST /api/sessions/summarize."""

    model_config = ConfigDict(populate_by_name=True)

    content_session_id: str = Field(..., alias="contentSessionId")
    last_assistant_message: str = ""


# --- Worker responses ---


class VersionInfo(BaseModel):
    """Body returned by GET /api/version."""

    version: str
