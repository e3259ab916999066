"""Claude Code hook handlers that talk to the worker."""

from memworker.handlers.base import HookInputError
from memworker.handlers.observation import handle_observation
from memworker.handlers.summarize import handle_summarize

__all__ = ["HookInputError", "handle_observation", "handle_summarize"]
