"""Shared pieces for hook handlers."""

from __future__ import annotations


class HookInputError(Exception):
    """Raised when a hook payload is missing a field the handler requires."""

    pass
