"""
mimic.core.errors - Exception hierarchy.

Every failure the core can report derives from MimicError so the entry
point can turn it into a single diagnostic and an exit status.
"""

from __future__ import annotations


class MimicError(Exception):
    """Base class for all mimic failures."""


class SelectionError(MimicError):
    """No window matched the selection criteria."""


class PropertyDecodeError(MimicError):
    """A window property that should hold text is not valid UTF-8."""

    def __init__(self, window_id: int, what: str, reason: str) -> None:
        super().__init__(
            f"window {window_id:#010x}: {what} is not valid UTF-8 ({reason})"
        )
        self.window_id = window_id
        self.what = what


class WindowGoneError(MimicError):
    """The target window no longer exists on the server."""

    def __init__(self, window_id: int, detail: str = "") -> None:
        msg = f"window {window_id:#010x} does not exist"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)
        self.window_id = window_id


class ConnectionLostError(MimicError):
    """The X connection could not be opened or was lost."""
