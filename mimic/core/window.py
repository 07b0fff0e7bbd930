"""
mimic.core.window - The Window data structure.

Each Window instance is a lightweight, live handle to an X window.
Properties are read from the server on demand so the data is always fresh.
The server owns the window: any read may raise WindowGoneError.
"""

from __future__ import annotations

import logging
from typing import Optional

from mimic.core.xlib import Connection, decode_text, split_wm_class

log = logging.getLogger(__name__)


class Window:
    """
    Represents a single X window.

    Equality and hashing are based solely on the window id, so a Window can
    be safely used in sets and as dict keys.
    """

    __slots__ = ("_conn", "_wid")

    def __init__(self, conn: Connection, wid: int) -> None:
        self._conn = conn
        self._wid = wid

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------
    @property
    def wid(self) -> int:
        return self._wid

    # ------------------------------------------------------------------
    # Descriptors (read live from the server)
    # ------------------------------------------------------------------
    @property
    def name(self) -> Optional[str]:
        """Legacy WM_NAME, or None if unset."""
        return self._text(self._conn.atoms.wm_name, "WM_NAME")

    @property
    def net_name(self) -> Optional[str]:
        """Extended _NET_WM_NAME (UTF-8), or None if unset."""
        return self._text(self._conn.atoms.net_wm_name, "_NET_WM_NAME")

    @property
    def wm_class(self) -> Optional[tuple[str, str]]:
        """(class, instance) from WM_CLASS, or None if absent/malformed."""
        raw = self._conn.get_property(self._wid, self._conn.atoms.wm_class)
        if not isinstance(raw, (bytes, bytearray)):
            return None
        return split_wm_class(raw, self._wid)

    @property
    def pid(self) -> int:
        """Owning process id from _NET_WM_PID, 0 if absent."""
        raw = self._conn.get_property(self._wid, self._conn.atoms.net_wm_pid)
        if not raw or isinstance(raw, (bytes, bytearray)):
            return 0
        return int(raw[0])

    def _text(self, atom: int, what: str) -> Optional[str]:
        raw = self._conn.get_property(self._wid, atom)
        if not isinstance(raw, (bytes, bytearray)):
            return None
        return decode_text(raw, self._wid, what)

    # ------------------------------------------------------------------
    # Dunder
    # ------------------------------------------------------------------
    def __eq__(self, other: object) -> bool:
        if isinstance(other, Window):
            return self._wid == other._wid
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._wid)

    def __repr__(self) -> str:
        return f"Window({self._wid:#010x})"
