"""
mimic.core.grab - Keyboard interception for target windows.

For each target window the installer:
    1. Reads the event mask this client has on the window.
    2. ORs in KeyPress/KeyRelease and writes it back.
    3. Installs a passive grab for any key with any modifiers, async modes.
    4. Re-reads the effective mask into the mask table.

The mask table is what the dispatch loop uses as the delivery mask when
it re-sends translated events.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from types import MappingProxyType

from mimic.core.errors import SelectionError, WindowGoneError
from mimic.core.xlib import KEY_EVENT_MASK, Connection

log = logging.getLogger(__name__)


# Read-only window id -> event mask
MaskTable = Mapping[int, int]


class GrabInstaller:
    """
    Installs key grabs on resolved windows.

    With all_windows set a vanished window is skipped with a warning;
    otherwise it is fatal.
    """

    def __init__(self, conn: Connection, all_windows: bool = False) -> None:
        self._conn = conn
        self._all_windows = all_windows
        self._masks: dict[int, int] = {}
        self._skipped: list[int] = []

    @property
    def mask_table(self) -> MaskTable:
        return MappingProxyType(self._masks)

    @property
    def skipped(self) -> list[int]:
        """Windows that vanished before their grab could be installed."""
        return list(self._skipped)

    def install_all(self, targets: list[int]) -> MaskTable:
        """
        Grab every window in *targets* (only the first without all_windows).

        Returns the mask table.  Raises SelectionError if no grab could be
        installed at all.
        """
        if not self._all_windows:
            targets = targets[:1]

        for wid in targets:
            try:
                self.install(wid)
            except WindowGoneError as e:
                if not self._all_windows:
                    raise
                self._skipped.append(wid)
                log.warning("Skipping window %#010x: %s", wid, e)

        if not self._masks:
            raise SelectionError("none of the matched windows could be grabbed")

        log.info(
            "Key grab installed on %d window(s), %d skipped",
            len(self._masks),
            len(self._skipped),
        )
        return self.mask_table

    def install(self, wid: int) -> int:
        """Grab the keyboard of one window.  Returns its effective mask."""
        before = self._conn.event_mask(wid)
        self._conn.set_event_mask(wid, before | KEY_EVENT_MASK)
        self._conn.grab_any_key(wid)

        effective = self._conn.event_mask(wid)
        # Never narrower than what we asked for
        mask = effective | before | KEY_EVENT_MASK
        self._masks[wid] = mask

        log.debug(
            "Grabbed %#010x: mask %#x -> %#x", wid, before, mask
        )
        return mask
