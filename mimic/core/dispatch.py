"""
mimic.core.dispatch - EventDispatcher: the translate-and-resend loop.

The dispatcher:

  1. Blocks for the next X event (IDLE).
  2. Handles it, then keeps handling events already queued on the
     connection without blocking again (DRAINING).
  3. For each key event delivered by the server, translates the keycode
     into the configured layout group and sends the result back to the
     window as a synthetic event, flushing immediately.

Our own synthetic events come back to us because we selected key events
on the target windows.  They are dropped before anything else is looked
at, otherwise every key would be forwarded forever.

SendEvent errors arrive asynchronously, so a burst that sent anything
ends with a round-trip.  A target reported gone is fatal with a single
window and only logged with --all.
"""

from __future__ import annotations

import enum
import logging
from typing import Any

from mimic.core.errors import WindowGoneError
from mimic.core.grab import MaskTable
from mimic.core.keymap import KeyboardMapping, translate
from mimic.core.xlib import KEY_PRESS, KEY_RELEASE, Connection, resource_id

log = logging.getLogger(__name__)


class DispatchState(enum.Enum):
    """Where the loop is."""

    # Blocked waiting for the server
    IDLE = "idle"

    # Handling events that are already queued locally
    DRAINING = "draining"


class EventDispatcher:
    """
    Consumes X events and re-emits translated key events.

    Usage:
        dispatcher = EventDispatcher(conn, mapping, layout, masks)
        dispatcher.run()   # blocks until the connection fails
    """

    def __init__(
        self,
        conn: Connection,
        mapping: KeyboardMapping,
        layout: int,
        masks: MaskTable,
        all_windows: bool = False,
    ) -> None:
        self._conn = conn
        self._mapping = mapping
        self._layout = layout
        self._masks = masks
        self._all_windows = all_windows
        self._state = DispatchState.IDLE

        self.received = 0
        self.emitted = 0
        self.discarded = 0

    @property
    def state(self) -> DispatchState:
        return self._state

    # ------------------------------------------------------------------
    # Per-event handling
    # ------------------------------------------------------------------
    def handle(self, event: Any) -> bool:
        """
        Process one event.  Returns True if a translated event was sent.
        """
        self.received += 1

        # Our own output: never translate it again
        if getattr(event, "send_event", False):
            self.discarded += 1
            return False

        if event.type not in (KEY_PRESS, KEY_RELEASE):
            self.discarded += 1
            return False

        wid = resource_id(event.window)
        mask = self._masks.get(wid)
        if mask is None:
            log.debug("Dropped key event for unknown window %#010x", wid)
            self.discarded += 1
            return False

        keycode, state = translate(
            self._mapping, event.detail, event.state, self._layout
        )
        log.debug(
            "%s %#010x: (%d, %#x) -> (%d, %#x)",
            "press" if event.type == KEY_PRESS else "release",
            wid,
            event.detail,
            event.state,
            keycode,
            state,
        )

        try:
            self._conn.send_key_event(
                wid, event, keycode, state, mask, self._all_windows
            )
        except WindowGoneError as e:
            if not self._all_windows:
                raise
            log.warning("Dropped key event: %s", e)
            self.discarded += 1
            return False

        self._conn.flush()
        self.emitted += 1
        return True

    def _check_vanished(self) -> None:
        """Apply the vanished-window policy to targets the server reported gone."""
        for wid in sorted(self._conn.take_vanished()):
            if wid not in self._masks:
                continue
            err = WindowGoneError(wid, "BadWindow")
            if not self._all_windows:
                raise err
            log.warning("Target window lost: %s", err)
    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------
    def run_once(self) -> int:
        """
        Wait for one event, then drain everything already queued.

        Returns the number of events handled.
        """
        self._state = DispatchState.IDLE
        event = self._conn.next_event()
        self._state = DispatchState.DRAINING
        handled = 0
        emitted = self.emitted
        while True:
            self.handle(event)
            handled += 1
            if self._conn.pending_events() <= 0:
                break
            event = self._conn.next_event()
        if self.emitted > emitted:
            # SendEvent has no reply; a round-trip collects its errors
            self._conn.sync()
        self._check_vanished()
        self._state = DispatchState.IDLE
        log.debug(
            "Burst of %d event(s); totals received=%d emitted=%d discarded=%d",
            handled,
            self.received,
            self.emitted,
            self.discarded,
        )
        return handled

    def run(self) -> None:
        """
        Run forever.

        Returns only by exception; ConnectionLostError ends the session.
        """
        log.info(
            "Entering event loop (layout %d, %d window(s))",
            self._layout,
            len(self._masks),
        )
        while True:
            self.run_once()
