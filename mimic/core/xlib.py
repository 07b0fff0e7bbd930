"""
mimic.core.xlib - X11 protocol access via python-xlib.

Centralizes every X11 call used by mimic so that no other module needs to
import Xlib directly.  The Connection object owns the display handle;
components receive it by reference and never close it themselves.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Any, Optional

from Xlib import X, Xatom, error
from Xlib.display import Display
from Xlib.protocol import event as xevent

from mimic.core.errors import (
    ConnectionLostError,
    MimicError,
    PropertyDecodeError,
    WindowGoneError,
)

log = logging.getLogger(__name__)

# ============================================================================
# Constants
# ============================================================================

# Event types
KEY_PRESS = X.KeyPress
KEY_RELEASE = X.KeyRelease

# Event masks
KEY_PRESS_MASK = X.KeyPressMask
KEY_RELEASE_MASK = X.KeyReleaseMask
KEY_EVENT_MASK = KEY_PRESS_MASK | KEY_RELEASE_MASK

# Modifier state bits
SHIFT_MASK = X.ShiftMask
LOCK_MASK = X.LockMask
CONTROL_MASK = X.ControlMask

# XKB reports the effective group in bits 13-14 of the key state
GROUP_SHIFT = 13
GROUP_MASK = 0x3 << GROUP_SHIFT

NO_SYMBOL = X.NoSymbol
CURRENT_TIME = X.CurrentTime

# Server errors meaning "the window is gone"
_GONE_ERRORS = (error.BadWindow, error.BadDrawable)


# ============================================================================
# Atoms
# ============================================================================
@dataclass(frozen=True, slots=True)
class Atoms:
    """Well-known property atoms, resolved once per connection."""

    wm_name: int
    wm_class: int
    net_wm_name: int
    net_wm_pid: int
    utf8_string: int
    xkb_rules_names: int


# ============================================================================
# Property decoding
# ============================================================================
def decode_text(raw: bytes, window_id: int, what: str) -> str:
    """Strictly decode a text property, dropping trailing NULs."""
    try:
        return bytes(raw).rstrip(b"\0").decode("utf-8")
    except UnicodeDecodeError as e:
        raise PropertyDecodeError(window_id, what, str(e)) from e


def split_wm_class(raw: bytes, window_id: int) -> Optional[tuple[str, str]]:
    """
    Split a WM_CLASS value into (class, instance).

    The property holds two NUL-terminated strings, instance first.
    Returns None if the value does not have that shape.
    """
    parts = bytes(raw).split(b"\0")
    if parts and parts[-1] == b"":
        parts.pop()
    if len(parts) != 2:
        return None
    instance = decode_text(parts[0], window_id, "WM_CLASS instance")
    cls = decode_text(parts[1], window_id, "WM_CLASS class")
    return (cls, instance)


def resource_id(value: Any) -> int:
    """Return the numeric id of an Xlib resource object (or an int)."""
    return int(getattr(value, "id", value))


# ============================================================================
# Error translation
# ============================================================================
@contextlib.contextmanager
def _window_errors(window_id: int) -> Iterator[None]:
    try:
        yield
    except _GONE_ERRORS as e:
        raise WindowGoneError(window_id, type(e).__name__) from e
    except error.ConnectionClosedError as e:
        raise ConnectionLostError(f"X connection closed: {e}") from e
    except OSError as e:
        raise ConnectionLostError(f"X connection failed: {e}") from e


@contextlib.contextmanager
def _connection_errors() -> Iterator[None]:
    try:
        yield
    except error.ConnectionClosedError as e:
        raise ConnectionLostError(f"X connection closed: {e}") from e
    except OSError as e:
        raise ConnectionLostError(f"X connection failed: {e}") from e


# ============================================================================
# Connection
# ============================================================================
class Connection:
    """
    Owned X display connection.

    Use as a context manager; the display is closed on every exit path:

        with Connection.open() as conn:
            ...
    """

    def __init__(self, display: Display) -> None:
        self._display = display
        self._closed = False
        self._vanished: set[int] = set()
        self._display.set_error_handler(self._on_async_error)
        try:
            with _connection_errors():
                self.atoms = Atoms(
                    wm_name=Xatom.WM_NAME,
                    wm_class=Xatom.WM_CLASS,
                    net_wm_name=display.intern_atom("_NET_WM_NAME"),
                    net_wm_pid=display.intern_atom("_NET_WM_PID"),
                    utf8_string=display.intern_atom("UTF8_STRING"),
                    xkb_rules_names=display.intern_atom("_XKB_RULES_NAMES"),
                )
        except ConnectionLostError:
            self.close()
            raise

    @classmethod
    def open(cls, display_name: Optional[str] = None) -> "Connection":
        try:
            display = Display(display_name)
        except (error.DisplayError, OSError) as e:
            raise ConnectionLostError(f"cannot open display: {e}") from e
        log.info("Connected to display %s", display.get_display_name())
        return cls(display)

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._display.close()
        except (error.ConnectionClosedError, OSError):
            pass
        log.debug("Display closed")

    @property
    def root(self) -> int:
        return self._display.screen().root.id

    def _window(self, window_id: int):
        return self._display.create_resource_object("window", window_id)

    def _on_async_error(self, err: error.XError, request: Any) -> None:
        # Errors of requests sent without onerror= (e.g. SendEvent)
        if isinstance(err, _GONE_ERRORS):
            log.debug("Window %#010x reported gone", err.resource_id)
            self._vanished.add(int(err.resource_id))
            return
        log.warning("X error: %s", err)

    def take_vanished(self) -> set[int]:
        """
        Windows reported gone by asynchronous errors since the last call.

        Errors are only read off the connection on a round-trip or while
        waiting for events; call sync() first to collect them all.
        """
        gone, self._vanished = self._vanished, set()
        return gone

    # ------------------------------------------------------------------
    # Window tree and properties
    # ------------------------------------------------------------------
    def children(self, window_id: int) -> list[int]:
        """Direct children of a window, bottom-to-top stacking order."""
        with _window_errors(window_id):
            reply = self._window(window_id).query_tree()
        return [c.id for c in reply.children]

    def get_property(self, window_id: int, atom: int) -> Optional[Any]:
        """
        Read a whole property of any type.

        Returns bytes for 8-bit data, a sequence of ints for 16/32-bit
        data, or None if the property is not set.
        """
        with _window_errors(window_id):
            prop = self._window(window_id).get_full_property(
                atom, X.AnyPropertyType
            )
        if prop is None:
            return None
        return prop.value

    # ------------------------------------------------------------------
    # Event masks and grabs
    # ------------------------------------------------------------------
    def event_mask(self, window_id: int) -> int:
        """The event mask this client has selected on the window."""
        with _window_errors(window_id):
            attrs = self._window(window_id).get_attributes()
        return int(attrs.your_event_mask)

    def set_event_mask(self, window_id: int, mask: int) -> None:
        ec = error.CatchError(*_GONE_ERRORS)
        with _window_errors(window_id):
            self._window(window_id).change_attributes(onerror=ec, event_mask=mask)
            self._display.sync()
        self._raise_caught(ec, window_id)

    def grab_any_key(self, window_id: int) -> None:
        """Passive grab of every key with any modifiers, async modes."""
        ec = error.CatchError(error.BadWindow, error.BadAccess)
        with _window_errors(window_id):
            self._window(window_id).grab_key(
                X.AnyKey,
                X.AnyModifier,
                True,
                X.GrabModeAsync,
                X.GrabModeAsync,
                onerror=ec,
            )
            self._display.sync()
        self._raise_caught(ec, window_id)

    @staticmethod
    def _raise_caught(ec: error.CatchError, window_id: int) -> None:
        err = ec.get_error()
        if err is None:
            return
        if isinstance(err, _GONE_ERRORS):
            raise WindowGoneError(window_id, type(err).__name__)
        raise MimicError(f"window {window_id:#010x}: X error {err}")

    # ------------------------------------------------------------------
    # Keyboard mapping
    # ------------------------------------------------------------------
    def keyboard_mapping(self) -> tuple[int, list[Sequence[int]]]:
        """Return (min_keycode, keysym columns per keycode)."""
        info = self._display.display.info
        first = info.min_keycode
        count = info.max_keycode - first + 1
        with _connection_errors():
            rows = self._display.get_keyboard_mapping(first, count)
        return first, [tuple(row) for row in rows]

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    def next_event(self) -> Any:
        """Block until the next event arrives."""
        with _connection_errors():
            return self._display.next_event()

    def pending_events(self) -> int:
        with _connection_errors():
            return self._display.pending_events()

    def send_key_event(
        self,
        window_id: int,
        source: Any,
        keycode: int,
        state: int,
        mask: int,
        propagate: bool,
    ) -> None:
        """
        Send a copy of a key event with a new keycode and state.

        SendEvent has no reply: a vanished target is reported later
        through take_vanished(), not raised here.
        """
        cls = xevent.KeyPress if source.type == KEY_PRESS else xevent.KeyRelease
        ev = cls(
            time=CURRENT_TIME,
            root=source.root,
            window=source.window,
            same_screen=source.same_screen,
            child=source.child,
            root_x=source.root_x,
            root_y=source.root_y,
            event_x=source.event_x,
            event_y=source.event_y,
            state=state,
            detail=keycode,
        )
        with _window_errors(window_id):
            self._window(window_id).send_event(
                ev, event_mask=mask, propagate=propagate
            )

    def flush(self) -> None:
        with _connection_errors():
            self._display.flush()

    def sync(self) -> None:
        with _connection_errors():
            self._display.sync()
