from __future__ import annotations

import struct
from collections import deque
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any, Optional

import pytest
from Xlib import error

from mimic.core.errors import ConnectionLostError, WindowGoneError
from mimic.core.xlib import KEY_PRESS, Atoms

ATOMS = Atoms(
    wm_name=39,
    wm_class=67,
    net_wm_name=301,
    net_wm_pid=302,
    utf8_string=303,
    xkb_rules_names=304,
)

ROOT = 0x1


@dataclass
class FakeWindow:
    children: list[int] = field(default_factory=list)
    props: dict[int, Any] = field(default_factory=dict)
    mask: int = 0
    gone: bool = False
    grabbed: bool = False


@dataclass
class FakeResource:
    id: int


@dataclass
class FakeEvent:
    type: int = KEY_PRESS
    window: Any = None
    detail: int = 0
    state: int = 0
    send_event: bool = False
    root: Any = ROOT
    child: Any = 0
    same_screen: int = 1
    root_x: int = 0
    root_y: int = 0
    event_x: int = 0
    event_y: int = 0
    time: int = 1234


class FakeConnection:
    """In-memory stand-in for mimic.core.xlib.Connection."""

    def __init__(self) -> None:
        self.atoms = ATOMS
        self.root = ROOT
        self.windows: dict[int, FakeWindow] = {ROOT: FakeWindow()}
        self.events: deque[Any] = deque()
        self.sent: list[dict[str, Any]] = []
        self.flushes = 0
        self.syncs = 0
        self.vanished: set[int] = set()
        self.next_event_calls = 0
        self.children_calls = 0
        self.closed = False
        self.keymap: tuple[int, list[tuple[int, ...]]] = (8, [()])

    # -- test helpers --------------------------------------------------
    def add_window(
        self,
        wid: int,
        parent: int = ROOT,
        *,
        name: Optional[bytes] = None,
        net_name: Optional[bytes] = None,
        wm_class: Optional[bytes] = None,
        pid: Optional[int] = None,
        mask: int = 0,
    ) -> FakeWindow:
        win = FakeWindow(mask=mask)
        if name is not None:
            win.props[ATOMS.wm_name] = name
        if net_name is not None:
            win.props[ATOMS.net_wm_name] = net_name
        if wm_class is not None:
            win.props[ATOMS.wm_class] = wm_class
        if pid is not None:
            win.props[ATOMS.net_wm_pid] = [pid]
        self.windows[wid] = win
        self.windows[parent].children.append(wid)
        return win

    def _get(self, wid: int) -> FakeWindow:
        win = self.windows.get(wid)
        if win is None or win.gone:
            raise WindowGoneError(wid, "BadWindow")
        return win

    # -- Connection interface -----------------------------------------
    def __enter__(self) -> "FakeConnection":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self.closed = True

    def children(self, wid: int) -> list[int]:
        self.children_calls += 1
        return list(self._get(wid).children)

    def get_property(self, wid: int, atom: int) -> Any:
        return self._get(wid).props.get(atom)

    def event_mask(self, wid: int) -> int:
        return self._get(wid).mask

    def set_event_mask(self, wid: int, mask: int) -> None:
        self._get(wid).mask = mask

    def grab_any_key(self, wid: int) -> None:
        self._get(wid).grabbed = True

    def keyboard_mapping(self) -> tuple[int, list[tuple[int, ...]]]:
        return self.keymap

    def next_event(self) -> Any:
        self.next_event_calls += 1
        if not self.events:
            raise ConnectionLostError("no more events")
        return self.events.popleft()

    def pending_events(self) -> int:
        return len(self.events)

    def send_key_event(
        self,
        window_id: int,
        source: Any,
        keycode: int,
        state: int,
        mask: int,
        propagate: bool,
    ) -> None:
        self._get(window_id)
        self.sent.append(
            {
                "window": window_id,
                "type": source.type,
                "keycode": keycode,
                "state": state,
                "mask": mask,
                "propagate": propagate,
            }
        )

    def flush(self) -> None:
        self.flushes += 1

    def sync(self) -> None:
        self.syncs += 1

    def take_vanished(self) -> set[int]:
        gone, self.vanished = self.vanished, set()
        return gone


# Latin-1 keysyms equal their character codes
def ks(ch: str) -> int:
    return ord(ch)


def build_rows() -> tuple[int, list[tuple[int, ...]]]:
    """
    A small two-group keymap, min keycode 8.

    Group 0 is the active layout, group 1 the alternate one:
        38: a A | o O
        32: o O | r R
        27: r R | p P
        33: p P | a A
        39: s S            (no second group)
        40: x X | ssharp   (ssharp absent from group 0)
        10: 1 ! | + -      (second level empty in group 1)
        21: = +
    """
    rows: list[tuple[int, ...]] = [()] * (60 - 8)

    def put(keycode: int, *syms: int) -> None:
        rows[keycode - 8] = tuple(syms)

    put(38, ks("a"), ks("A"), ks("o"), ks("O"))
    put(32, ks("o"), ks("O"), ks("r"), ks("R"))
    put(27, ks("r"), ks("R"), ks("p"), ks("P"))
    put(33, ks("p"), ks("P"), ks("a"), ks("A"))
    put(39, ks("s"), ks("S"))
    put(40, ks("x"), ks("X"), 0xDF, 0)
    put(10, ks("1"), ks("!"), ks("+"), 0)
    put(21, ks("="), ks("+"))
    return 8, rows


@pytest.fixture
def conn() -> FakeConnection:
    fake = FakeConnection()
    fake.keymap = build_rows()
    return fake


# ----------------------------------------------------------------------
# Stub python-xlib display, for exercising the real Connection
# ----------------------------------------------------------------------
def x_error(cls: type, resource: int) -> error.XError:
    """Build a python-xlib error object from a server error packet."""
    data = struct.pack("=BBHLHB21x", 0, 0, 1, resource, 0, 0)
    # python-xlib resolves resource fields through the display; a bare
    # stub that knows no resource classes keeps the id as a plain int.
    return cls(SimpleNamespace(get_resource_class=lambda name: None), data)


class FakeXWindow:
    """Stands in for an Xlib window resource object."""

    def __init__(self, display: "FakeDisplay", wid: int) -> None:
        self.display = display
        self.id = wid

    def __resource__(self) -> int:
        return self.id

    def _check(self) -> None:
        self.display.maybe_fail()
        if self.id in self.display.gone:
            raise x_error(error.BadWindow, self.id)

    def query_tree(self) -> Any:
        self._check()
        kids = self.display.children.get(self.id, [])
        return SimpleNamespace(children=[FakeResource(c) for c in kids])

    def get_full_property(self, atom: int, prop_type: int) -> Any:
        self._check()
        if (self.id, atom) not in self.display.props:
            return None
        return SimpleNamespace(value=self.display.props[(self.id, atom)])

    def get_attributes(self) -> Any:
        self._check()
        return SimpleNamespace(your_event_mask=self.display.masks.get(self.id, 0))

    def change_attributes(self, onerror: Any = None, event_mask: int = 0) -> None:
        if self.id in self.display.gone:
            self.display.queue_error(x_error(error.BadWindow, self.id), onerror)
            return
        self.display.masks[self.id] = event_mask

    def grab_key(
        self,
        key: int,
        modifiers: int,
        owner_events: bool,
        pointer_mode: int,
        keyboard_mode: int,
        onerror: Any = None,
    ) -> None:
        if self.id in self.display.gone:
            self.display.queue_error(x_error(error.BadWindow, self.id), onerror)
        elif self.id in self.display.grabbed_elsewhere:
            self.display.queue_error(x_error(error.BadAccess, self.id), onerror)
        else:
            self.display.grabs.append(
                (self.id, key, modifiers, owner_events, pointer_mode, keyboard_mode)
            )

    def send_event(
        self,
        event: Any,
        event_mask: int = 0,
        propagate: int = 0,
        onerror: Any = None,
    ) -> None:
        self.display.sent.append((self.id, event, event_mask, propagate, onerror))
        if self.id in self.display.gone:
            self.display.queue_error(x_error(error.BadWindow, self.id), onerror)


class FakeDisplay:
    """
    Stands in for Xlib.display.Display.

    Errors of requests are queued and delivered on sync(), to onerror=
    if given, else to the connection-wide error handler.
    """

    def __init__(self, min_keycode: int = 8, max_keycode: int = 10) -> None:
        self.display = SimpleNamespace(
            info=SimpleNamespace(min_keycode=min_keycode, max_keycode=max_keycode)
        )
        self.error_handler: Any = None
        self.atoms: dict[str, int] = {}
        self.children: dict[int, list[int]] = {}
        self.props: dict[tuple[int, int], Any] = {}
        self.masks: dict[int, int] = {}
        self.gone: set[int] = set()
        self.grabbed_elsewhere: set[int] = set()
        self.grabs: list[tuple] = []
        self.sent: list[tuple] = []
        self.events: deque[Any] = deque()
        self.errors: list[tuple[error.XError, Any]] = []
        self.mapping_requests: list[tuple[int, int]] = []
        self.syncs = 0
        self.flushes = 0
        self.closes = 0
        self.fail: Optional[BaseException] = None

    def maybe_fail(self) -> None:
        if self.fail is not None:
            raise self.fail

    def queue_error(self, err: error.XError, onerror: Any) -> None:
        self.errors.append((err, onerror))

    def get_display_name(self) -> str:
        return ":0"

    def set_error_handler(self, handler: Any) -> None:
        self.error_handler = handler

    def intern_atom(self, name: str, only_if_exists: bool = False) -> int:
        self.maybe_fail()
        return self.atoms.setdefault(name, 300 + len(self.atoms))

    def screen(self) -> Any:
        return SimpleNamespace(root=FakeXWindow(self, ROOT))

    def create_resource_object(self, kind: str, wid: int) -> FakeXWindow:
        return FakeXWindow(self, wid)

    def get_keyboard_mapping(self, first: int, count: int) -> list[list[int]]:
        self.maybe_fail()
        self.mapping_requests.append((first, count))
        return [[0x61 + i, 0x41 + i] for i in range(count)]

    def next_event(self) -> Any:
        self.maybe_fail()
        if not self.events:
            raise error.ConnectionClosedError("server")
        return self.events.popleft()

    def pending_events(self) -> int:
        self.maybe_fail()
        return len(self.events)

    def flush(self) -> None:
        self.maybe_fail()
        self.flushes += 1

    def sync(self) -> None:
        self.maybe_fail()
        self.syncs += 1
        errors, self.errors = self.errors, []
        for err, onerror in errors:
            (onerror or self.error_handler)(err, None)

    def close(self) -> None:
        self.closes += 1
        self.maybe_fail()
