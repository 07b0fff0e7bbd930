"""
mimic.core.resolver - Target window resolution.

Walks the window tree and decides which windows the layout is applied to.
The rules here are the single source of truth: if a window passes
`matches()`, mimic grabs its keyboard.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Optional

from mimic.core.errors import SelectionError, WindowGoneError
from mimic.core.window import Window
from mimic.core.xlib import Connection

log = logging.getLogger(__name__)


# ============================================================================
# Criteria
# ============================================================================
@dataclass(frozen=True, slots=True)
class SelectionCriteria:
    """
    Which windows to target.  A field left as None does not filter.

    wm_class is matched against "class.instance" built from WM_CLASS.
    """

    window_id: Optional[int] = None
    wm_class: Optional[str] = None
    pid: Optional[int] = None
    name: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.window_id is None and not self.has_properties

    @property
    def has_properties(self) -> bool:
        """True if any criterion needs window properties to be read."""
        return (
            self.wm_class is not None
            or self.pid is not None
            or self.name is not None
        )


# ============================================================================
# Matching
# ============================================================================
def matches(window: Window, criteria: SelectionCriteria) -> bool:
    """
    Return True if *window* satisfies every property criterion.

    The rules, in order (first failure rejects):
        1. Class: "class.instance" from WM_CLASS equals criteria.wm_class.
           A missing or malformed WM_CLASS rejects the window.
        2. Pid: _NET_WM_PID (0 when unset) equals criteria.pid.
        3. Name: WM_NAME or _NET_WM_NAME equals criteria.name.

    Raises PropertyDecodeError if a text property is not valid UTF-8 and
    WindowGoneError if the window vanished while being inspected.
    """
    wid = window.wid

    if criteria.wm_class is not None:
        pair = window.wm_class
        if pair is None:
            log.debug("Skipped %#010x: no usable WM_CLASS", wid)
            return False
        if f"{pair[0]}.{pair[1]}" != criteria.wm_class:
            return False

    if criteria.pid is not None:
        if window.pid != criteria.pid:
            return False

    if criteria.name is not None:
        if window.name != criteria.name and window.net_name != criteria.name:
            return False

    return True


# ============================================================================
# Tree walk
# ============================================================================
def walk_tree(conn: Connection, root: int) -> Iterator[int]:
    """
    Yield every descendant of *root*, depth-first pre-order.

    Each window is yielded once.  Subtrees that vanish while being
    queried are skipped.
    """
    seen: set[int] = {root}
    stack: list[int] = [root]
    while stack:
        parent = stack.pop()
        try:
            children = conn.children(parent)
        except WindowGoneError:
            log.debug("Skipped subtree of %#010x: window gone", parent)
            continue
        # Reverse so the first child is visited first
        for wid in reversed(children):
            if wid in seen:
                continue
            seen.add(wid)
            stack.append(wid)
        if parent != root:
            yield parent


def resolve_targets(
    conn: Connection,
    criteria: SelectionCriteria,
    all_windows: bool = False,
) -> list[int]:
    """
    Resolve the selection criteria into an ordered list of window ids.

    The explicit window id, if any, comes first and is not verified.
    Tree windows follow in walk order if they satisfy every property
    criterion.  Without all_windows only the first target is kept.

    Raises SelectionError if nothing matched.
    """
    targets: list[int] = []

    if criteria.window_id is not None:
        targets.append(criteria.window_id)

    if criteria.has_properties and (all_windows or not targets):
        for wid in walk_tree(conn, conn.root):
            if wid in targets:
                continue
            try:
                ok = matches(Window(conn, wid), criteria)
            except WindowGoneError:
                log.debug("Skipped %#010x: window gone", wid)
                continue
            if ok:
                log.info("Matched window %#010x", wid)
                targets.append(wid)
                if not all_windows:
                    break

    if not all_windows:
        targets = targets[:1]

    if not targets:
        raise SelectionError("no window matches the selection criteria")

    log.info(
        "Resolved %d target window(s): %s",
        len(targets),
        ", ".join(f"{w:#010x}" for w in targets),
    )
    return targets
