"""
mimic.core.keymap - Layout group translation.

Translates a physical key between keyboard layout groups without touching
the server's keyboard state:

    1. Forward: look up the keysym the *target* group produces for the
       keycode at the level selected by the modifier state.
    2. Backward: find the keycode and level that produce that keysym in
       the *active* group, and turn the level back into modifiers.

The result is an event the target window interprets as if the target
group were active.  Keys that cannot be translated come back unchanged.

Keysym columns follow the layout an XKB server gives the core keymap:

    G1L1 G1L2 G2L1 G2L2 G1L3 G1L4 G2L3 G2L4 | G3 ... | G4 ...

Groups 3 and 4 follow the first two, each as wide as the key's widest
group.  The core table does not say how many groups are configured, so
the count comes from the root window's _XKB_RULES_NAMES property.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from mimic.core.xlib import (
    GROUP_MASK,
    GROUP_SHIFT,
    NO_SYMBOL,
    SHIFT_MASK,
    Connection,
)

log = logging.getLogger(__name__)

# Keycodes and modifier values at or above this are never translated
TRANSLATABLE_KEYCODE_LIMIT = 204

# XKB supports at most four groups
MAX_GROUPS = 4

# Groups laid out two columns wide at the start of every row
_LEADING_GROUPS = 2

# Modifiers implied by each level of a group
_LEVEL_MODIFIERS: tuple[int, ...] = (0, SHIFT_MASK)
_LEVELS = len(_LEVEL_MODIFIERS)


def rules_group_count(raw: Any) -> int:
    """
    Number of layouts named by an _XKB_RULES_NAMES value.

    The property holds NUL-separated rules, model, layout, variant and
    options; the layout field is a comma-separated list.  Returns 0 when
    the value is missing or has no layout field.
    """
    if not isinstance(raw, (bytes, bytearray)):
        return 0
    fields = bytes(raw).split(b"\0")
    if len(fields) < 3 or not fields[2]:
        return 0
    return min(len(fields[2].split(b",")), MAX_GROUPS)


def _used_width(row: Sequence[int]) -> int:
    used = len(row)
    while used and row[used - 1] == NO_SYMBOL:
        used -= 1
    return used


@dataclass(frozen=True, slots=True)
class KeyboardMapping:
    """
    Immutable snapshot of the core keyboard mapping.

    *groups* is the number of configured layouts, 0 if unknown.
    """

    min_keycode: int
    keysyms: tuple[tuple[int, ...], ...]
    groups: int = 0

    @classmethod
    def from_rows(
        cls,
        min_keycode: int,
        rows: Sequence[Sequence[int]],
        groups: int = 0,
    ) -> "KeyboardMapping":
        return cls(min_keycode, tuple(tuple(r) for r in rows), groups)

    @classmethod
    def from_connection(cls, conn: Connection) -> "KeyboardMapping":
        min_keycode, rows = conn.keyboard_mapping()
        raw = conn.get_property(conn.root, conn.atoms.xkb_rules_names)
        groups = rules_group_count(raw)
        if not groups:
            log.warning("No XKB layout names on the root window, guessing group count")
        mapping = cls.from_rows(min_keycode, rows, groups)
        log.info(
            "Keyboard mapping: keycodes %d-%d, %d group(s)",
            mapping.min_keycode,
            mapping.max_keycode,
            mapping.group_count,
        )
        return mapping

    @property
    def max_keycode(self) -> int:
        return self.min_keycode + len(self.keysyms) - 1

    @property
    def group_count(self) -> int:
        if self.groups > 0:
            return min(self.groups, MAX_GROUPS)
        # Without layout names only the two leading groups can be told apart
        width = max((len(r) for r in self.keysyms), default=0)
        return max(1, min(_LEADING_GROUPS, (width + _LEVELS - 1) // _LEVELS))

    def _column(self, row: Sequence[int], group: int, level: int) -> int:
        if group < _LEADING_GROUPS:
            return group * _LEVELS + level
        groups = self.group_count
        width = max(_LEVELS, (_used_width(row) + groups - 1) // groups)
        return group * width + level

    def keysym(self, keycode: int, group: int, level: int) -> int:
        """
        Keysym at (group, level) for a keycode, NO_SYMBOL if none.

        An empty second level falls back to the first level of the group.
        """
        idx = keycode - self.min_keycode
        if idx < 0 or idx >= len(self.keysyms):
            return NO_SYMBOL
        row = self.keysyms[idx]
        base = self._column(row, group, 0)
        col = base + level
        sym = row[col] if col < len(row) else NO_SYMBOL
        if sym == NO_SYMBOL and level > 0 and base < len(row):
            sym = row[base]
        return sym

    def lookup(self, keysym: int, group: int) -> tuple[int, int] | None:
        """
        Find (keycode, level) producing *keysym* in *group*.

        Levels are searched in order, lowest keycode first within a
        level, so an unshifted position wins over a shifted one.
        """
        for level in range(_LEVELS):
            for idx, row in enumerate(self.keysyms):
                col = self._column(row, group, level)
                if col < len(row) and row[col] == keysym:
                    return (self.min_keycode + idx, level)
        return None


def active_group(state: int) -> int:
    """The effective group carried in a key event's state."""
    return (state & GROUP_MASK) >> GROUP_SHIFT


def translate(
    mapping: KeyboardMapping,
    keycode: int,
    state: int,
    layout: int,
) -> tuple[int, int]:
    """
    Translate (keycode, state) into the group *layout* steps away from
    the active one.

    Layout 0 is the active group itself.  Groups wrap around the number
    of configured groups.  Returns (keycode, state) unchanged when the
    key cannot be translated.
    """
    if keycode < mapping.min_keycode or keycode >= TRANSLATABLE_KEYCODE_LIMIT:
        return (keycode, state)

    current = active_group(state) % mapping.group_count
    target = (current + layout) % mapping.group_count
    level = 1 if state & SHIFT_MASK else 0

    sym = mapping.keysym(keycode, target, level)
    if sym == NO_SYMBOL:
        return (keycode, state)

    found = mapping.lookup(sym, current)
    if found is None:
        return (keycode, state)
    new_keycode, new_level = found
    modifiers = _LEVEL_MODIFIERS[new_level]

    if new_keycode >= TRANSLATABLE_KEYCODE_LIMIT or modifiers >= TRANSLATABLE_KEYCODE_LIMIT:
        return (keycode, state)

    new_state = (state & ~SHIFT_MASK) | modifiers
    return (new_keycode, new_state)
