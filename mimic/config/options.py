"""
mimic.config.options - Command line configuration.

Parses argv into an immutable Config.  Help is a Config field rather than
an argparse action so the caller decides when to print it: always before
any connection to the X server is made.
"""

from __future__ import annotations

import argparse
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Optional

from mimic.core.resolver import SelectionCriteria


USAGE = """\
mimic
  use a different keyboard layout for a given window.

usage:
  -h, --help              print this help message
  -w, --window <wid>      run on the window with the given X11 id
  -c, --class <cls.inst>  run on a window whose WM_CLASS is class.instance
  -p, --pid <pid>         run on a window owned by the given process id
  -n, --name <name>       run on a window with the given WM_NAME or
                          _NET_WM_NAME
  -l, --layout <index>    layout group to use, relative to the active one
                          (default: 0)
  -a, --all               apply to every matching window, not only the first
  -d, --display <name>    X display to connect to (default: $DISPLAY)
  -v, --verbose           debug logging

how to use:
  1. set up two layouts with setxkbmap:
       $ setxkbmap -layout dvorak,us
  2. run with the window you want typed in the second layout:
       $ mimic -w 123456 -l 1
  3. if the window id is correct, the window receives translated keys
"""


@dataclass(frozen=True, slots=True)
class Config:
    """Resolved command line options."""

    help: bool = False
    window_id: Optional[int] = None
    wm_class: Optional[str] = None
    pid: Optional[int] = None
    name: Optional[str] = None
    layout: int = 0
    all_windows: bool = False
    display: Optional[str] = None
    verbose: bool = False

    @property
    def criteria(self) -> SelectionCriteria:
        return SelectionCriteria(
            window_id=self.window_id,
            wm_class=self.wm_class,
            pid=self.pid,
            name=self.name,
        )


def _window_id(text: str) -> int:
    """Accept decimal or 0x-prefixed hex, as xwininfo prints both."""
    try:
        value = int(text, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid window id: {text!r}")
    if value <= 0:
        raise argparse.ArgumentTypeError(f"invalid window id: {text!r}")
    return value


def _non_negative(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {text!r}")
    if value < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0: {text!r}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mimic",
        usage="mimic [-h] [-w WID] [-c CLASS.INSTANCE] [-p PID] [-n NAME] "
        "[-l INDEX] [-a] [-d DISPLAY] [-v]",
        add_help=False,
    )
    parser.add_argument("-h", "--help", action="store_true")
    parser.add_argument("-w", "--window", dest="window_id", type=_window_id)
    parser.add_argument("-c", "--class", dest="wm_class", metavar="CLASS.INSTANCE")
    parser.add_argument("-p", "--pid", type=_non_negative)
    parser.add_argument("-n", "--name")
    parser.add_argument("-l", "--layout", type=_non_negative, default=0)
    parser.add_argument("-a", "--all", dest="all_windows", action="store_true")
    parser.add_argument("-d", "--display")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> Config:
    """
    Parse command line arguments into a Config.

    Invalid arguments make argparse print a usage error and raise
    SystemExit(2).
    """
    ns = build_parser().parse_args(argv)
    return Config(
        help=ns.help,
        window_id=ns.window_id,
        wm_class=ns.wm_class,
        pid=ns.pid,
        name=ns.name,
        layout=ns.layout,
        all_windows=ns.all_windows,
        display=ns.display,
        verbose=ns.verbose,
    )
