"""
mimic - Entry point.

Run with:  python -m mimic
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Sequence
from typing import Optional

from mimic.config.options import USAGE, Config, parse_args
from mimic.core.dispatch import EventDispatcher
from mimic.core.errors import MimicError, SelectionError
from mimic.core.grab import GrabInstaller
from mimic.core.keymap import KeyboardMapping
from mimic.core.resolver import resolve_targets
from mimic.core.xlib import Connection

log = logging.getLogger("mimic")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


class SafeStreamHandler(logging.StreamHandler):
    """Handler that replaces unencodable characters instead of crashing."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            enc = getattr(self.stream, "encoding", "utf-8") or "utf-8"
            safe = msg.encode(enc, errors="replace").decode(enc, errors="replace")
            self.stream.write(safe + self.terminator)
            self.flush()
        except Exception:
            self.handleError(record)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging to stderr."""
    fmt = "%(asctime)s.%(msecs)03d [%(levelname)s] %(name)s: %(message)s"
    handler = SafeStreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(fmt, datefmt="%H:%M:%S"))

    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.addHandler(handler)


def run(conn: Connection, config: Config) -> None:
    """Resolve, grab and serve until the connection goes away."""
    targets = resolve_targets(conn, config.criteria, config.all_windows)

    installer = GrabInstaller(conn, all_windows=config.all_windows)
    masks = installer.install_all(targets)

    mapping = KeyboardMapping.from_connection(conn)
    dispatcher = EventDispatcher(
        conn,
        mapping,
        config.layout,
        masks,
        all_windows=config.all_windows,
    )
    dispatcher.run()


def main(argv: Optional[Sequence[str]] = None) -> int:
    config = parse_args(argv)
    if config.help:
        sys.stdout.write(USAGE)
        return EXIT_OK

    setup_logging(config.verbose)

    if config.criteria.is_empty:
        log.error("No selection criteria given (use -w, -c, -p or -n; -h for help)")
        return EXIT_FAILURE

    try:
        with Connection.open(config.display) as conn:
            run(conn, config)
    except SelectionError as e:
        log.error("%s", e)
        return EXIT_FAILURE
    except MimicError as e:
        log.error("Fatal: %s", e)
        return EXIT_FAILURE
    except KeyboardInterrupt:
        log.info("Interrupted, exiting")
        return EXIT_INTERRUPTED

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
