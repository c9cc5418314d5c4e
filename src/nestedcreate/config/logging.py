"""CLI log output."""

from __future__ import annotations

import logging
import sys
from typing import Final

LOG_FORMAT: Final[str] = "%(levelname)-7s %(name)s: %(message)s"
HANDLER_NAME: Final[str] = "nestedcreate"

# SQL echo only with --verbose
_QUIET_BELOW_VERBOSE: Final[tuple[str, ...]] = ("sqlalchemy.engine",)


def configure_logging(*, verbose: bool = False) -> None:
    """Send log records to stderr, keeping stdout free for the JSON result.

    ``verbose`` lowers the threshold to DEBUG, which includes the writer's
    per-table summaries and the SQL SQLAlchemy emits.
    """

    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root = logging.getLogger()
    for stale in [known for known in root.handlers if known.get_name() == HANDLER_NAME]:
        root.removeHandler(stale)
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    for name in _QUIET_BELOW_VERBOSE:
        logging.getLogger(name).setLevel(logging.INFO if verbose else logging.WARNING)
