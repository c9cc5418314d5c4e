from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pytest

from nestedcreate.config.logging import HANDLER_NAME, configure_logging

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture(autouse=True)
def restore_root_logger() -> Iterator[None]:
    root = logging.getLogger()
    engine = logging.getLogger("sqlalchemy.engine")
    handlers, level, engine_level = list(root.handlers), root.level, engine.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    engine.setLevel(engine_level)


def _own_handlers() -> list[logging.Handler]:
    root = logging.getLogger()
    return [handler for handler in root.handlers if handler.get_name() == HANDLER_NAME]


def test_reconfiguring_replaces_the_handler() -> None:
    configure_logging()
    configure_logging(verbose=True)

    assert len(_own_handlers()) == 1
    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("sqlalchemy.engine").getEffectiveLevel() == logging.INFO


def test_sql_is_quiet_by_default() -> None:
    configure_logging()

    assert logging.getLogger().level == logging.INFO
    assert not logging.getLogger("sqlalchemy.engine").isEnabledFor(logging.INFO)
