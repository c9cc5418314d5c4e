"""Application orchestration entry points."""

from __future__ import annotations

from functools import partial
from logging import getLogger
from typing import TYPE_CHECKING

from nestedcreate.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyUnitOfWork,
    is_started,
    startup,
)
from nestedcreate.config.limits import get_write_limits
from nestedcreate.domain.orchestrator import CreateOrchestrator

if TYPE_CHECKING:
    from nestedcreate.config.limits import WriteLimits
    from nestedcreate.domain.orchestrator import (
        CreateRequest,
        NestedCreateResult,
        UnitOfWorkFactory,
    )
    from nestedcreate.domain.schema import SchemaRegistry


log = getLogger(__name__)


def create_nested(
    request: CreateRequest,
    *,
    registry: SchemaRegistry,
    limits: WriteLimits | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> NestedCreateResult:
    """Run one nested create against the configured database."""

    effective_limits = limits or get_write_limits()
    if unit_of_work_factory is None:
        if not is_started():
            startup()
        unit_of_work_factory = partial(
            SqlAlchemyUnitOfWork, param_limit=effective_limits.param_limit
        )
    log.info(
        "Starting nested create into %s: items=%s, on_conflict=%s",
        request.table,
        len(request.items),
        request.on_conflict.strategy.value,
    )
    orchestrator = CreateOrchestrator(registry, unit_of_work_factory, effective_limits)
    return orchestrator.create(request)
