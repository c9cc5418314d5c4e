"""Create Orchestrator: one nested-create request, one transaction."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from nestedcreate.config.limits import WriteLimits

from .errors import CapabilityError, InternalInvariantError, ValidationError
from .nested import build_create_graph
from .policy import ConflictPolicy, ConflictStrategy
from .resolution import resolve_graph

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from .builder import RowBuilder
    from .graph import BuilderGraph
    from .policy import RowAction
    from .ports.unit_of_work import CreateUnitOfWork
    from .resolution import TableTally
    from .schema import EntitySchema, SchemaRegistry

log = logging.getLogger(__name__)

type UnitOfWorkFactory = Callable[[], CreateUnitOfWork]


@dataclass(frozen=True, slots=True, kw_only=True)
class CreateRequest:
    """Top-level entities of ``table`` with their nested related entities."""

    table: str
    items: Sequence[Mapping[str, Any]]
    on_conflict: ConflictPolicy = field(default_factory=ConflictPolicy.error)
    table_policies: Mapping[str, ConflictPolicy] = field(
        default_factory=dict[str, ConflictPolicy]
    )
    select_identity: bool = True


@dataclass(frozen=True, slots=True)
class CreatedRow:
    table: str
    values: dict[str, Any]
    action: RowAction


@dataclass(frozen=True, slots=True)
class TableResult:
    total_count: int
    affected_count: int
    rows: tuple[CreatedRow, ...]


@dataclass(frozen=True, slots=True)
class NestedCreateResult:
    """Per-table outcome plus the top-level rows in caller order."""

    tables: dict[str, TableResult]
    items: tuple[CreatedRow, ...]

    @property
    def affected_count(self) -> int:
        return sum(table.affected_count for table in self.tables.values())

    def table(self, table_id: str) -> TableResult:
        return self.tables[table_id]


class CreateOrchestrator:
    def __init__(
        self,
        registry: SchemaRegistry,
        unit_of_work_factory: UnitOfWorkFactory,
        limits: WriteLimits | None = None,
    ) -> None:
        self.registry = registry
        self.unit_of_work_factory = unit_of_work_factory
        self.limits = limits or WriteLimits()

    def create(self, request: CreateRequest) -> NestedCreateResult:
        """Validate, plan and write ``request`` atomically.

        Everything that can be rejected from the input alone is rejected
        before a transaction is opened. A failure in any layer rolls back
        every layer already written and propagates unchanged.
        """

        graph = build_create_graph(self.registry, request.table, request.items)
        self._check_limits(graph)
        graph.validate_required()
        policies = self._resolve_policies(graph, request)

        root_table = self.registry.get(request.table).table_id
        identity_tables = (root_table,) if request.select_identity else ()
        log.debug(
            "Creating %s %s rows (%s rows across %s tables, policy=%s)",
            len(graph.roots),
            root_table,
            len(graph),
            len(graph.tables),
            request.on_conflict.strategy.value,
        )

        with self.unit_of_work_factory() as uow:
            tallies = resolve_graph(
                graph,
                writer=uow.writer,
                policy_for=policies.get,
                identity_tables=identity_tables,
                max_layers=self.limits.max_layers,
            )
            uow.commit()

        result = _build_result(graph, tallies)
        log.info(
            "Finished nested create: %s",
            ", ".join(
                f"{table_id}={table.affected_count}/{table.total_count}"
                for table_id, table in result.tables.items()
            ),
        )
        return result

    def _check_limits(self, graph: BuilderGraph) -> None:
        if len(graph) > self.limits.max_bulk_rows:
            raise ValidationError(
                f"Nested create of {len(graph)} rows exceeds the limit of "
                f"{self.limits.max_bulk_rows}"
            )
        depth = graph.depth()
        if depth > self.limits.max_layers:
            raise ValidationError(
                f"Nested create needs {depth} dependency layers, the limit is "
                f"{self.limits.max_layers}"
            )

    def _resolve_policies(
        self,
        graph: BuilderGraph,
        request: CreateRequest,
    ) -> dict[str, ConflictPolicy]:
        for table_id in request.table_policies:
            if table_id not in self.registry:
                raise ValidationError("Conflict policy given for an unknown table", table=table_id)

        root_table = self.registry.get(request.table).table_id
        policies: dict[str, ConflictPolicy] = {}
        for table_id in graph.tables:
            schema = self.registry.get(table_id)
            if not schema.can_insert:
                raise CapabilityError("Table does not allow inserts", table=table_id)
            if table_id in request.table_policies:
                policy = request.table_policies[table_id]
                _check_update_columns(schema, policy)
            elif table_id == root_table:
                policy = request.on_conflict
                _check_update_columns(schema, policy)
            else:
                policy = _policy_for_nested(schema, request.on_conflict)
            if policy.requires_update and not schema.can_update:
                log.info(
                    "Table %s does not allow updates; using 'ignore' instead of '%s'",
                    table_id,
                    policy.strategy.value,
                )
                policy = policy.narrowed()
            policies[table_id] = policy
        return policies


def _check_update_columns(schema: EntitySchema, policy: ConflictPolicy) -> None:
    if policy.strategy is not ConflictStrategy.UPDATE:
        return
    for column in policy.columns:
        if not schema.has_property(column):
            raise ValidationError(
                "Unknown column in conflict update list",
                table=schema.table_id,
                attribute=column,
            )


def _build_result(graph: BuilderGraph, tallies: Mapping[str, TableTally]) -> NestedCreateResult:
    tables = {
        table_id: TableResult(
            total_count=tally.total_count,
            affected_count=tally.affected_count,
            rows=tuple(_created_row(builder) for builder in tally.ordered_builders()),
        )
        for table_id, tally in tallies.items()
    }
    return NestedCreateResult(
        tables=tables,
        items=tuple(_created_row(builder) for builder in graph.roots),
    )


def _created_row(builder: RowBuilder) -> CreatedRow:
    if builder.action is None:
        raise InternalInvariantError(
            "Row was never written", table=builder.table_id, ordinal=builder.insertion_index
        )
    return CreatedRow(table=builder.table_id, values=builder.plain_object(), action=builder.action)


def _policy_for_nested(schema: EntitySchema, policy: ConflictPolicy) -> ConflictPolicy:
    # the request-wide update list only applies to the columns a nested table has
    if policy.strategy is not ConflictStrategy.UPDATE:
        return policy
    columns = tuple(column for column in policy.columns if schema.has_property(column))
    if not columns:
        return ConflictPolicy.ignore()
    return ConflictPolicy.update_columns(*columns)
