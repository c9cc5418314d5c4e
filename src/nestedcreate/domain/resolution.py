"""Layer-by-layer driver that drains a builder graph through a batch writer."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .errors import InternalInvariantError, ValidationError

if TYPE_CHECKING:
    from collections.abc import Callable, Collection, Iterable

    from .builder import RowBuilder
    from .graph import BuilderGraph, Layer
    from .policy import ConflictPolicy
    from .ports.writing import BatchWriter, WriteResult

log = logging.getLogger(__name__)

type PolicyLookup = Callable[[str], ConflictPolicy | None]


@dataclass(slots=True)
class TableTally:
    """Accumulated outcome of every write to one table within a request."""

    table_id: str
    total_count: int = 0
    affected_count: int = 0
    builders: list[RowBuilder] = field(default_factory=list["RowBuilder"])

    def add(self, result: WriteResult, builders: Iterable[RowBuilder]) -> None:
        self.total_count += result.total_count
        self.affected_count += result.affected_count
        self.builders.extend(builders)

    def ordered_builders(self) -> list[RowBuilder]:
        return sorted(self.builders, key=lambda builder: builder.insertion_index)


def returning_for(
    table_id: str,
    builders: Iterable[RowBuilder],
    *,
    identity: Collection[str] = (),
) -> tuple[str, ...]:
    """Properties a table write must echo: dependency sources, then identity."""

    wanted: dict[str, None] = {}
    for builder in builders:
        for attribute in builder.dependent_attributes():
            wanted.setdefault(attribute, None)
    for attribute in identity:
        wanted.setdefault(attribute, None)
    log.debug("Returning %s from %s", ", ".join(wanted) or "nothing", table_id)
    return tuple(wanted)


def execute_layer(
    layer: Layer,
    *,
    writer: BatchWriter,
    policy_for: PolicyLookup,
    identity_tables: Collection[str] = (),
) -> dict[str, WriteResult]:
    """Write every ready builder of ``layer``, one batch per table, in layer order."""

    results: dict[str, WriteResult] = {}
    for table_id, builders in layer.items():
        schema = builders[0].schema
        identity = schema.identity_properties if table_id in identity_tables else ()
        returning = returning_for(table_id, builders, identity=identity)
        rows = [builder.plain_row() for builder in builders]

        result = writer.write(
            rows,
            schema=schema,
            policy=policy_for(table_id),
            returning=returning,
        )
        written = result.rows
        if written is None or result.total_count != len(builders) or len(written) != len(builders):
            raise InternalInvariantError(
                f"Writer reported {result.total_count} rows for {len(builders)} inputs",
                table=table_id,
            )

        for builder, row in zip(builders, written, strict=True):
            builder.on_values_resolved(row.values, row.action)
            if builder.dependent_attributes():
                raise InternalInvariantError(
                    "Written row did not return every attribute its dependents wait on",
                    table=table_id,
                    attribute=", ".join(builder.dependent_attributes()),
                    ordinal=builder.insertion_index,
                )
        results[table_id] = result
    return results


def resolve_graph(
    graph: BuilderGraph,
    *,
    writer: BatchWriter,
    policy_for: PolicyLookup,
    identity_tables: Collection[str] = (),
    max_layers: int | None = None,
) -> dict[str, TableTally]:
    """Drain ``graph`` until nothing is pending; tallies follow first-declared table order."""

    tallies = {table_id: TableTally(table_id) for table_id in graph.tables}
    layers = 0
    while (layer := graph.resolve_one_layer()) is not None:
        layers += 1
        if max_layers is not None and layers > max_layers:
            raise ValidationError(f"Nested create needs more than {max_layers} dependency layers")
        log.debug(
            "Layer %s: %s",
            layers,
            ", ".join(f"{table_id}={len(builders)}" for table_id, builders in layer.items()),
        )
        results = execute_layer(
            layer,
            writer=writer,
            policy_for=policy_for,
            identity_tables=identity_tables,
        )
        for table_id, result in results.items():
            tallies[table_id].add(result, layer[table_id])
            graph.mark_written(table_id, layer[table_id])
    return tallies
