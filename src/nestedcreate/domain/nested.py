"""Translate nested entity descriptions into a builder graph.

An item is a mapping whose keys are either properties of its table (constant
values, ``None`` meaning SQL NULL) or relation names of that table. A relation
value is a single mapping, a list of mappings for one-to-many relations, or
``None`` to link nothing.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from .errors import ValidationError
from .graph import BuilderGraph

if TYPE_CHECKING:
    from .builder import RowBuilder
    from .schema import Relation, SchemaRegistry

log = logging.getLogger(__name__)


def build_create_graph(
    registry: SchemaRegistry,
    table: str,
    items: Sequence[Mapping[str, Any]],
) -> BuilderGraph:
    """Declare one root builder per item and every nested entity below it."""

    schema = registry.get(table)
    if not items:
        raise ValidationError("No entities to create", table=schema.table_id)

    graph = BuilderGraph(registry)
    for item in items:
        root = graph.add_root(schema)
        _populate(graph, root, item)
    log.debug(
        "Declared %s row builders across %s tables for %s top-level %s rows",
        len(graph),
        len(graph.tables),
        len(items),
        schema.table_id,
    )
    return graph


def _populate(graph: BuilderGraph, builder: RowBuilder, item: object) -> None:
    if not isinstance(item, Mapping):
        raise ValidationError(
            f"Expected an object, got {type(item).__name__}",
            table=builder.table_id,
            ordinal=builder.insertion_index,
        )

    schema = builder.schema
    nested: list[tuple[Relation, Any]] = []
    for key, value in item.items():
        if schema.has_property(key):
            builder.set(key, value)
        elif key in schema.relations:
            nested.append((schema.relations[key], value))
        else:
            raise ValidationError(
                "Unknown property or relation",
                table=builder.table_id,
                attribute=str(key),
                ordinal=builder.insertion_index,
            )

    # constants first, so a directly supplied foreign key wins the conflict check
    for relation, value in nested:
        for child_item in _child_items(builder, relation, value):
            child = graph.link_relation(builder, relation.name)
            _populate(graph, child, child_item)


def _child_items(builder: RowBuilder, relation: Relation, value: Any) -> Sequence[Any]:
    if value is None:
        return ()
    if relation.accepts_many:
        if isinstance(value, Mapping) or not isinstance(value, Sequence) or isinstance(value, str):
            raise ValidationError(
                "Expected a list of related entities",
                table=builder.table_id,
                attribute=relation.name,
                ordinal=builder.insertion_index,
            )
        return value
    if not isinstance(value, Mapping):
        raise ValidationError(
            "Expected a single related entity",
            table=builder.table_id,
            attribute=relation.name,
            ordinal=builder.insertion_index,
        )
    return (value,)
