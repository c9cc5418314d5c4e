"""Dependency graph over the row builders of one request.

The graph is explicit and request-scoped:
- callers declare builders (roots for top-level entities) and link relations
- every link records a forward slot on the waiting builder and a reverse edge
  (``dependents``) on the builder it waits for
- layers are drained in dependency order until nothing is pending

A link that would close a cycle is refused up front by walking the reverse
edges, so resolution can never stall on a cyclic subgraph.
"""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING

from .builder import RowBuilder
from .errors import DependencyCycleError, InternalInvariantError, ValidationError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .schema import EntitySchema, SchemaRegistry


type Layer = dict[str, list[RowBuilder]]


class BuilderGraph:
    """Pending row builders grouped per table, in declaration order."""

    def __init__(self, registry: SchemaRegistry) -> None:
        self.registry = registry
        self._builders: list[RowBuilder] = []
        self._roots: list[RowBuilder] = []
        self._pending: dict[str, list[RowBuilder]] = {}

    @property
    def builders(self) -> tuple[RowBuilder, ...]:
        return tuple(self._builders)

    @property
    def roots(self) -> tuple[RowBuilder, ...]:
        return tuple(self._roots)

    @property
    def pending_count(self) -> int:
        return sum(len(builders) for builders in self._pending.values())

    @property
    def tables(self) -> tuple[str, ...]:
        """Tables in the order their first builder was declared."""

        return tuple(dict.fromkeys(builder.table_id for builder in self._builders))

    def __len__(self) -> int:
        return len(self._builders)

    def add_builder(self, table: str | EntitySchema) -> RowBuilder:
        schema = self.registry.get(table) if isinstance(table, str) else table
        builder = RowBuilder(schema, insertion_index=len(self._builders) + 1)
        self._builders.append(builder)
        self._pending.setdefault(schema.table_id, []).append(builder)
        return builder

    def add_root(self, table: str | EntitySchema) -> RowBuilder:
        builder = self.add_builder(table)
        self._roots.append(builder)
        return builder

    def builders_for(self, table_id: str) -> tuple[RowBuilder, ...]:
        return tuple(builder for builder in self._builders if builder.table_id == table_id)

    def link_relation(
        self,
        parent: RowBuilder,
        relation_name: str,
        child: RowBuilder | None = None,
    ) -> RowBuilder:
        """Link ``parent`` to a (new or given) child through ``relation_name``.

        When the parent is referenced, the child's foreign key waits on the
        parent; otherwise the parent's foreign key waits on the child.
        """

        relation = parent.schema.relations.get(relation_name)
        if relation is None:
            raise ValidationError(
                "Unknown relation",
                table=parent.table_id,
                attribute=relation_name,
                ordinal=parent.insertion_index,
            )
        if child is None:
            child = self.add_builder(relation.remote_table)
        elif child.table_id != relation.remote_table:
            raise ValidationError(
                f"Relation {relation_name} expects a {relation.remote_table} row, "
                f"got {child.table_id}",
                table=parent.table_id,
                attribute=relation_name,
                ordinal=parent.insertion_index,
            )

        if relation.is_referencee:
            self._link(child, relation.remote_properties, parent, relation.local_properties)
        else:
            self._link(parent, relation.local_properties, child, relation.remote_properties)
        return child

    def link(
        self,
        dependent: RowBuilder,
        attributes: Sequence[str],
        source: RowBuilder,
        source_attributes: Sequence[str],
    ) -> None:
        """Make ``dependent.attributes`` wait on ``source.source_attributes``."""

        if len(attributes) != len(source_attributes):
            raise ValidationError(
                "Linked attributes must pair one to one", table=dependent.table_id
            )
        self._link(dependent, attributes, source, source_attributes)

    def _link(
        self,
        dependent: RowBuilder,
        attributes: Sequence[str],
        source: RowBuilder,
        source_attributes: Sequence[str],
    ) -> None:
        self._assert_acyclic(dependent, source, attribute=attributes[0])
        for attribute, source_attribute in zip(attributes, source_attributes, strict=True):
            dependent.wait_for(attribute, source=source, source_attribute=source_attribute)

    def _assert_acyclic(self, dependent: RowBuilder, source: RowBuilder, *, attribute: str) -> None:
        # a cycle exists if ``source`` already waits (transitively) on ``dependent``
        seen: set[int] = set()
        queue: deque[RowBuilder] = deque([dependent])
        while queue:
            current = queue.popleft()
            if current is source:
                raise DependencyCycleError(
                    f"Linking {dependent.table_id}#{dependent.insertion_index} to "
                    f"{source.table_id}#{source.insertion_index} creates a dependency cycle",
                    table=dependent.table_id,
                    attribute=attribute,
                    ordinal=dependent.insertion_index,
                )
            if current.insertion_index in seen:
                continue
            seen.add(current.insertion_index)
            for refs in current.dependents.values():
                queue.extend(ref.builder for ref in refs)

    def validate_required(self) -> None:
        """Reject builders missing a required property that is neither set nor linked."""

        for builder in self._builders:
            for prop in builder.schema.required_properties:
                if not builder.is_set(prop):
                    raise ValidationError(
                        "Missing required attribute",
                        table=builder.table_id,
                        attribute=prop,
                        ordinal=builder.insertion_index,
                    )

    def depth(self) -> int:
        """Length of the longest dependency chain, i.e. the number of layers needed."""

        memo: dict[int, int] = {}
        for builder in self._builders:
            self._depth_of(builder, memo)
        return max(memo.values(), default=0)

    def _depth_of(self, builder: RowBuilder, memo: dict[int, int]) -> int:
        stack: list[tuple[RowBuilder, bool]] = [(builder, False)]
        while stack:
            current, expanded = stack.pop()
            if current.insertion_index in memo:
                continue
            sources = list(current.dependency_sources())
            if expanded:
                memo[current.insertion_index] = 1 + max(
                    (memo[source.insertion_index] for source in sources), default=0
                )
                continue
            stack.append((current, True))
            stack.extend(
                (source, False) for source in sources if source.insertion_index not in memo
            )
        return memo[builder.insertion_index]

    def resolve_one_layer(self) -> Layer | None:
        """Return dependency-free builders grouped by table, or ``None`` when done."""

        layer: Layer = {}
        for table_id, builders in self._pending.items():
            ready = [builder for builder in builders if not builder.has_dependencies()]
            if ready:
                layer[table_id] = ready
        if layer:
            return layer
        if self.pending_count:
            stuck = next(builder for builders in self._pending.values() for builder in builders)
            raise InternalInvariantError(
                "No dependency-free row builder left while rows are still pending",
                table=stuck.table_id,
                attribute=", ".join(stuck.pending_attributes()),
                ordinal=stuck.insertion_index,
            )
        return None

    def mark_written(self, table_id: str, written: Sequence[RowBuilder]) -> None:
        written_ids = {builder.insertion_index for builder in written}
        remaining = [
            builder
            for builder in self._pending.get(table_id, ())
            if builder.insertion_index not in written_ids
        ]
        if remaining:
            self._pending[table_id] = remaining
        else:
            self._pending.pop(table_id, None)
