"""Static per-table metadata consumed by the engine.

The surrounding application supplies one ``EntitySchema`` per table. It is
read-only configuration: the engine never mutates it and resolves
property→column mappings through it exactly once per table.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping


class SchemaDefinitionError(ValueError):
    """Raised when table or relation metadata is inconsistent."""


@dataclass(frozen=True, slots=True)
class UniqueConstraint:
    """A set of properties whose combined values must be unique."""

    columns: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.columns:
            raise SchemaDefinitionError("Unique constraint must name at least one column")


@dataclass(frozen=True, slots=True, kw_only=True)
class Relation:
    """A foreign-key edge seen from one table.

    With ``is_referencee`` set, rows of ``remote_table`` hold the foreign key
    (``remote_properties``) pointing at this table's ``local_properties``; a
    parent can then own many children unless ``is_unique``. Otherwise this
    table's ``local_properties`` reference ``remote_properties`` of a single
    remote row.
    """

    name: str
    remote_table: str
    local_properties: tuple[str, ...]
    remote_properties: tuple[str, ...]
    is_referencee: bool
    is_unique: bool = False

    def __post_init__(self) -> None:
        if not self.local_properties or len(self.local_properties) != len(
            self.remote_properties
        ):
            raise SchemaDefinitionError(
                f"Relation {self.name} must pair local and remote properties one to one"
            )

    @property
    def accepts_many(self) -> bool:
        return self.is_referencee and not self.is_unique


@dataclass(frozen=True, slots=True, kw_only=True, eq=False)
class EntitySchema:
    """Metadata for one writable table."""

    table_id: str
    property_to_column: Mapping[str, str]
    identity_properties: tuple[str, ...]
    unique_constraints: tuple[UniqueConstraint, ...] = ()
    column_types: Mapping[str, str] = field(default_factory=dict[str, str])
    required_properties: tuple[str, ...] = ()
    relations: Mapping[str, Relation] = field(default_factory=dict[str, Relation])
    can_insert: bool = True
    can_update: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "property_to_column", MappingProxyType(dict(self.property_to_column))
        )
        object.__setattr__(self, "column_types", MappingProxyType(dict(self.column_types)))
        object.__setattr__(self, "relations", MappingProxyType(dict(self.relations)))

        if not self.identity_properties:
            raise SchemaDefinitionError(f"Table {self.table_id} does not have a primary key")
        self._require_known(self.identity_properties, role="identity")
        for constraint in self.unique_constraints:
            self._require_known(constraint.columns, role="unique constraint")
        self._require_known(self.required_properties, role="required")
        self._require_known(tuple(self.column_types), role="typed")
        for name, relation in self.relations.items():
            if name != relation.name:
                raise SchemaDefinitionError(
                    f"Relation registered as {name} on {self.table_id} is named {relation.name}"
                )
            if name in self.property_to_column:
                raise SchemaDefinitionError(
                    f"Relation {name} on {self.table_id} shadows a property of the same name"
                )
            self._require_known(relation.local_properties, role=f"relation {name}")

    @property
    def properties(self) -> tuple[str, ...]:
        return tuple(self.property_to_column)

    @property
    def constraints(self) -> tuple[tuple[str, ...], ...]:
        """Identity first, then declared unique constraints, without repeats."""

        seen: dict[tuple[str, ...], None] = {self.identity_properties: None}
        for constraint in self.unique_constraints:
            seen.setdefault(constraint.columns, None)
        return tuple(seen)

    @property
    def schema_name(self) -> str | None:
        schema, _, _ = self.table_id.rpartition(".")
        return schema or None

    @property
    def table_name(self) -> str:
        return self.table_id.rpartition(".")[2]

    def column_for(self, prop: str) -> str:
        try:
            return self.property_to_column[prop]
        except KeyError as exc:
            raise SchemaDefinitionError(f"Unknown property {prop} on {self.table_id}") from exc

    def has_property(self, prop: str) -> bool:
        return prop in self.property_to_column

    def relation(self, name: str) -> Relation:
        try:
            return self.relations[name]
        except KeyError as exc:
            raise SchemaDefinitionError(f"Relation {name} not found on {self.table_id}") from exc

    def _require_known(self, properties: Iterable[str], *, role: str) -> None:
        unknown = [prop for prop in properties if prop not in self.property_to_column]
        if unknown:
            raise SchemaDefinitionError(
                f"Unknown {role} properties on {self.table_id}: {', '.join(unknown)}"
            )


class SchemaRegistry:
    """Arena of ``EntitySchema`` objects keyed by table id."""

    def __init__(self, schemas: Iterable[EntitySchema]) -> None:
        self._schemas: dict[str, EntitySchema] = {}
        for schema in schemas:
            if schema.table_id in self._schemas:
                raise SchemaDefinitionError(f"Table {schema.table_id} registered twice")
            self._schemas[schema.table_id] = schema
        self._validate_relations()

    def __contains__(self, table_id: object) -> bool:
        return table_id in self._schemas

    def __iter__(self) -> Iterator[EntitySchema]:
        return iter(self._schemas.values())

    def __len__(self) -> int:
        return len(self._schemas)

    def get(self, table_id: str) -> EntitySchema:
        try:
            return self._schemas[table_id]
        except KeyError as exc:
            raise SchemaDefinitionError(f"Unknown table {table_id}") from exc

    def _validate_relations(self) -> None:
        for schema in self._schemas.values():
            for relation in schema.relations.values():
                remote = self._schemas.get(relation.remote_table)
                if remote is None:
                    raise SchemaDefinitionError(
                        f"Relation {schema.table_id}.{relation.name} targets unknown table "
                        f"{relation.remote_table}"
                    )
                remote._require_known(  # noqa: SLF001
                    relation.remote_properties,
                    role=f"relation {schema.table_id}.{relation.name}",
                )
