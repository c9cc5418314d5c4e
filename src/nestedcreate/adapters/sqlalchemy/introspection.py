"""Derive entity schemas from declared SQLAlchemy tables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Float,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy import UniqueConstraint as SqlUniqueConstraint

from nestedcreate.domain.schema import EntitySchema, Relation, UniqueConstraint

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy import Column, ForeignKeyConstraint, Table
    from sqlalchemy.types import TypeEngine

# subclasses before their bases
_TYPE_NAMES: tuple[tuple[type[TypeEngine[object]], str], ...] = (
    (BigInteger, "bigint"),
    (Integer, "integer"),
    (Text, "text"),
    (String, "string"),
    (Boolean, "boolean"),
    (Float, "float"),
    (Numeric, "numeric"),
    (JSON, "json"),
    (DateTime, "datetime"),
    (Date, "date"),
    (Uuid, "uuid"),
)


def table_id_of(table: Table) -> str:
    return f"{table.schema}.{table.name}" if table.schema else table.name


def type_name_of(column: Column[object]) -> str | None:
    column_type = column.type
    decorated = getattr(column_type, "impl", None)
    for candidate in (column_type, decorated):
        if candidate is None:
            continue
        for sql_type, name in _TYPE_NAMES:
            if isinstance(candidate, sql_type):
                return name
    return None


def entity_schema_from_table(
    table: Table,
    *,
    relations: Iterable[Relation] = (),
    can_insert: bool = True,
    can_update: bool = True,
) -> EntitySchema:
    """Build an ``EntitySchema`` whose property names are the column keys.

    The primary key becomes the identity, unique constraints and unique indexes
    become unique constraints, and non-nullable columns the database cannot
    fill in become required properties.
    """

    autoincrement = table.autoincrement_column
    uniques: dict[tuple[str, ...], None] = {}
    for constraint in table.constraints:
        if isinstance(constraint, SqlUniqueConstraint):
            uniques.setdefault(tuple(column.key for column in constraint.columns), None)
    for index in table.indexes:
        if index.unique:
            uniques.setdefault(tuple(column.key for column in index.columns), None)

    column_types: dict[str, str] = {}
    required: list[str] = []
    for column in table.columns:
        type_name = type_name_of(column)
        if type_name is not None:
            column_types[column.key] = type_name
        if _is_required(column, autoincrement=autoincrement):
            required.append(column.key)

    return EntitySchema(
        table_id=table_id_of(table),
        property_to_column={column.key: column.name for column in table.columns},
        identity_properties=tuple(column.key for column in table.primary_key.columns),
        unique_constraints=tuple(UniqueConstraint(columns) for columns in uniques),
        column_types=column_types,
        required_properties=tuple(required),
        relations={relation.name: relation for relation in relations},
        can_insert=can_insert,
        can_update=can_update,
    )


def forward_relation(constraint: ForeignKeyConstraint, name: str) -> Relation:
    """Relation from the referencing table to the single row it points at."""

    return Relation(
        name=name,
        remote_table=table_id_of(constraint.referred_table),
        local_properties=tuple(column.key for column in constraint.columns),
        remote_properties=tuple(element.column.key for element in constraint.elements),
        is_referencee=False,
    )


def reverse_relation(
    constraint: ForeignKeyConstraint,
    name: str,
    *,
    is_unique: bool = False,
) -> Relation:
    """Relation from the referenced table to the rows pointing at it."""

    return Relation(
        name=name,
        remote_table=table_id_of(constraint.table),
        local_properties=tuple(element.column.key for element in constraint.elements),
        remote_properties=tuple(column.key for column in constraint.columns),
        is_referencee=True,
        is_unique=is_unique,
    )


def _is_required(column: Column[object], *, autoincrement: Column[object] | None) -> bool:
    if column.nullable or column is autoincrement:
        return False
    return column.default is None and column.server_default is None
