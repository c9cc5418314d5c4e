"""Lightweight SQLAlchemy tables derived from entity schemas.

Statements are built against a private ``Table`` per schema whose column keys
are the schema's *property* names, so parameter dictionaries and returned rows
never need a second translation step.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Final

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Dialect,
    Float,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    TypeDecorator,
    Uuid,
)
from sqlalchemy.exc import NoSuchTableError

from nestedcreate.domain.schema import SchemaDefinitionError

if TYPE_CHECKING:
    from sqlalchemy.engine import Connection

    from nestedcreate.domain.schema import EntitySchema


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


COLUMN_TYPES: Final[dict[str, Any]] = {
    "integer": Integer,
    "bigint": BigInteger,
    "text": Text,
    "string": String,
    "boolean": Boolean,
    "float": Float,
    "numeric": Numeric,
    "json": JSON,
    "date": Date,
    "datetime": UTCDateTime,
    "uuid": Uuid[uuid.UUID],
}


def column_type(name: str) -> Any:
    try:
        return COLUMN_TYPES[name]
    except KeyError as exc:
        raise SchemaDefinitionError(f"Unknown column type {name!r}") from exc


def build_table(
    schema: EntitySchema,
    *,
    reflected: Table | None = None,
    metadata: MetaData | None = None,
) -> Table:
    """Return a ``Table`` for ``schema`` keyed by property name.

    Declared ``column_types`` win; otherwise the type comes from ``reflected``
    (the table as the database describes it), so untyped schemas still get
    integer autoincrement keys and the database's own bind processing.
    """

    identity = set(schema.identity_properties)
    columns = [
        Column(
            column_name,
            *_column_args(schema, prop, column_name, reflected),
            key=prop,
            primary_key=prop in identity,
        )
        for prop, column_name in schema.property_to_column.items()
    ]
    return Table(
        schema.table_name,
        metadata or MetaData(),
        *columns,
        schema=schema.schema_name,
    )


def reflect_table(schema: EntitySchema, connection: Connection) -> Table:
    """Build the statement table for ``schema`` from the live database table."""

    try:
        reflected = Table(
            schema.table_name,
            MetaData(),
            autoload_with=connection,
            schema=schema.schema_name,
        )
    except NoSuchTableError as exc:
        raise SchemaDefinitionError(f"Table {schema.table_id} does not exist") from exc
    return build_table(schema, reflected=reflected)


def _column_args(
    schema: EntitySchema,
    prop: str,
    column_name: str,
    reflected: Table | None,
) -> tuple[Any, ...]:
    if prop in schema.column_types:
        return (column_type(schema.column_types[prop]),)
    if reflected is None:
        return ()
    if column_name not in reflected.c:
        raise SchemaDefinitionError(
            f"Column {column_name} of property {prop} not found in table {schema.table_id}"
        )
    return (reflected.c[column_name].type,)


class TableCache:
    """Per-writer memo of reflected statement tables; schemas hash by identity."""

    def __init__(self) -> None:
        self._tables: dict[EntitySchema, Table] = {}

    def __call__(self, schema: EntitySchema, connection: Connection) -> Table:
        table = self._tables.get(schema)
        if table is None:
            table = self._tables[schema] = reflect_table(schema, connection)
        return table
