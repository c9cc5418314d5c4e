"""SQLAlchemy adapter package for nestedcreate."""

from __future__ import annotations

from .introspection import entity_schema_from_table, forward_relation, reverse_relation
from .coercion import coerce_rows
from .tables import COLUMN_TYPES, build_table, reflect_table
from .unit_of_work import (
    SqlAlchemyUnitOfWork,
    StartupError,
    configured_engine,
    is_started,
    shutdown,
    startup,
)
from .writer import SqlAlchemyBatchWriter

__all__ = [
    "COLUMN_TYPES",
    "SqlAlchemyBatchWriter",
    "SqlAlchemyUnitOfWork",
    "StartupError",
    "build_table",
    "coerce_rows",
    "configured_engine",
    "entity_schema_from_table",
    "forward_relation",
    "is_started",
    "reflect_table",
    "reverse_relation",
    "shutdown",
    "startup",
]
