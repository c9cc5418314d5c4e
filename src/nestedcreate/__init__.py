from __future__ import annotations

from importlib import metadata

from nestedcreate.domain import (
    ConflictPolicy,
    CreatedRow,
    CreateOrchestrator,
    CreateRequest,
    EntitySchema,
    NestedCreateResult,
    Relation,
    RowAction,
    SchemaRegistry,
    TableResult,
    UniqueConstraint,
)

try:
    __version__ = metadata.version("nestedcreate")
except metadata.PackageNotFoundError:
    __version__ = "0.0.0+local"

__all__ = [
    "ConflictPolicy",
    "CreateOrchestrator",
    "CreateRequest",
    "CreatedRow",
    "EntitySchema",
    "NestedCreateResult",
    "Relation",
    "RowAction",
    "SchemaRegistry",
    "TableResult",
    "UniqueConstraint",
    "__version__",
]
