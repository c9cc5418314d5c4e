"""Storage-agnostic core of the nested-create engine."""

from __future__ import annotations

from .errors import (
    CapabilityError,
    ConflictError,
    DependencyCycleError,
    InternalInvariantError,
    NestedCreateError,
    ValidationError,
)
from .orchestrator import (
    CreatedRow,
    CreateOrchestrator,
    CreateRequest,
    NestedCreateResult,
    TableResult,
)
from .policy import ConflictPolicy, ConflictStrategy, RowAction
from .schema import EntitySchema, Relation, SchemaDefinitionError, SchemaRegistry, UniqueConstraint

__all__ = [
    "CapabilityError",
    "ConflictError",
    "ConflictPolicy",
    "ConflictStrategy",
    "CreateOrchestrator",
    "CreateRequest",
    "CreatedRow",
    "DependencyCycleError",
    "EntitySchema",
    "InternalInvariantError",
    "NestedCreateError",
    "NestedCreateResult",
    "Relation",
    "RowAction",
    "SchemaDefinitionError",
    "SchemaRegistry",
    "TableResult",
    "UniqueConstraint",
    "ValidationError",
]
