"""Pydantic models describing JSON table definitions."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import cast

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from nestedcreate.adapters.sqlalchemy.tables import COLUMN_TYPES
from nestedcreate.domain.schema import (
    EntitySchema,
    Relation,
    SchemaDefinitionError,
    SchemaRegistry,
    UniqueConstraint,
)


class SchemaFileModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)


class PropertyModel(SchemaFileModel):
    column: str | None = None
    type: str | None = None
    required: bool = False

    @model_validator(mode="before")
    @classmethod
    def _column_shorthand(cls, value: object) -> object:
        # "name": "name_column" is short for {"column": "name_column"}
        if isinstance(value, str):
            return {"column": value}
        if value is None:
            return {}
        return value

    @model_validator(mode="after")
    def _known_type(self) -> PropertyModel:
        if self.type is not None and self.type not in COLUMN_TYPES:
            raise ValueError(
                f"Unknown column type {self.type!r}; expected one of {', '.join(COLUMN_TYPES)}"
            )
        return self


class RelationModel(SchemaFileModel):
    table: str
    local: list[str] = Field(min_length=1)
    remote: list[str] = Field(min_length=1)
    referenced: bool = False
    unique: bool = False


class TableModel(SchemaFileModel):
    table: str
    properties: dict[str, PropertyModel] = Field(min_length=1)
    identity: list[str] = Field(min_length=1)
    unique: list[list[str]] = Field(default_factory=list[list[str]])
    relations: dict[str, RelationModel] = Field(default_factory=dict[str, RelationModel])
    can_insert: bool = True
    can_update: bool = True

    def to_entity_schema(self) -> EntitySchema:
        return EntitySchema(
            table_id=self.table,
            property_to_column={
                prop: model.column or prop for prop, model in self.properties.items()
            },
            identity_properties=tuple(self.identity),
            unique_constraints=tuple(UniqueConstraint(tuple(columns)) for columns in self.unique),
            column_types={
                prop: model.type
                for prop, model in self.properties.items()
                if model.type is not None
            },
            required_properties=tuple(
                prop for prop, model in self.properties.items() if model.required
            ),
            relations={
                name: Relation(
                    name=name,
                    remote_table=relation.table,
                    local_properties=tuple(relation.local),
                    remote_properties=tuple(relation.remote),
                    is_referencee=relation.referenced,
                    is_unique=relation.unique,
                )
                for name, relation in self.relations.items()
            },
            can_insert=self.can_insert,
            can_update=self.can_update,
        )


class SchemaDocument(SchemaFileModel):
    tables: list[TableModel] = Field(min_length=1)

    def to_registry(self) -> SchemaRegistry:
        return SchemaRegistry(table.to_entity_schema() for table in self.tables)


def registry_from_document(data: Mapping[str, object] | str | bytes) -> SchemaRegistry:
    """Validate a schema document (parsed or raw JSON) into a ``SchemaRegistry``."""

    try:
        if isinstance(data, str | bytes):
            document = SchemaDocument.model_validate_json(data)
        else:
            document = SchemaDocument.model_validate(cast(dict[str, object], dict(data)))
    except ValidationError as exc:
        raise SchemaDefinitionError(f"Invalid schema document:\n{exc}") from exc
    return document.to_registry()


def load_schema_file(path: str | Path) -> SchemaRegistry:
    return registry_from_document(Path(path).read_bytes())
