from __future__ import annotations

import pytest

from nestedcreate.domain.schema import (
    EntitySchema,
    Relation,
    SchemaDefinitionError,
    SchemaRegistry,
    UniqueConstraint,
)


def _authors(**overrides: object) -> EntitySchema:
    fields: dict[str, object] = {
        "table_id": "library.authors",
        "property_to_column": {"id": "author_id", "name": "full_name", "bio": "bio"},
        "identity_properties": ("id",),
        "unique_constraints": (UniqueConstraint(("name",)), UniqueConstraint(("id",))),
    }
    fields.update(overrides)
    return EntitySchema(**fields)  # type: ignore[arg-type]


def test_constraints_put_identity_first_without_repeats() -> None:
    schema = _authors()

    assert schema.constraints == (("id",), ("name",))
    assert schema.schema_name == "library"
    assert schema.table_name == "authors"
    assert schema.column_for("name") == "full_name"


def test_schema_without_identity_is_rejected() -> None:
    with pytest.raises(SchemaDefinitionError, match="does not have a primary key"):
        _authors(identity_properties=())


def test_unknown_properties_in_constraints_are_rejected() -> None:
    with pytest.raises(SchemaDefinitionError, match="unique constraint"):
        _authors(unique_constraints=(UniqueConstraint(("email",)),))

    with pytest.raises(SchemaDefinitionError, match="required"):
        _authors(required_properties=("email",))


def test_relation_must_not_shadow_property() -> None:
    relation = Relation(
        name="bio",
        remote_table="books",
        local_properties=("id",),
        remote_properties=("author_id",),
        is_referencee=True,
    )

    with pytest.raises(SchemaDefinitionError, match="shadows"):
        _authors(relations={"bio": relation})


def test_relation_pairs_properties() -> None:
    with pytest.raises(SchemaDefinitionError, match="one to one"):
        Relation(
            name="books",
            remote_table="books",
            local_properties=("id",),
            remote_properties=(),
            is_referencee=True,
        )


def test_registry_validates_relation_targets() -> None:
    books = Relation(
        name="books",
        remote_table="books",
        local_properties=("id",),
        remote_properties=("author_id",),
        is_referencee=True,
    )

    with pytest.raises(SchemaDefinitionError, match="unknown table books"):
        SchemaRegistry([_authors(relations={"books": books})])

    books_schema = EntitySchema(
        table_id="books",
        property_to_column={"id": "id", "writer_id": "writer_id"},
        identity_properties=("id",),
    )
    with pytest.raises(SchemaDefinitionError, match="author_id"):
        SchemaRegistry([_authors(relations={"books": books}), books_schema])


def test_registry_lookup(registry: SchemaRegistry) -> None:
    assert "books" in registry
    assert len(registry) == 3
    assert registry.get("authors").relation("books").accepts_many
    assert not registry.get("books").relation("author").accepts_many

    with pytest.raises(SchemaDefinitionError, match="Unknown table"):
        registry.get("magazines")
