from __future__ import annotations

import pytest

from nestedcreate.domain.builder import Constant, PendingDependency, RowBuilder
from nestedcreate.domain.errors import InternalInvariantError, ValidationError
from nestedcreate.domain.policy import RowAction
from nestedcreate.domain.schema import SchemaRegistry


def test_set_rejects_unknown_and_repeated_attributes(registry: SchemaRegistry) -> None:
    builder = RowBuilder(registry.get("authors"), insertion_index=1)
    builder.set("name", "Ada")

    with pytest.raises(ValidationError, match="Unknown property"):
        builder.set("email", "ada@example.com")
    with pytest.raises(ValidationError, match="already set") as exc:
        builder.set("name", "Grace")

    assert exc.value.attribute == "name"
    assert exc.value.ordinal == 1


def test_wait_for_records_both_directions(registry: SchemaRegistry) -> None:
    author = RowBuilder(registry.get("authors"), insertion_index=1)
    book = RowBuilder(registry.get("books"), insertion_index=2)

    book.wait_for("author_id", source=author, source_attribute="id")

    slot = book.values["author_id"]
    assert isinstance(slot, PendingDependency)
    assert slot.source is author
    assert book.has_dependencies()
    assert list(book.dependency_sources()) == [author]
    assert author.dependent_attributes() == ("id",)


def test_wait_for_refuses_a_foreign_key_already_set(registry: SchemaRegistry) -> None:
    author = RowBuilder(registry.get("authors"), insertion_index=1)
    book = RowBuilder(registry.get("books"), insertion_index=2)
    book.set("author_id", 7)

    with pytest.raises(ValidationError, match="Foreign key already set"):
        book.wait_for("author_id", source=author, source_attribute="id")


def test_resolved_values_release_dependents(registry: SchemaRegistry) -> None:
    author = RowBuilder(registry.get("authors"), insertion_index=1)
    author.set("name", "Ada")
    book = RowBuilder(registry.get("books"), insertion_index=2)
    book.set("title", "Notes")
    book.wait_for("author_id", source=author, source_attribute="id")

    with pytest.raises(InternalInvariantError):
        book.plain_row()

    author.on_values_resolved({"id": 41}, RowAction.INSERTED)

    assert author.is_written
    assert author.plain_object() == {"name": "Ada", "id": 41}
    assert not book.has_dependencies()
    assert book.values["author_id"] == Constant(41)
    assert book.plain_row() == {"title": "Notes", "author_id": 41}
    assert author.dependent_attributes() == ()


def test_plain_object_skips_pending_values(registry: SchemaRegistry) -> None:
    author = RowBuilder(registry.get("authors"), insertion_index=1)
    book = RowBuilder(registry.get("books"), insertion_index=2)
    book.set("title", "Notes")
    book.wait_for("author_id", source=author, source_attribute="id")

    assert book.plain_object() == {"title": "Notes"}
    assert book.pending_attributes() == ("author_id",)
