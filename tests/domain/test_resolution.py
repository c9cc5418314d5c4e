from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from nestedcreate.domain.errors import InternalInvariantError, ValidationError
from nestedcreate.domain.nested import build_create_graph
from nestedcreate.domain.ports.writing import WriteResult
from nestedcreate.domain.resolution import resolve_graph, returning_for
from tests.helpers.library import RecordingWriter

if TYPE_CHECKING:
    from collections.abc import Sequence

    from nestedcreate.domain.policy import ConflictPolicy
    from nestedcreate.domain.ports.writing import PlainRow
    from nestedcreate.domain.schema import EntitySchema, SchemaRegistry


class ShortWriter(RecordingWriter):
    """Drops the last written row from every result."""

    def write(
        self,
        rows: Sequence[PlainRow],
        *,
        schema: EntitySchema,
        policy: ConflictPolicy | None = None,
        returning: Sequence[str] | None = None,
    ) -> WriteResult:
        result = super().write(rows, schema=schema, policy=policy, returning=returning)
        assert result.rows is not None
        return WriteResult(
            total_count=result.total_count,
            affected_count=result.affected_count,
            rows=result.rows[:-1],
        )


class ForgetfulWriter(RecordingWriter):
    """Returns rows without any values."""

    def write(
        self,
        rows: Sequence[PlainRow],
        *,
        schema: EntitySchema,
        policy: ConflictPolicy | None = None,
        returning: Sequence[str] | None = None,
    ) -> WriteResult:
        return super().write(rows, schema=schema, policy=policy, returning=())


def _no_policy(_table_id: str) -> None:
    return None


def test_tallies_follow_first_declared_table_order(registry: SchemaRegistry) -> None:
    graph = build_create_graph(
        registry,
        "books",
        [
            {"title": "Notes", "author": {"name": "Ada"}, "publisher": {"name": "Taylor"}},
            {"title": "Sketch", "author": {"name": "Grace"}},
        ],
    )
    writer = RecordingWriter()

    tallies = resolve_graph(graph, writer=writer, policy_for=_no_policy)

    assert list(tallies) == ["books", "authors", "publishers"]
    assert writer.tables_written() == ["authors", "publishers", "books"]
    assert [builder.insertion_index for builder in tallies["authors"].ordered_builders()] == [2, 5]
    assert (tallies["books"].total_count, tallies["books"].affected_count) == (2, 2)


def test_identity_is_only_returned_for_requested_tables(registry: SchemaRegistry) -> None:
    graph = build_create_graph(registry, "authors", [{"name": "Ada"}])
    writer = RecordingWriter()

    resolve_graph(graph, writer=writer, policy_for=_no_policy, identity_tables=("authors",))

    assert writer.calls[0].returning == ("id",)
    assert returning_for("authors", graph.roots) == ()


def test_row_count_mismatch_is_an_internal_error(registry: SchemaRegistry) -> None:
    graph = build_create_graph(registry, "authors", [{"name": "Ada"}, {"name": "Grace"}])

    with pytest.raises(InternalInvariantError, match="Writer reported 2 rows"):
        resolve_graph(graph, writer=ShortWriter(), policy_for=_no_policy)


def test_missing_dependency_values_are_an_internal_error(registry: SchemaRegistry) -> None:
    graph = build_create_graph(registry, "authors", [{"name": "Ada", "books": [{"title": "N"}]}])

    with pytest.raises(InternalInvariantError, match="did not return every attribute") as exc:
        resolve_graph(graph, writer=ForgetfulWriter(), policy_for=_no_policy)

    assert exc.value.attribute == "id"


def test_layer_ceiling_is_enforced_while_draining(registry: SchemaRegistry) -> None:
    graph = build_create_graph(
        registry, "authors", [{"name": "Ada", "mentor": {"name": "Grace"}}]
    )

    with pytest.raises(ValidationError, match="more than 1 dependency layers"):
        resolve_graph(graph, writer=RecordingWriter(), policy_for=_no_policy, max_layers=1)
