"""Authors, books and publishers: the tables most tests write into."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    Column,
    ForeignKey,
    ForeignKeyConstraint,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)

from nestedcreate.adapters.sqlalchemy.introspection import (
    entity_schema_from_table,
    forward_relation,
    reverse_relation,
)
from nestedcreate.domain.policy import RowAction
from nestedcreate.domain.ports.writing import WriteResult, WrittenRow
from nestedcreate.domain.schema import SchemaRegistry

if TYPE_CHECKING:
    from types import TracebackType

    from nestedcreate.domain.policy import ConflictPolicy
    from nestedcreate.domain.ports.writing import PlainRow
    from nestedcreate.domain.schema import EntitySchema

metadata = MetaData()

authors_table = Table(
    "authors",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(100), nullable=False),
    Column("bio", Text, nullable=True),
    Column("nickname", String(50), nullable=True, server_default="anon"),
    Column("mentor_id", Integer, ForeignKey("authors.id"), nullable=True),
    UniqueConstraint("name", name="uq_authors_name"),
)

publishers_table = Table(
    "publishers",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(100), nullable=False),
    UniqueConstraint("name", name="uq_publishers_name"),
)

books_table = Table(
    "books",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("title", String(200), nullable=False),
    Column("isbn", String(20), nullable=True),
    Column("author_id", Integer, ForeignKey("authors.id"), nullable=False),
    Column("publisher_id", Integer, ForeignKey("publishers.id"), nullable=True),
    UniqueConstraint("isbn", name="uq_books_isbn"),
)


def foreign_key(table: Table, referred: Table, column: str) -> ForeignKeyConstraint:
    for constraint in table.foreign_key_constraints:
        if constraint.referred_table is referred and constraint.column_keys == [column]:
            return constraint
    raise LookupError(f"No foreign key {table.name}.{column} -> {referred.name}")


def library_registry(*, can_update_publishers: bool = True) -> SchemaRegistry:
    book_author = foreign_key(books_table, authors_table, "author_id")
    book_publisher = foreign_key(books_table, publishers_table, "publisher_id")
    mentor = foreign_key(authors_table, authors_table, "mentor_id")
    return SchemaRegistry(
        [
            entity_schema_from_table(
                authors_table,
                relations=(
                    reverse_relation(book_author, "books"),
                    forward_relation(mentor, "mentor"),
                ),
            ),
            entity_schema_from_table(
                publishers_table,
                relations=(reverse_relation(book_publisher, "books"),),
                can_update=can_update_publishers,
            ),
            entity_schema_from_table(
                books_table,
                relations=(
                    forward_relation(book_author, "author"),
                    forward_relation(book_publisher, "publisher"),
                ),
            ),
        ]
    )


@dataclass
class WriteCall:
    table: str
    rows: list[dict[str, Any]]
    policy: ConflictPolicy | None
    returning: tuple[str, ...] | None


@dataclass
class RecordingWriter:
    """In-memory ``BatchWriter`` assigning sequential ids per table."""

    calls: list[WriteCall] = field(default_factory=list[WriteCall])
    next_ids: dict[str, int] = field(default_factory=dict[str, int])
    fail_on: str | None = None

    def write(
        self,
        rows: Sequence[PlainRow],
        *,
        schema: EntitySchema,
        policy: ConflictPolicy | None = None,
        returning: Sequence[str] | None = None,
    ) -> WriteResult:
        self.calls.append(
            WriteCall(
                table=schema.table_id,
                rows=[dict(row) for row in rows],
                policy=policy,
                returning=None if returning is None else tuple(returning),
            )
        )
        if schema.table_id == self.fail_on:
            raise RuntimeError(f"write to {schema.table_id} failed")
        written: list[WrittenRow] = []
        for ordinal, row in enumerate(rows, start=1):
            stored = dict(row)
            for prop in schema.identity_properties:
                if prop not in stored:
                    self.next_ids[schema.table_id] = self.next_ids.get(schema.table_id, 0) + 1
                    stored[prop] = self.next_ids[schema.table_id]
            written.append(
                WrittenRow(
                    ordinal=ordinal,
                    action=RowAction.INSERTED,
                    values={prop: stored.get(prop) for prop in returning or ()},
                )
            )
        return WriteResult(
            total_count=len(rows),
            affected_count=len(rows),
            rows=None if returning is None else tuple(written),
        )

    def tables_written(self) -> list[str]:
        return [call.table for call in self.calls]


@dataclass
class FakeUnitOfWork:
    writer: RecordingWriter
    committed: bool = False
    rolled_back: bool = False

    def __enter__(self) -> FakeUnitOfWork:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool:
        if exc_type is not None:
            self.rollback()
        return False

    def commit(self) -> None:
        self.committed = True

    def rollback(self) -> None:
        self.rolled_back = True


def rows_of(rows: Sequence[Mapping[str, Any]], *keys: str) -> list[tuple[Any, ...]]:
    return [tuple(row[key] for key in keys) for row in rows]
