"""Batched Write Executor on SQLAlchemy Core.

Writes for one table are shaped as follows:
- rows are bucketed by the exact set of properties they supply, so absent
  columns fall back to their database defaults
- each bucket is chunked below the bound-parameter ceiling, never splitting a row
- inserts use ``INSERT ... RETURNING`` with ``sort_by_parameter_order`` so
  returned values line up with the parameter list

With a conflict policy, input rows colliding on their bound key values are
collapsed first. Existing rows are matched by the database itself: the
candidate keys are sent as a typed subquery joined to the table, so column
types and collations decide equality. The policy then decides whether a match
is kept or updated. Unmatched rows are inserted.
"""

from __future__ import annotations

import dataclasses
import logging
from collections import Counter
from typing import TYPE_CHECKING, Any, Final

from sqlalchemy import Integer, and_, bindparam, insert, literal, select, union_all, update
from sqlalchemy.exc import IntegrityError

from nestedcreate.config.limits import DEFAULT_PARAM_LIMIT
from nestedcreate.domain.batching import (
    bucket_by_properties,
    chunked,
    rows_per_statement,
    scatter,
    used_properties,
)
from nestedcreate.domain.deduplicate import (
    constraint_values,
    covered_constraints,
    deduplicate_rows,
)
from nestedcreate.domain.errors import ConflictError, InternalInvariantError, ValidationError
from nestedcreate.domain.policy import ConflictStrategy, RowAction
from nestedcreate.domain.ports.writing import WriteResult, WrittenRow

from .coercion import coerce_rows
from .tables import TableCache

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Mapping, Sequence

    from sqlalchemy import Executable, Subquery, Table
    from sqlalchemy.engine import Result
    from sqlalchemy.orm import Session

    from nestedcreate.domain.policy import ConflictPolicy
    from nestedcreate.domain.ports.writing import PlainRow
    from nestedcreate.domain.schema import EntitySchema

log = logging.getLogger(__name__)

type Values = dict[str, Any]

# SQLite caps the terms of one compound SELECT at 500
MAX_KEY_ROWS: Final[int] = 500


class SqlAlchemyBatchWriter:
    """``BatchWriter`` bound to one session (and therefore one transaction)."""

    def __init__(self, session: Session, *, param_limit: int = DEFAULT_PARAM_LIMIT) -> None:
        self.session = session
        self.param_limit = param_limit
        self._tables = TableCache()

    def write(
        self,
        rows: Sequence[PlainRow],
        *,
        schema: EntitySchema,
        policy: ConflictPolicy | None = None,
        returning: Sequence[str] | None = None,
    ) -> WriteResult:
        used_properties(rows, schema)
        wanted = _validate_returning(schema, returning)
        if not rows:
            return WriteResult(
                total_count=0, affected_count=0, rows=None if returning is None else ()
            )

        table = self._tables(schema, self.session.connection())
        rows = coerce_rows(rows, table, table_id=schema.table_id)
        batch = _Batch(
            session=self.session,
            schema=schema,
            table=table,
            param_limit=self.param_limit,
        )
        if policy is None or policy.strategy is ConflictStrategy.ERROR:
            values = batch.insert(rows, returning=wanted)
            written = [
                WrittenRow(ordinal=index + 1, action=RowAction.INSERTED, values=row_values)
                for index, row_values in enumerate(values)
            ]
        elif policy.strategy is ConflictStrategy.REPLACE:
            buckets = bucket_by_properties(rows, schema)
            parts = [
                (
                    bucket.indexes,
                    _renumber(
                        batch.merge([rows[index] for index in bucket.indexes], policy, wanted),
                        bucket.indexes,
                    ),
                )
                for bucket in buckets
            ]
            written = scatter(len(rows), parts)
        else:
            written = batch.merge(rows, policy, wanted)

        actions = Counter(row.action for row in written)
        affected = actions[RowAction.INSERTED] + actions[RowAction.UPDATED]
        log.debug(
            "Wrote %s rows to %s: %s",
            len(rows),
            schema.table_id,
            ", ".join(f"{action.value}={count}" for action, count in actions.items()),
        )
        return WriteResult(
            total_count=len(rows),
            affected_count=affected,
            rows=None if returning is None else tuple(written),
        )


@dataclasses.dataclass(slots=True, kw_only=True)
class _Batch:
    session: Session
    schema: EntitySchema
    table: Table
    param_limit: int

    def insert(self, rows: Sequence[PlainRow], *, returning: tuple[str, ...]) -> list[Values]:
        """Insert ``rows`` and return the ``returning`` values of each, in input order."""

        parts: list[tuple[Sequence[int], Sequence[Values]]] = []
        for bucket in bucket_by_properties(rows, self.schema):
            size = rows_per_statement(self.param_limit, len(bucket.properties))
            values: list[Values] = []
            for chunk in chunked(bucket.indexes, size):
                chunk_rows = [rows[index] for index in chunk]
                values.extend(self._insert_chunk(chunk_rows, chunk, returning))
            parts.append((bucket.indexes, values))
        return scatter(len(rows), parts)

    def merge(
        self,
        rows: Sequence[PlainRow],
        policy: ConflictPolicy,
        returning: tuple[str, ...],
    ) -> list[WrittenRow]:
        """Insert-or-match ``rows`` under ``policy``; ordinals are 1-based within ``rows``."""

        constraints = covered_constraints(
            self.schema.constraints, used_properties(rows, self.schema)
        )
        if not constraints:
            # nothing to match on; collisions surface as integrity errors
            return [
                WrittenRow(ordinal=index + 1, action=RowAction.INSERTED, values=values)
                for index, values in enumerate(self.insert(rows, returning=returning))
            ]

        dedup = deduplicate_rows(self._bound_keys(rows), constraints=constraints)
        candidates = [index for index in range(len(rows)) if not dedup.is_duplicate(index)]
        identity = self.schema.identity_properties
        constrained = (prop for columns in constraints for prop in columns)
        fetch = _unique((*identity, *constrained, *returning))
        existing = self.find_existing(
            {index: rows[index] for index in candidates}, constraints=constraints, fetch=fetch
        )

        # a stored row is claimed by the first candidate matching it
        claimed: dict[tuple[Any, ...], int] = {}
        for index in sorted(existing):
            stored_identity = tuple(existing[index][prop] for prop in identity)
            owner = claimed.setdefault(stored_identity, index)
            if owner != index:
                dedup.representative_by_index[index] = owner
                del existing[index]

        outcomes: dict[int, WrittenRow] = {}
        updates: dict[int, Values] = {}
        for index, match in existing.items():
            assignment = _assignment(rows[index], policy, identity=identity)
            if assignment:
                updates[index] = assignment
            else:
                outcomes[index] = WrittenRow(
                    ordinal=index + 1, action=RowAction.EXISTING, values=_pick(match, returning)
                )
        if updates:
            for index, values in self.update(updates, existing, returning=returning).items():
                outcomes[index] = WrittenRow(
                    ordinal=index + 1, action=RowAction.UPDATED, values=values
                )

        fresh = [
            index
            for index in candidates
            if index not in existing and not dedup.is_duplicate(index)
        ]
        if fresh:
            inserted = self.insert([rows[index] for index in fresh], returning=returning)
            for index, values in zip(fresh, inserted, strict=True):
                outcomes[index] = WrittenRow(
                    ordinal=index + 1, action=RowAction.INSERTED, values=values
                )

        for index, representative in dedup.representative_by_index.items():
            outcomes[index] = WrittenRow(
                ordinal=index + 1,
                action=RowAction.DUPLICATE,
                values=dict(outcomes[representative].values),
                duplicate_of=representative + 1,
            )
        return [outcomes[index] for index in range(len(rows))]

    def find_existing(
        self,
        rows: Mapping[int, PlainRow],
        *,
        constraints: Sequence[tuple[str, ...]],
        fetch: tuple[str, ...],
    ) -> dict[int, Values]:
        """Match rows to stored rows on the first constraint that finds one.

        Each constraint is only tried for rows no earlier constraint matched.
        """

        matches: dict[int, Values] = {}
        for columns in constraints:
            pending = [
                index
                for index, row in rows.items()
                if index not in matches and constraint_values(row, columns) is not None
            ]
            size = min(MAX_KEY_ROWS, rows_per_statement(self.param_limit, len(columns) + 1))
            for chunk in chunked(pending, size):
                incoming = self._key_subquery(rows, chunk, columns)
                stmt = (
                    select(incoming.c.row_index, *(self.table.c[prop] for prop in fetch))
                    .select_from(self.table)
                    .join(
                        incoming,
                        and_(
                            *(
                                self.table.c[prop] == incoming.c[f"key_{position}"]
                                for position, prop in enumerate(columns)
                            )
                        ),
                    )
                )
                for row_index, *stored in self._execute(stmt, chunk=chunk):
                    matches.setdefault(row_index, dict(zip(fetch, stored, strict=True)))
        return matches

    def update(
        self,
        assignments: Mapping[int, Values],
        existing: Mapping[int, Values],
        *,
        returning: tuple[str, ...],
    ) -> dict[int, Values]:
        """Apply per-row assignments keyed by identity; return refreshed ``returning`` values."""

        identity = self.schema.identity_properties
        shapes: dict[tuple[str, ...], list[int]] = {}
        for index, assignment in assignments.items():
            shapes.setdefault(tuple(assignment), []).append(index)

        for columns, indexes in shapes.items():
            stmt = (
                update(self.table)
                .where(
                    and_(
                        *(
                            self.table.c[prop] == bindparam(f"_key_{position}")
                            for position, prop in enumerate(identity)
                        )
                    )
                )
                .values(
                    {prop: bindparam(f"_set_{position}") for position, prop in enumerate(columns)}
                )
            )
            size = rows_per_statement(self.param_limit, len(columns) + len(identity))
            for chunk in chunked(indexes, size):
                params = [
                    {
                        **{
                            f"_key_{position}": existing[index][prop]
                            for position, prop in enumerate(identity)
                        },
                        **{
                            f"_set_{position}": assignments[index][prop]
                            for position, prop in enumerate(columns)
                        },
                    }
                    for index in chunk
                ]
                self._execute(stmt, params, chunk=chunk)
            log.debug(
                "Updated %s rows of %s (%s)", len(indexes), self.schema.table_id, ", ".join(columns)
            )

        if not returning:
            return {index: {} for index in assignments}
        refreshed = self.find_existing(
            {index: {**existing[index], **assignments[index]} for index in assignments},
            constraints=(identity,),
            fetch=_unique((*identity, *returning)),
        )
        return {index: _pick(refreshed[index], returning) for index in assignments}

    def _insert_chunk(
        self,
        rows: Sequence[PlainRow],
        chunk: Sequence[int],
        returning: tuple[str, ...],
    ) -> list[Values]:
        columns = [self.table.c[prop] for prop in returning]
        params = [dict(row) for row in rows]
        if not params[0]:
            # nothing supplied: one INSERT ... DEFAULT VALUES per row
            stmt = insert(self.table).returning(*columns) if columns else insert(self.table)
            values: list[Values] = []
            for index in chunk:
                result = self._execute(stmt, chunk=(index,))
                values.append(dict(zip(returning, result.one(), strict=True)) if columns else {})
            return values

        if not columns:
            self._execute(insert(self.table), params, chunk=chunk)
            return [{} for _ in rows]

        stmt = insert(self.table).returning(*columns, sort_by_parameter_order=True)
        returned = self._execute(stmt, params, chunk=chunk).all()
        if len(returned) != len(rows):
            raise InternalInvariantError(
                f"Insert returned {len(returned)} rows for {len(rows)} inputs",
                table=self.schema.table_id,
                ordinal=chunk[0] + 1,
            )
        log.debug("Inserted %s rows into %s", len(rows), self.schema.table_id)
        return [dict(zip(returning, row, strict=True)) for row in returned]

    def _key_subquery(
        self,
        rows: Mapping[int, PlainRow],
        chunk: Sequence[int],
        columns: tuple[str, ...],
    ) -> Subquery:
        """``(row_index, key_0, ...)`` for every row of ``chunk``, typed like the table."""

        selects = [
            select(
                literal(index, Integer).label("row_index"),
                *(
                    literal(rows[index][prop], self.table.c[prop].type).label(f"key_{position}")
                    for position, prop in enumerate(columns)
                ),
            )
            for index in chunk
        ]
        if len(selects) == 1:
            return selects[0].subquery("incoming")
        return union_all(*selects).subquery("incoming")

    def _bound_keys(self, rows: Sequence[PlainRow]) -> list[Values]:
        """Rows as the database receives them, for in-batch collision checks."""

        dialect = self.session.get_bind().dialect
        processors: dict[str, Callable[[Any], Any]] = {}
        for column in self.table.columns:
            processor = column.type.bind_processor(dialect)
            if processor is not None:
                processors[column.key] = processor
        return [
            {
                prop: value if value is None or prop not in processors else processors[prop](value)
                for prop, value in row.items()
            }
            for row in rows
        ]

    def _execute(
        self,
        stmt: Executable,
        params: Sequence[Values] | None = None,
        *,
        chunk: Sequence[int],
    ) -> Result[Any]:
        try:
            if params is None:
                return self.session.execute(stmt)
            return self.session.execute(stmt, params)
        except IntegrityError as exc:
            first, last = chunk[0] + 1, chunk[-1] + 1
            raise ConflictError(
                f"Constraint violation writing rows {first}-{last}: {exc.orig}",
                table=self.schema.table_id,
                ordinal=first,
            ) from exc


def _validate_returning(schema: EntitySchema, returning: Sequence[str] | None) -> tuple[str, ...]:
    if returning is None:
        return ()
    for prop in returning:
        if not schema.has_property(prop):
            raise ValidationError(
                "Unknown returning property", table=schema.table_id, attribute=prop
            )
    return _unique(returning)


def _assignment(row: PlainRow, policy: ConflictPolicy, *, identity: Sequence[str]) -> Values:
    if policy.strategy is ConflictStrategy.REPLACE:
        return {prop: value for prop, value in row.items() if prop not in identity}
    if policy.strategy is ConflictStrategy.UPDATE:
        return {prop: row[prop] for prop in policy.columns if prop in row}
    return {}


def _pick(values: Mapping[str, Any], returning: Sequence[str]) -> Values:
    return {prop: values[prop] for prop in returning}


def _unique(props: Sequence[str] | Iterator[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(props))


def _renumber(written: Sequence[WrittenRow], indexes: Sequence[int]) -> list[WrittenRow]:
    """Map bucket-local ordinals back to ordinals of the whole batch."""

    return [
        dataclasses.replace(
            row,
            ordinal=indexes[row.ordinal - 1] + 1,
            duplicate_of=None if row.duplicate_of is None else indexes[row.duplicate_of - 1] + 1,
        )
        for row in written
    ]
