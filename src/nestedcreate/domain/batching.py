"""Pure helpers for shaping a batch into statements.

A property counts as *used* when its key is present in a row mapping; ``None``
is an explicit SQL NULL while an absent key leaves the column to its default.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .errors import InternalInvariantError, ValidationError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence

    from .ports.writing import PlainRow
    from .schema import EntitySchema


@dataclass(slots=True)
class Bucket:
    """Rows sharing the exact same used-property set, by input index."""

    properties: tuple[str, ...]
    indexes: list[int] = field(default_factory=list[int])


def used_properties(rows: Sequence[PlainRow], schema: EntitySchema) -> tuple[str, ...]:
    """Return the union of properties present across ``rows`` in schema order."""

    present: set[str] = set()
    for ordinal, row in enumerate(rows, start=1):
        for prop in row:
            if not schema.has_property(prop):
                raise ValidationError(
                    f"Unknown property {prop}", table=schema.table_id, ordinal=ordinal
                )
            present.add(prop)
    return tuple(prop for prop in schema.properties if prop in present)


def bucket_by_properties(rows: Sequence[PlainRow], schema: EntitySchema) -> list[Bucket]:
    """Partition rows by their own used-property set, in first-seen order."""

    buckets: dict[tuple[str, ...], Bucket] = {}
    for index, row in enumerate(rows):
        key = tuple(prop for prop in schema.properties if prop in row)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = Bucket(properties=key)
        bucket.indexes.append(index)
    return list(buckets.values())


def rows_per_statement(param_limit: int, width: int) -> int:
    """Largest row count whose parameters stay below ``param_limit``.

    A single row is always allowed so a row is never split across statements.
    """

    if width <= 0:
        return max(1, param_limit)
    return max(1, (param_limit - 1) // width)


def chunked[T](items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def scatter[T](size: int, parts: Iterable[tuple[Sequence[int], Sequence[T]]]) -> list[T]:
    """Place per-bucket results back at their input positions."""

    placed: dict[int, T] = {}
    for indexes, values in parts:
        for index, value in zip(indexes, values, strict=True):
            placed[index] = value
    missing = [index for index in range(size) if index not in placed]
    if missing:
        raise InternalInvariantError(
            f"No result for {len(missing)} of {size} rows", ordinal=missing[0] + 1
        )
    return [placed[index] for index in range(size)]
