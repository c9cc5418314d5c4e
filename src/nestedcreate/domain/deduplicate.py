"""Intra-batch deduplication for rows of one table.

Responsibilities of this stage:
- collapse input rows that would collide with each other on a unique key
- emit a mapping from dropped row indexes to their surviving representative
- avoid database lookups

Collision follows database semantics rather than Python equality of whole
rows: a key only exists when every column of the constraint is present and
non-NULL, and two rows collide when they share any such key.
"""

from __future__ import annotations

import json
from collections.abc import Hashable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .ports.writing import PlainRow


type ConstraintKey = tuple[int, tuple[Hashable, ...]]


@dataclass(slots=True)
class DeduplicationResult:
    """Result of intra-batch row deduplication (indexes are 0-based)."""

    representative_by_index: dict[int, int] = field(default_factory=dict[int, int])

    def representative_for(self, index: int) -> int:
        return self.representative_by_index.get(index, index)

    def is_duplicate(self, index: int) -> bool:
        return index in self.representative_by_index


def covered_constraints(
    constraints: Sequence[tuple[str, ...]],
    used: Sequence[str],
) -> tuple[tuple[str, ...], ...]:
    """Return the constraints whose columns are all among the used properties."""

    used_set = set(used)
    return tuple(columns for columns in constraints if used_set.issuperset(columns))


def constraint_values(row: PlainRow, columns: Sequence[str]) -> tuple[Hashable, ...] | None:
    """Return the row's key for ``columns``, or ``None`` if it cannot collide."""

    values: list[Hashable] = []
    for column in columns:
        if column not in row:
            return None
        value = row[column]
        if value is None:
            return None
        values.append(_hashable(value))
    return tuple(values)


def deduplicate_rows(
    rows: Sequence[PlainRow],
    *,
    constraints: Sequence[tuple[str, ...]],
) -> DeduplicationResult:
    """Map every colliding row to the first-seen row it collides with."""

    result = DeduplicationResult()
    if not constraints:
        return result

    key_index: dict[ConstraintKey, int] = {}
    for index, row in enumerate(rows):
        keys = _row_keys(row, constraints)
        representative = _find_representative(keys, key_index=key_index)
        if representative is None:
            for key in keys:
                key_index.setdefault(key, index)
            continue
        result.representative_by_index[index] = representative
    return result


def _row_keys(
    row: PlainRow,
    constraints: Sequence[tuple[str, ...]],
) -> tuple[ConstraintKey, ...]:
    keys: list[ConstraintKey] = []
    for position, columns in enumerate(constraints):
        values = constraint_values(row, columns)
        if values is not None:
            keys.append((position, values))
    return tuple(keys)


def _find_representative(
    keys: Sequence[ConstraintKey],
    *,
    key_index: dict[ConstraintKey, int],
) -> int | None:
    for key in keys:
        representative = key_index.get(key)
        if representative is not None:
            return representative
    return None


def _hashable(value: Any) -> Hashable:
    if isinstance(value, Hashable):
        return value
    # json/array columns
    return json.dumps(value, sort_keys=True, default=str)
