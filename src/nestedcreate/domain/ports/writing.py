"""Write-side port consumed by the dependency graph."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from nestedcreate.domain.policy import ConflictPolicy, RowAction
    from nestedcreate.domain.schema import EntitySchema


type PlainRow = Mapping[str, Any]


@dataclass(frozen=True, slots=True, kw_only=True)
class WrittenRow:
    """One output row, aligned with the input row of the same ``ordinal`` (1-based).

    ``values`` holds exactly the requested ``returning`` properties. For
    ``duplicate`` rows they mirror the representative row named by
    ``duplicate_of``.
    """

    ordinal: int
    action: RowAction
    values: dict[str, Any] = field(default_factory=dict[str, Any])
    duplicate_of: int | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class WriteResult:
    """Aggregate outcome of one batched write."""

    total_count: int
    affected_count: int
    rows: tuple[WrittenRow, ...] | None = None


class BatchWriter(Protocol):
    """Write a flat batch of rows for one table.

    ``returning=None`` computes counts only; any tuple (even empty) also yields
    per-row results in input order.
    """

    def write(
        self,
        rows: Sequence[PlainRow],
        *,
        schema: EntitySchema,
        policy: ConflictPolicy | None = None,
        returning: Sequence[str] | None = None,
    ) -> WriteResult: ...
