"""Row builders: per-entity accumulators of constant and pending values."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .errors import InternalInvariantError, ValidationError

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from .policy import RowAction
    from .schema import EntitySchema


@dataclass(frozen=True, slots=True)
class Constant:
    value: Any


@dataclass(frozen=True, slots=True, eq=False)
class PendingDependency:
    """Placeholder for ``source.attribute``, known only once ``source`` is written."""

    source: RowBuilder
    attribute: str


type AttributeSlot = Constant | PendingDependency


@dataclass(frozen=True, slots=True, eq=False)
class DependentRef:
    """Reverse edge: ``builder.attribute`` waits on a value of the owning builder."""

    builder: RowBuilder
    attribute: str


class RowBuilder:
    """One instance of one entity to be created.

    ``values`` maps every set attribute to a slot; ``dependents`` maps an
    attribute of this builder to the builders waiting on it. Identity and
    ordering are by ``insertion_index`` (stable per request).
    """

    __slots__ = ("_dependents", "_pending", "_values", "action", "insertion_index", "schema")

    def __init__(self, schema: EntitySchema, insertion_index: int) -> None:
        self.schema = schema
        self.insertion_index = insertion_index
        self.action: RowAction | None = None
        self._values: dict[str, AttributeSlot] = {}
        self._dependents: dict[str, list[DependentRef]] = {}
        self._pending: set[str] = set()

    def __repr__(self) -> str:
        return (
            f"RowBuilder(table={self.schema.table_id!r}, index={self.insertion_index}, "
            f"pending={sorted(self._pending)})"
        )

    @property
    def table_id(self) -> str:
        return self.schema.table_id

    @property
    def values(self) -> Mapping[str, AttributeSlot]:
        return self._values

    @property
    def dependents(self) -> Mapping[str, list[DependentRef]]:
        return self._dependents

    @property
    def is_written(self) -> bool:
        return self.action is not None

    def has_dependencies(self) -> bool:
        return bool(self._pending)

    def pending_attributes(self) -> tuple[str, ...]:
        return tuple(sorted(self._pending))

    def dependency_sources(self) -> Iterator[RowBuilder]:
        for attribute in self._pending:
            slot = self._values[attribute]
            if isinstance(slot, PendingDependency):
                yield slot.source

    def dependent_attributes(self) -> tuple[str, ...]:
        """Attributes of this builder other builders are still waiting on."""

        return tuple(self._dependents)

    def is_set(self, attribute: str) -> bool:
        return attribute in self._values

    def set(self, attribute: str, value: Any) -> None:
        self._require_property(attribute)
        if attribute in self._values:
            raise ValidationError(
                "Value already set",
                table=self.table_id,
                attribute=attribute,
                ordinal=self.insertion_index,
            )
        self._values[attribute] = Constant(value)

    def wait_for(self, attribute: str, *, source: RowBuilder, source_attribute: str) -> None:
        """Make ``attribute`` pending on ``source.source_attribute`` and record the reverse edge."""

        self._require_property(attribute)
        if attribute in self._values:
            raise ValidationError(
                "Foreign key already set; cannot also link a related entity",
                table=self.table_id,
                attribute=attribute,
                ordinal=self.insertion_index,
            )
        self._values[attribute] = PendingDependency(source=source, attribute=source_attribute)
        self._pending.add(attribute)
        source._dependents.setdefault(source_attribute, []).append(  # noqa: SLF001
            DependentRef(builder=self, attribute=attribute)
        )

    def plain_row(self) -> dict[str, Any]:
        """Materialize the row to write; every slot must be constant by now."""

        row: dict[str, Any] = {}
        for attribute, slot in self._values.items():
            if isinstance(slot, PendingDependency):
                raise InternalInvariantError(
                    "Cannot materialize row, dependency is not resolved",
                    table=self.table_id,
                    attribute=attribute,
                    ordinal=self.insertion_index,
                )
            row[attribute] = slot.value
        return row

    def plain_object(self) -> dict[str, Any]:
        """Return all constant values, skipping anything still pending."""

        return {
            attribute: slot.value
            for attribute, slot in self._values.items()
            if isinstance(slot, Constant)
        }

    def on_values_resolved(self, values: Mapping[str, Any], action: RowAction) -> None:
        """Record the written row and release every builder waiting on it."""

        self.action = action
        for attribute, value in values.items():
            self._values[attribute] = Constant(value)
            for dependent in self._dependents.pop(attribute, ()):
                dependent.builder._on_dependency_resolved(dependent.attribute, value)  # noqa: SLF001

    def _on_dependency_resolved(self, attribute: str, value: Any) -> None:
        self._values[attribute] = Constant(value)
        # chained foreign keys forward the same value
        for dependent in self._dependents.pop(attribute, ()):
            dependent.builder._on_dependency_resolved(dependent.attribute, value)  # noqa: SLF001
        self._pending.discard(attribute)

    def _require_property(self, attribute: str) -> None:
        if not self.schema.has_property(attribute):
            raise ValidationError(
                "Unknown property",
                table=self.table_id,
                attribute=attribute,
                ordinal=self.insertion_index,
            )
