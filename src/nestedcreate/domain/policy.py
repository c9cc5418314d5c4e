"""Conflict policies and per-row write outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import ClassVar

from .errors import ValidationError


class ConflictStrategy(StrEnum):
    """What to do when an inserted row collides with an existing unique key."""

    ERROR = "error"
    IGNORE = "ignore"
    REPLACE = "replace"
    UPDATE = "update"


class RowAction(StrEnum):
    """Outcome reported for one written row."""

    INSERTED = "inserted"
    EXISTING = "existing"
    UPDATED = "updated"
    DUPLICATE = "duplicate"


@dataclass(frozen=True, slots=True)
class ConflictPolicy:
    """Conflict strategy plus the columns ``update`` is allowed to overwrite."""

    strategy: ConflictStrategy = ConflictStrategy.ERROR
    columns: tuple[str, ...] = ()

    _ALIASES: ClassVar[dict[str, ConflictStrategy]] = {
        "donothing": ConflictStrategy.IGNORE,
        "skip": ConflictStrategy.IGNORE,
    }

    def __post_init__(self) -> None:
        if self.strategy is ConflictStrategy.UPDATE and not self.columns:
            raise ValidationError("Conflict strategy 'update' requires at least one column")
        if self.strategy is not ConflictStrategy.UPDATE and self.columns:
            raise ValidationError(
                f"Conflict strategy '{self.strategy.value}' does not take columns"
            )

    @classmethod
    def error(cls) -> ConflictPolicy:
        return cls(ConflictStrategy.ERROR)

    @classmethod
    def ignore(cls) -> ConflictPolicy:
        return cls(ConflictStrategy.IGNORE)

    @classmethod
    def replace(cls) -> ConflictPolicy:
        return cls(ConflictStrategy.REPLACE)

    @classmethod
    def update_columns(cls, *columns: str) -> ConflictPolicy:
        return cls(ConflictStrategy.UPDATE, tuple(dict.fromkeys(columns)))

    @classmethod
    def parse(cls, value: str, *, columns: tuple[str, ...] = ()) -> ConflictPolicy:
        """Parse a strategy name (``ignore``) or its API alias (``DoNothing``)."""

        normalized = value.strip().lower()
        strategy = cls._ALIASES.get(normalized)
        if strategy is None:
            try:
                strategy = ConflictStrategy(normalized)
            except ValueError as exc:
                raise ValidationError(f"Unknown conflict strategy: {value!r}") from exc
        return cls(strategy, tuple(columns))

    @property
    def requires_update(self) -> bool:
        return self.strategy in (ConflictStrategy.REPLACE, ConflictStrategy.UPDATE)

    def narrowed(self) -> ConflictPolicy:
        """Return the policy a table without update capability falls back to."""

        if self.requires_update:
            return ConflictPolicy.ignore()
        return self
