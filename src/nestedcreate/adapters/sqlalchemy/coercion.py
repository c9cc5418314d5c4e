"""Coerce incoming row values to the Python types their columns bind.

JSON input carries dates, timestamps, UUIDs and decimals as strings; the
column types only accept the real Python objects.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from functools import cache
from typing import TYPE_CHECKING, Any, Final

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from nestedcreate.domain.errors import ValidationError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy import Column, Table

    from nestedcreate.domain.ports.writing import PlainRow

_COERCIBLE: Final[frozenset[type]] = frozenset(
    {int, str, bool, float, Decimal, date, datetime, uuid.UUID}
)


@cache
def _adapter(python_type: type) -> TypeAdapter[Any]:
    return TypeAdapter(python_type)


def python_type_of(column: Column[Any]) -> type | None:
    """Python type bound by ``column``, or ``None`` when values pass through unchanged."""

    for candidate in (column.type, getattr(column.type, "impl", None)):
        if candidate is None:
            continue
        try:
            python_type = candidate.python_type
        except NotImplementedError:
            continue
        return python_type if python_type in _COERCIBLE else None
    return None


def coerce_value(value: Any, python_type: type) -> Any:
    if value is None or isinstance(value, python_type):
        return value
    return _adapter(python_type).validate_python(value)


def coerce_rows(rows: Sequence[PlainRow], table: Table, *, table_id: str) -> list[dict[str, Any]]:
    """Return copies of ``rows`` with typed columns validated and coerced."""

    targets: dict[str, type] = {}
    for column in table.columns:
        python_type = python_type_of(column)
        if python_type is not None:
            targets[column.key] = python_type

    coerced: list[dict[str, Any]] = []
    for ordinal, row in enumerate(rows, start=1):
        values = dict(row)
        for prop, python_type in targets.items():
            if prop not in values:
                continue
            try:
                values[prop] = coerce_value(values[prop], python_type)
            except PydanticValidationError as exc:
                raise ValidationError(
                    f"Invalid {python_type.__name__} value: {exc.errors()[0]['msg']}",
                    table=table_id,
                    attribute=prop,
                    ordinal=ordinal,
                ) from exc
        coerced.append(values)
    return coerced
