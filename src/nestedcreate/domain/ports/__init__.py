"""Ports implemented by adapters."""

from __future__ import annotations

from .unit_of_work import CreateUnitOfWork
from .writing import BatchWriter, PlainRow, WriteResult, WrittenRow

__all__ = [
    "BatchWriter",
    "CreateUnitOfWork",
    "PlainRow",
    "WriteResult",
    "WrittenRow",
]
