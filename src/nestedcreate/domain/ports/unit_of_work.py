"""Unit-of-work boundary around one nested-create request."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from types import TracebackType

    from .writing import BatchWriter


@runtime_checkable
class CreateUnitOfWork(Protocol):
    """One transaction exposing the batch writer bound to it."""

    @property
    def writer(self) -> BatchWriter: ...

    def __enter__(self) -> CreateUnitOfWork: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...
