"""Error taxonomy for nested-create requests.

Every error raised below the orchestrator carries enough context (table,
attribute, row ordinal) for a caller to map the failure back to one input row.
"""

from __future__ import annotations


class NestedCreateError(Exception):
    """Base class for all engine errors."""

    def __init__(
        self,
        message: str,
        *,
        table: str | None = None,
        attribute: str | None = None,
        ordinal: int | None = None,
    ) -> None:
        self.table = table
        self.attribute = attribute
        self.ordinal = ordinal
        context = [
            f"{label}={value}"
            for label, value in (("table", table), ("attribute", attribute), ("row", ordinal))
            if value is not None
        ]
        detail = f"{message} ({', '.join(context)})" if context else message
        super().__init__(detail)


class ValidationError(NestedCreateError, ValueError):
    """Input rejected before any write was attempted."""


class DependencyCycleError(NestedCreateError):
    """Linking two row builders would make them wait on each other."""


class ConflictError(NestedCreateError):
    """A write violated a database constraint (e.g. a unique collision under ``error``)."""


class CapabilityError(NestedCreateError):
    """A table lacks the insert/update capability a request needs."""


class InternalInvariantError(NestedCreateError, RuntimeError):
    """The engine reached a state valid input can never produce."""
