"""Hard ceilings applied to a single nested-create request."""

from __future__ import annotations

from dataclasses import dataclass

from .env import int_env_var
from .errors import ConfigurationError

DEFAULT_MAX_BULK_ROWS = 1000
DEFAULT_PARAM_LIMIT = 32_000
DEFAULT_MAX_LAYERS = 32


@dataclass(frozen=True, slots=True)
class WriteLimits:
    """Bounds for one request.

    ``max_bulk_rows`` caps the number of row builders (top-level and nested),
    ``param_limit`` caps bound parameters per statement and ``max_layers`` caps
    the length of the longest dependency chain.
    """

    max_bulk_rows: int = DEFAULT_MAX_BULK_ROWS
    param_limit: int = DEFAULT_PARAM_LIMIT
    max_layers: int = DEFAULT_MAX_LAYERS

    def __post_init__(self) -> None:
        for name in ("max_bulk_rows", "param_limit", "max_layers"):
            value = getattr(self, name)
            if value < 1:
                raise ConfigurationError(f"{name} must be positive, got {value}")


def get_write_limits() -> WriteLimits:
    return WriteLimits(
        max_bulk_rows=int_env_var("NESTEDCREATE_MAX_BULK_ROWS", DEFAULT_MAX_BULK_ROWS),
        param_limit=int_env_var("NESTEDCREATE_PARAM_LIMIT", DEFAULT_PARAM_LIMIT),
        max_layers=int_env_var("NESTEDCREATE_MAX_LAYERS", DEFAULT_MAX_LAYERS),
    )
