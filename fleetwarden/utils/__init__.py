"""Utils module - concurrency helpers."""

from fleetwarden.utils.conc import map_async

__all__ = [
    "map_async",
]
