"""Protocols for the collaborators the core is driven through.

The reaper and the retention strategy never look up ambient global
state. Hosts pass implementations of these protocols at construction
time and call the core explicitly.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Protocol, runtime_checkable

from fleetwarden.model import LocalNode, ManagedCloud, RemoteInstance


# =============================================================================
# Cloud side
# =============================================================================


@runtime_checkable
class CloudClient(Protocol):
    """Provider API used by the reaper.

    Implementations raise on failure; the reaper decides how each failure
    is contained.
    """

    def list_instances_with_label(
        self, project_id: str, label_key: str, label_value: str,
    ) -> Sequence[RemoteInstance]:
        """List every instance in the project carrying ``label_key=label_value``."""
        ...

    def terminate_instance(self, project_id: str, zone: str, instance_name: str) -> None:
        """Request deletion of a single instance."""
        ...


@runtime_checkable
class CloudRegistry(Protocol):
    """Scheduler's registry of managed cloud accounts."""

    def list_managed_clouds(self) -> Sequence[ManagedCloud]: ...


# =============================================================================
# Scheduler side
# =============================================================================


@runtime_checkable
class ManagedNode(Protocol):
    """A scheduler node whose lifetime is governed by a retention strategy.

    ``idle_since`` is an epoch timestamp in seconds. ``request_release`` is
    idempotent and raises ``NodeGoneError`` when the backing node is gone.
    """

    @property
    def name(self) -> str: ...

    @property
    def cloud_name(self) -> str | None: ...

    @property
    def is_ephemeral(self) -> bool: ...

    def is_idle(self) -> bool: ...

    def idle_since(self) -> float: ...

    def set_accepting_tasks(self, accepting: bool) -> None: ...

    def request_release(self) -> None: ...

    def connect(self) -> None: ...


@runtime_checkable
class NodeRegistry(Protocol):
    """Scheduler's node registry. Reads only; the core never mutates it."""

    def list_local_nodes(self, cloud_name: str) -> Sequence[LocalNode]: ...

    def list_managed_nodes(self) -> Sequence[ManagedNode]: ...


@runtime_checkable
class TaskQueue(Protocol):
    """Cluster-wide task queue whose lock serializes assignment changes."""

    def with_lock[T](self, fn: Callable[[], T]) -> T: ...


__all__ = [
    "CloudClient",
    "CloudRegistry",
    "ManagedNode",
    "NodeRegistry",
    "TaskQueue",
]
