"""Retention strategy for cloud-managed nodes.

A node under retention management tells this story: accepting → draining
→ released. It drains when it has been idle longer than the configured
threshold, or as soon as a task finishes on it. The periodic idle check
backs up the event path, so a missed completion event cannot leak a node.

Draining clears the node's accepting-tasks flag synchronously and then
releases the node on a bounded worker pool while holding the task queue
lock. Each node carries its own lock and a release-requested flag, so a
timer tick and a completion event racing on the same node drain it once.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import StrEnum

from loguru import logger

from fleetwarden.core.exceptions import NodeGoneError, RetentionConfigError
from fleetwarden.protocols import ManagedNode, TaskQueue

log = logger.bind(component="retention")

DEFAULT_IDLE_MINUTES = 10
CHECK_INTERVAL_SECONDS = 60
DISPLAY_NAME = "Use node only once"

_RELEASE_WORKERS = 4


class NodeState(StrEnum):
    ACCEPTING = "accepting"
    DRAINING = "draining"


@dataclass(slots=True)
class RetentionState:
    """Mutable retention bookkeeping of a single node, guarded by ``lock``."""

    node_name: str
    state: NodeState = NodeState.ACCEPTING
    accepting_tasks: bool = True
    release_requested: bool = False
    released: bool = False
    idle_since: float | None = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


def effective_idle_minutes(idle_minutes: int) -> int:
    """Coerce non-positive thresholds to the default."""
    return idle_minutes if idle_minutes >= 1 else DEFAULT_IDLE_MINUTES


class RetentionStrategy:
    """Decides when cloud-managed nodes stop accepting work and are released.

    Args:
        idle_minutes: Minutes of idleness after which a node is drained. It
            backs up task-completion events. Values below 1 fall back to
            ``DEFAULT_IDLE_MINUTES``.
        one_shot: Release nodes after their first task and skip the idle
            check entirely.
        queue: Task queue whose lock serializes release decisions.
        release_pool: Executor running release jobs. A bounded pool owned by
            the strategy is created when omitted.
        clock: Epoch-seconds clock, compared against ``node.idle_since()``.
    """

    def __init__(
        self,
        idle_minutes: int = DEFAULT_IDLE_MINUTES,
        one_shot: bool = False,
        *,
        queue: TaskQueue,
        release_pool: Executor | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._idle_minutes = idle_minutes
        self._one_shot = one_shot
        self._queue = queue
        self._owns_pool = release_pool is None
        self._pool = release_pool or ThreadPoolExecutor(
            max_workers=_RELEASE_WORKERS,
            thread_name_prefix="fleet-release",
        )
        self._clock = clock
        self._states: dict[str, RetentionState] = {}
        self._states_lock = threading.Lock()

    @property
    def idle_minutes(self) -> int:
        return effective_idle_minutes(self._idle_minutes)

    @property
    def one_shot(self) -> bool:
        return self._one_shot

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RetentionStrategy):
            return NotImplemented
        return (self.idle_minutes, self._one_shot) == (other.idle_minutes, other._one_shot)

    def __hash__(self) -> int:
        return hash((self.idle_minutes, self._one_shot))

    def __repr__(self) -> str:
        return f"RetentionStrategy(idle_minutes={self.idle_minutes}, one_shot={self._one_shot})"

    # ── lifecycle ──────────────────────────────────────────────────────

    def start(self, node: ManagedNode) -> None:
        """Bring ``node`` under retention management and connect it.

        Any state left behind by an earlier node of the same name is
        replaced, so a reused name starts out accepting.

        Raises:
            RetentionConfigError: The node is ephemeral or not owned by a
                cloud pool. This is a wiring error, not a runtime condition.
        """
        if node.is_ephemeral:
            raise RetentionConfigError(node.name, "ephemeral nodes manage their own lifetime")
        if not node.cloud_name:
            raise RetentionConfigError(node.name, "node is not under cloud pool management")

        with self._states_lock:
            self._states[node.name] = RetentionState(node_name=node.name)
        log.debug("Retention started for {node} ({strategy})", node=node.name, strategy=self)
        node.connect()

    def state_of(self, node_name: str) -> RetentionState | None:
        with self._states_lock:
            return self._states.get(node_name)

    def discard(self, node_name: str) -> None:
        """Forget a node once the scheduler dropped it from its registry."""
        with self._states_lock:
            self._states.pop(node_name, None)

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_pool:
            self._pool.shutdown(wait=wait)

    # ── triggers ───────────────────────────────────────────────────────

    def check_tick(self, node: ManagedNode) -> int:
        """Periodic idle check. Returns seconds until the next check."""
        if self._one_shot:
            return CHECK_INTERVAL_SECONDS

        if node.is_idle():
            idle_since = node.idle_since()
            idle_seconds = self._clock() - idle_since
            state = self._state_for(node)
            with state.lock:
                state.idle_since = idle_since
            if idle_seconds > self.idle_minutes * 60:
                log.debug(
                    "Disconnecting {node}, idle for {secs:.0f}s",
                    node=node.name, secs=idle_seconds,
                )
                self.drain(node)

        return CHECK_INTERVAL_SECONDS

    def on_task_accepted(self, node: ManagedNode, task: object) -> None:
        log.trace("{node} accepted {task}", node=node.name, task=task)

    def on_task_completed(self, node: ManagedNode, task: object, duration_ms: int) -> None:
        log.debug(
            "Terminating {node} since {task} seems to be finished ({ms}ms)",
            node=node.name, task=task, ms=duration_ms,
        )
        self.drain(node)

    def on_task_failed(
        self, node: ManagedNode, task: object, duration_ms: int, problems: BaseException | None,
    ) -> None:
        log.debug(
            "Terminating {node} since {task} finished with problems ({ms}ms): {err}",
            node=node.name, task=task, ms=duration_ms, err=problems,
        )
        self.drain(node)

    # ── transitions ────────────────────────────────────────────────────

    def drain(self, node: ManagedNode) -> bool:
        """Stop ``node`` accepting tasks and request its release once.

        The accepting flag is cleared before this returns; the release runs
        later on the worker pool. Returns True when this call scheduled the
        release, False when an earlier call already had or the pool refused
        the job.
        """
        state = self._state_for(node)
        with state.lock:
            node.set_accepting_tasks(False)
            state.accepting_tasks = False
            state.state = NodeState.DRAINING
            if state.release_requested:
                return False
            state.release_requested = True

        log.info("Draining {node}", node=node.name)
        try:
            self._pool.submit(self._release, node, state)
        except RuntimeError:
            log.exception("Cannot schedule release of {node}", node=node.name)
            with state.lock:
                state.release_requested = False
            return False
        return True

    def _release(self, node: ManagedNode, state: RetentionState) -> None:
        try:
            self._queue.with_lock(lambda: self._release_locked(node, state))
        except Exception:
            log.exception("Error releasing {node}", node=node.name)

    def _release_locked(self, node: ManagedNode, state: RetentionState) -> None:
        try:
            node.request_release()
        except NodeGoneError:
            log.debug("{node} already gone, nothing to release", node=node.name)
            return
        with state.lock:
            state.released = True
        log.info("Requested release of {node}", node=node.name)

    def _state_for(self, node: ManagedNode) -> RetentionState:
        with self._states_lock:
            state = self._states.get(node.name)
            if state is None:
                state = self._states[node.name] = RetentionState(node_name=node.name)
            return state
