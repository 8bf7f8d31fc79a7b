"""Host-side drivers for the reaper and the retention strategy.

Provides the periodic background thread that invokes the reaper once per
period, a ticker that honours the per-node check interval returned by the
retention strategy, and a reference task-queue lock.

Example:
    reconciler = Reconciler(clouds, nodes)
    work = reaper_work(reconciler)
    work.start()
    ...
    work.shutdown()
"""

from __future__ import annotations

import contextvars
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from loguru import logger

from fleetwarden.protocols import NodeRegistry
from fleetwarden.reconciler import Reconciler
from fleetwarden.retention import CHECK_INTERVAL_SECONDS, RetentionStrategy

log = logger.bind(component="scheduling")


@dataclass
class PeriodicWork:
    """Background thread that calls ``run`` every ``interval`` seconds.

    The first invocation happens after one interval, or immediately when
    ``run_at_start`` is set. Exceptions raised by ``run`` are logged and the
    loop carries on; a slow ``run`` delays the next one instead of
    overlapping with it.

    Attributes:
        name: Work name (used for thread naming and logging).
        interval: Seconds between invocations.
        run: Callable invoked on every period.
        run_at_start: Invoke ``run`` once as soon as the thread starts.
        stop: Threading event to signal shutdown.
    """

    name: str
    interval: float
    run: Callable[[], object]
    run_at_start: bool = False
    stop: threading.Event = field(default_factory=threading.Event)
    _thread: threading.Thread | None = field(default=None, init=False)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            log.warning("Periodic work {name} already running", name=self.name)
            return

        self.stop.clear()
        ctx = contextvars.copy_context()
        self._thread = threading.Thread(
            target=ctx.run,
            args=(self._loop,),
            daemon=True,
            name=f"periodic-{self.name}",
        )
        self._thread.start()
        log.debug("Periodic work {name} started (interval={i}s)", name=self.name, i=self.interval)

    def shutdown(self, timeout: float = 5.0) -> None:
        self.stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                log.warning("Periodic work {name} did not stop cleanly", name=self.name)
            self._thread = None
        log.debug("Periodic work {name} stopped", name=self.name)

    def _invoke(self) -> None:
        try:
            self.run()
        except Exception:
            log.exception("Periodic work {name} failed", name=self.name)

    def _loop(self) -> None:
        if self.run_at_start:
            self._invoke()
        while not self.stop.wait(self.interval):
            self._invoke()


def reaper_work(reconciler: Reconciler, *, interval: float | None = None) -> PeriodicWork:
    """Periodic work running one reaper pass per period (hourly by default)."""
    return PeriodicWork(
        name="clean-lost-nodes",
        interval=interval if interval is not None else reconciler.recurrence_period,
        run=reconciler.run_once,
    )


class QueueLock:
    """Task queue lock backed by a reentrant lock.

    Hosts that own a real scheduler queue pass their own ``TaskQueue``;
    this one serves single-process hosts and tests.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()

    def with_lock[T](self, fn: Callable[[], T]) -> T:
        with self._lock:
            return fn()


class RetentionTicker:
    """Drives ``check_tick`` for every managed node at its requested interval.

    Wakes every ``resolution`` seconds, ticks the nodes whose interval
    elapsed and stores the next due time from the strategy's answer. Nodes
    that left the registry are forgotten by the strategy too.
    """

    def __init__(
        self,
        strategy: RetentionStrategy,
        nodes: NodeRegistry,
        *,
        resolution: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._strategy = strategy
        self._nodes = nodes
        self._clock = clock
        self._due: dict[str, float] = {}
        self._work = PeriodicWork(
            name="retention-ticker",
            interval=resolution,
            run=self.sweep,
            run_at_start=True,
        )

    def start(self) -> None:
        self._work.start()

    def shutdown(self) -> None:
        self._work.shutdown()

    def sweep(self) -> int:
        """Tick every due node once. Returns how many nodes were ticked."""
        now = self._clock()
        nodes = {node.name: node for node in self._nodes.list_managed_nodes()}

        for gone in self._due.keys() - nodes.keys():
            del self._due[gone]
            self._strategy.discard(gone)

        ticked = 0
        for name, node in nodes.items():
            if self._due.get(name, now) > now:
                continue
            try:
                interval = self._strategy.check_tick(node)
            except Exception:
                log.exception("Retention check failed for {node}", node=name)
                interval = CHECK_INTERVAL_SECONDS
            self._due[name] = now + interval
            ticked += 1
        return ticked
