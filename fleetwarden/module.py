"""DI wiring for fleetwarden hosts.

The host scheduler owns the registries and the task queue; this module binds
them and provides the reaper and the retention strategy as singletons, so the
core is always constructed from injected collaborators.

Usage:
    injector = Injector([FleetModule(clouds=clouds, nodes=nodes, queue=queue)])
    reconciler = injector.get(Reconciler)
    strategy = injector.get(RetentionStrategy)
"""

from __future__ import annotations

from injector import Binder, Module, provider, singleton

from .config import ReaperSettings, RetentionSettings
from .protocols import CloudRegistry, NodeRegistry, TaskQueue
from .reconciler import Reconciler
from .retention import RetentionStrategy
from .scheduling import PeriodicWork, RetentionTicker, reaper_work


class FleetModule(Module):
    """Binds host collaborators and settings for one fleet."""

    def __init__(
        self,
        clouds: CloudRegistry,
        nodes: NodeRegistry,
        queue: TaskQueue,
        reaper: ReaperSettings | None = None,
        retention: RetentionSettings | None = None,
    ) -> None:
        self._clouds = clouds
        self._nodes = nodes
        self._queue = queue
        self._reaper = reaper or ReaperSettings()
        self._retention = retention or RetentionSettings()

    def configure(self, binder: Binder) -> None:
        binder.bind(CloudRegistry, to=self._clouds)  # type: ignore[type-abstract]
        binder.bind(NodeRegistry, to=self._nodes)  # type: ignore[type-abstract]
        binder.bind(TaskQueue, to=self._queue)  # type: ignore[type-abstract]
        binder.bind(ReaperSettings, to=self._reaper)
        binder.bind(RetentionSettings, to=self._retention)

    @singleton
    @provider
    def provide_reconciler(
        self, clouds: CloudRegistry, nodes: NodeRegistry, settings: ReaperSettings,
    ) -> Reconciler:
        return Reconciler(
            clouds,
            nodes,
            dry_run=settings.dry_run,
            concurrency=settings.concurrency,
        )

    @singleton
    @provider
    def provide_reaper_work(self, reconciler: Reconciler, settings: ReaperSettings) -> PeriodicWork:
        return reaper_work(reconciler, interval=settings.interval)

    @singleton
    @provider
    def provide_strategy(self, queue: TaskQueue, settings: RetentionSettings) -> RetentionStrategy:
        return RetentionStrategy(settings.idle_minutes, settings.one_shot, queue=queue)

    @singleton
    @provider
    def provide_ticker(self, strategy: RetentionStrategy, nodes: NodeRegistry) -> RetentionTicker:
        return RetentionTicker(strategy, nodes)


__all__ = [
    "FleetModule",
]
