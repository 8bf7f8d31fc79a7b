"""fleetwarden - keep a cloud fleet in line with the scheduler that uses it.

Two control loops:

- the reaper terminates cloud instances the scheduler no longer knows about;
- the retention strategy drains and releases idle or used-once nodes.

Example:

    from fleetwarden import Reconciler, RetentionStrategy, QueueLock, reaper_work

    reconciler = Reconciler(clouds=cloud_registry, nodes=node_registry)
    work = reaper_work(reconciler)
    work.start()

    strategy = RetentionStrategy(idle_minutes=10, one_shot=True, queue=QueueLock())
    strategy.start(node)
    strategy.on_task_completed(node, task, duration_ms=500)
"""

from loguru import logger

from fleetwarden.config import (
    ReaperSettings,
    RetentionSettings,
    load_config,
    reaper_settings,
    resolve_clouds,
    retention_settings,
    validate_idle_minutes,
)
from fleetwarden.core.exceptions import (
    CloudApiError,
    ConfigurationError,
    FleetError,
    NodeGoneError,
    RetentionConfigError,
)
from fleetwarden.model import (
    CLOUD_ID_LABEL_KEY,
    IdentityLabel,
    LocalNode,
    ManagedCloud,
    RemoteInstance,
    stable_name_hash,
)
from fleetwarden.module import FleetModule
from fleetwarden.observability import LogConfig
from fleetwarden.protocols import (
    CloudClient,
    CloudRegistry,
    ManagedNode,
    NodeRegistry,
    TaskQueue,
)
from fleetwarden.reconciler import ReconcileReport, Reconciler
from fleetwarden.retention import (
    DEFAULT_IDLE_MINUTES,
    NodeState,
    RetentionState,
    RetentionStrategy,
)
from fleetwarden.scheduling import PeriodicWork, QueueLock, RetentionTicker, reaper_work

# Library stays silent until a host calls observability._setup_logging
logger.disable("fleetwarden")

__all__ = [
    # Model
    "CLOUD_ID_LABEL_KEY",
    "IdentityLabel",
    "LocalNode",
    "ManagedCloud",
    "RemoteInstance",
    "stable_name_hash",
    # Collaborators
    "CloudClient",
    "CloudRegistry",
    "ManagedNode",
    "NodeRegistry",
    "TaskQueue",
    # Reaper
    "Reconciler",
    "ReconcileReport",
    "reaper_work",
    # Retention
    "DEFAULT_IDLE_MINUTES",
    "NodeState",
    "RetentionState",
    "RetentionStrategy",
    # Scheduling
    "PeriodicWork",
    "QueueLock",
    "RetentionTicker",
    # Configuration
    "LogConfig",
    "ReaperSettings",
    "RetentionSettings",
    "load_config",
    "reaper_settings",
    "resolve_clouds",
    "retention_settings",
    "validate_idle_minutes",
    # DI
    "FleetModule",
    # Errors
    "FleetError",
    "ConfigurationError",
    "RetentionConfigError",
    "CloudApiError",
    "NodeGoneError",
]
