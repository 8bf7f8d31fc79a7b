"""Orphan reaper: terminates remote instances with no local node.

A pass enumerates every managed cloud, lists the remote instances carrying
the cloud's identity label and the local nodes owned by that cloud, then
terminates every remote instance whose name has no local counterpart.

The pass is fail-safe. When the remote listing for a cloud fails, nothing
is terminated for that cloud. Termination failures are contained per
instance, and failures inside one cloud never reach the others.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from loguru import logger

from fleetwarden.model import LocalNode, ManagedCloud, RemoteInstance
from fleetwarden.protocols import CloudRegistry, NodeRegistry
from fleetwarden.utils.conc import map_async

log = logger.bind(component="reconciler")

HOUR = 60 * 60


@dataclass(frozen=True, slots=True)
class ReconcileReport:
    """Outcome of one pass over one cloud."""

    cloud: str
    remote_count: int = 0
    local_count: int = 0
    orphans: tuple[str, ...] = ()
    terminated: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()
    fetch_failed: bool = False
    dry_run: bool = False

    @property
    def clean(self) -> bool:
        return not self.orphans and not self.fetch_failed


class Reconciler:
    """Periodically checks that no lost instances survive in the cloud.

    Args:
        clouds: Registry enumerating the managed cloud accounts.
        nodes: Registry of local scheduler nodes.
        dry_run: Detect and log orphans without terminating them.
        concurrency: Number of clouds processed in parallel. ``None`` or 1
            processes clouds sequentially.
    """

    recurrence_period: float = HOUR

    def __init__(
        self,
        clouds: CloudRegistry,
        nodes: NodeRegistry,
        *,
        dry_run: bool = False,
        concurrency: int | None = None,
    ) -> None:
        self._clouds = clouds
        self._nodes = nodes
        self._dry_run = dry_run
        self._concurrency = concurrency

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    def run_once(self) -> list[ReconcileReport]:
        """Run one reconciliation pass over every managed cloud.

        Never raises. An enumeration failure ends the pass with no reports;
        it is simply attempted again on the next period.
        """
        try:
            clouds = list(self._clouds.list_managed_clouds())
        except Exception as e:
            log.warning("Error listing managed clouds: {err}", err=e)
            return []

        if not clouds:
            log.debug("No managed clouds, nothing to reconcile")
            return []

        if self._concurrency is not None and self._concurrency > 1:
            return list(map_async(
                self._clean_isolated, clouds,
                concurrency=self._concurrency, name="fleet-reaper",
            ))
        return [self._clean_isolated(cloud) for cloud in clouds]

    def _clean_isolated(self, cloud: ManagedCloud) -> ReconcileReport:
        try:
            return self.clean_cloud(cloud)
        except Exception:
            log.exception("Unexpected error reconciling cloud {cloud}", cloud=cloud.name)
            return ReconcileReport(cloud=cloud.name, fetch_failed=True, dry_run=self._dry_run)

    def clean_cloud(self, cloud: ManagedCloud) -> ReconcileReport:
        """Terminate every labeled remote instance of ``cloud`` unknown locally."""
        remote = self.fetch_remote_instances(cloud)
        if remote is None:
            return ReconcileReport(cloud=cloud.name, fetch_failed=True, dry_run=self._dry_run)

        local = self.fetch_local_nodes(cloud)
        orphans = [inst for inst in remote if inst.name not in local]

        terminated: list[str] = []
        failed: list[str] = []
        for inst in orphans:
            match self._terminate(cloud, inst):
                case True:
                    terminated.append(inst.name)
                case False:
                    failed.append(inst.name)
                case None:
                    pass

        report = ReconcileReport(
            cloud=cloud.name,
            remote_count=len(remote),
            local_count=len(local),
            orphans=tuple(inst.name for inst in orphans),
            terminated=tuple(terminated),
            failed=tuple(failed),
            dry_run=self._dry_run,
        )
        log.info(
            "Reconciled {cloud}: remote={r} local={l} orphans={o} terminated={t} failed={f}",
            cloud=cloud.name, r=report.remote_count, l=report.local_count,
            o=len(report.orphans), t=len(report.terminated), f=len(report.failed),
        )
        return report

    def fetch_remote_instances(self, cloud: ManagedCloud) -> Sequence[RemoteInstance] | None:
        """List the cloud's labeled instances, or ``None`` when the listing failed.

        The listing is fully materialised before any decision is taken.
        """
        label = cloud.label
        try:
            return list(cloud.client.list_instances_with_label(
                cloud.project_id, label.key, label.value,
            ))
        except Exception as e:
            log.warning(
                "Error finding remote instances for {cloud}: {err}",
                cloud=cloud.name, err=e,
            )
            return None

    def fetch_local_nodes(self, cloud: ManagedCloud) -> Mapping[str, LocalNode]:
        return {
            node.name: node
            for node in self._nodes.list_local_nodes(cloud.name)
            if node.cloud_name == cloud.name
        }

    def _terminate(self, cloud: ManagedCloud, inst: RemoteInstance) -> bool | None:
        if self._dry_run:
            log.info(
                "Remote instance {name} in {zone} not found locally (dry run, keeping it)",
                name=inst.name, zone=inst.zone,
            )
            return None

        log.info(
            "Remote instance {name} in {zone} not found locally, removing it",
            name=inst.name, zone=inst.zone,
        )
        try:
            cloud.client.terminate_instance(cloud.project_id, inst.zone, inst.name)
        except Exception as e:
            log.warning(
                "Error terminating remote instance {name}: {err}",
                name=inst.name, err=e,
            )
            return False
        return True
