"""Domain records shared by the reaper and the retention strategy.

Remote instances are fetched fresh on each reconciliation pass and never
cached; local nodes are read from the scheduler's registry. Both are plain
immutable values.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fleetwarden.protocols import CloudClient

CLOUD_ID_LABEL_KEY = "fleet_cloud_id"

_INT32_MASK = 0xFFFFFFFF


def stable_name_hash(name: str) -> int:
    """Deterministic signed 32-bit hash of a cloud name.

    Polynomial hash over UTF-16 code units with multiplier 31, wrapped to a
    signed 32-bit integer. Unlike ``hash()`` it does not change between
    interpreter runs, so labels written at provisioning time stay matchable.
    """
    h = 0
    encoded = name.encode("utf-16-be")
    for i in range(0, len(encoded), 2):
        unit = (encoded[i] << 8) | encoded[i + 1]
        h = (31 * h + unit) & _INT32_MASK
    return h - (1 << 32) if h & 0x80000000 else h


@dataclass(frozen=True, slots=True)
class IdentityLabel:
    """Label scoping remote instances to one managed cloud."""

    key: str
    value: str

    @classmethod
    def for_cloud(cls, cloud_name: str, key: str = CLOUD_ID_LABEL_KEY) -> IdentityLabel:
        return cls(key=key, value=str(stable_name_hash(cloud_name)))

    def as_dict(self) -> dict[str, str]:
        return {self.key: self.value}


@dataclass(frozen=True, slots=True)
class ManagedCloud:
    """One cloud-provider account under management."""

    name: str
    project_id: str
    client: CloudClient = field(repr=False, compare=False)
    label_key: str = CLOUD_ID_LABEL_KEY

    @property
    def label(self) -> IdentityLabel:
        return IdentityLabel.for_cloud(self.name, self.label_key)


@dataclass(frozen=True, slots=True)
class RemoteInstance:
    """Provider-side compute instance. Names are unique within a zone."""

    name: str
    zone: str
    labels: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True, slots=True)
class LocalNode:
    """Scheduler record of a node believed to be backed by a remote instance."""

    name: str
    cloud_name: str
