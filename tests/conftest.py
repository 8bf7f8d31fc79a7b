from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from concurrent.futures import Executor, Future

import pytest

from fleetwarden.core.exceptions import CloudApiError, NodeGoneError
from fleetwarden.model import LocalNode, ManagedCloud, RemoteInstance


class FakeCloudClient:
    """In-memory provider: label-filtered listing, recorded terminations."""

    def __init__(
        self,
        instances: Iterable[RemoteInstance] = (),
        *,
        list_error: Exception | None = None,
        fail_on: Iterable[str] = (),
    ) -> None:
        self.instances = list(instances)
        self.list_error = list_error
        self.fail_on = set(fail_on)
        self.list_calls: list[tuple[str, str, str]] = []
        self.terminated: list[tuple[str, str, str]] = []
        self._lock = threading.Lock()

    def list_instances_with_label(
        self, project_id: str, label_key: str, label_value: str,
    ) -> list[RemoteInstance]:
        self.list_calls.append((project_id, label_key, label_value))
        if self.list_error is not None:
            raise self.list_error
        return [i for i in self.instances if i.labels.get(label_key) == label_value]

    def terminate_instance(self, project_id: str, zone: str, instance_name: str) -> None:
        with self._lock:
            self.terminated.append((project_id, zone, instance_name))
        if instance_name in self.fail_on:
            raise CloudApiError("terminate instance", f"{zone}/{instance_name}")

    @property
    def terminated_names(self) -> list[str]:
        return [name for _, _, name in self.terminated]


class FakeCloudRegistry:
    def __init__(self, clouds: Iterable[ManagedCloud] = (), *, error: Exception | None = None) -> None:
        self.clouds = list(clouds)
        self.error = error

    def list_managed_clouds(self) -> list[ManagedCloud]:
        if self.error is not None:
            raise self.error
        return list(self.clouds)


class FakeNodeRegistry:
    def __init__(
        self,
        local: Iterable[LocalNode] = (),
        managed: Iterable[FakeNode] = (),
        *,
        broken_clouds: Iterable[str] = (),
    ) -> None:
        self.local = list(local)
        self.managed = list(managed)
        self.broken_clouds = set(broken_clouds)

    def list_local_nodes(self, cloud_name: str) -> list[LocalNode]:
        if cloud_name in self.broken_clouds:
            raise RuntimeError(f"registry corrupted for {cloud_name}")
        return [n for n in self.local if n.cloud_name == cloud_name]

    def list_managed_nodes(self) -> list[FakeNode]:
        return list(self.managed)


class FakeNode:
    """Scheduler node double recording every call the strategy makes."""

    def __init__(
        self,
        name: str = "node-1",
        *,
        cloud_name: str | None = "prod",
        is_ephemeral: bool = False,
        idle: bool = True,
        idle_since: float = 0.0,
        gone: bool = False,
        on_release: Callable[[], None] | None = None,
    ) -> None:
        self.name = name
        self.cloud_name = cloud_name
        self.is_ephemeral = is_ephemeral
        self.idle = idle
        self._idle_since = idle_since
        self.gone = gone
        self.on_release = on_release
        self.accepting = True
        self.accepting_history: list[bool] = []
        self.release_requests = 0
        self.idle_checks = 0
        self.connected = False
        self._lock = threading.Lock()

    def is_idle(self) -> bool:
        self.idle_checks += 1
        return self.idle

    def idle_since(self) -> float:
        return self._idle_since

    def set_accepting_tasks(self, accepting: bool) -> None:
        with self._lock:
            self.accepting = accepting
            self.accepting_history.append(accepting)

    def request_release(self) -> None:
        if self.gone:
            raise NodeGoneError(self.name)
        if self.on_release is not None:
            self.on_release()
        with self._lock:
            self.release_requests += 1

    def connect(self) -> None:
        self.connected = True


class RecordingQueue:
    """Task queue lock that remembers whether it is currently held."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.held = False
        self.acquisitions = 0

    def with_lock[T](self, fn: Callable[[], T]) -> T:
        with self._lock:
            self.acquisitions += 1
            self.held = True
            try:
                return fn()
            finally:
                self.held = False


class InlineExecutor(Executor):
    """Runs submitted work on the calling thread."""

    def submit(self, fn, /, *args, **kwargs):  # type: ignore[override]
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as e:  # noqa: BLE001
            future.set_exception(e)
        return future


def remote(name: str, cloud: ManagedCloud, zone: str = "us-central1-a") -> RemoteInstance:
    label = cloud.label
    return RemoteInstance(name=name, zone=zone, labels={label.key: label.value})


@pytest.fixture
def make_node() -> Callable[..., FakeNode]:
    return FakeNode


@pytest.fixture
def queue() -> RecordingQueue:
    return RecordingQueue()


@pytest.fixture
def inline_executor() -> InlineExecutor:
    return InlineExecutor()
