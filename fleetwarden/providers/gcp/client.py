"""Compute Engine client for the reaper.

Implements the CloudClient protocol on top of the synchronous
google-cloud-compute InstancesClient. Listing goes through the aggregated
list API so a single call covers every zone of the project; transient
failures are retried with exponential backoff before giving up.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from http import HTTPStatus
from typing import Any

from loguru import logger
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from fleetwarden.core.exceptions import CloudApiError, ConfigurationError
from fleetwarden.model import RemoteInstance

from .config import GCP

log = logger.bind(component="gcp")

_TRANSIENT_CODES = frozenset({
    HTTPStatus.TOO_MANY_REQUESTS,
    HTTPStatus.INTERNAL_SERVER_ERROR,
    HTTPStatus.BAD_GATEWAY,
    HTTPStatus.SERVICE_UNAVAILABLE,
    HTTPStatus.GATEWAY_TIMEOUT,
})


class ComputeEngineClient:
    """Stateless Compute Engine client. Holds only config + a sync client."""

    def __init__(self, config: GCP, instances_client: object, project: str) -> None:
        self._config = config
        self._instances = instances_client
        self._project = project

    @property
    def project(self) -> str:
        return self._project

    @classmethod
    def create(cls, config: GCP) -> ComputeEngineClient:
        from google.cloud import compute_v1  # type: ignore[reportMissingImports]

        project = _resolve_project(config.project)
        log.info("Resolved GCP project: {project}", project=project)
        return cls(
            config=config,
            instances_client=compute_v1.InstancesClient(),
            project=project,
        )

    def list_instances_with_label(
        self, project_id: str, label_key: str, label_value: str,
    ) -> list[RemoteInstance]:
        from google.cloud import compute_v1  # type: ignore[reportMissingImports]

        request = compute_v1.AggregatedListInstancesRequest(
            project=project_id,
            filter=_label_filter(label_key, label_value),
        )

        @retry(
            stop=stop_after_attempt(self._config.list_attempts),
            wait=wait_exponential(
                multiplier=self._config.list_backoff, max=self._config.list_max_wait,
            ),
            retry=retry_if_exception(_is_transient),
            reraise=True,
        )
        def _fetch() -> list[tuple[str, Any]]:
            pager = self._instances.aggregated_list(  # type: ignore[union-attr]
                request=request, timeout=self._config.timeout,
            )
            return list(pager)

        try:
            scopes = _fetch()
        except Exception as e:
            raise CloudApiError(
                "list instances", f"{project_id} [{label_key}={label_value}]", e,
            ) from e

        instances = [
            _build_remote_instance(gce_inst)
            for _, scoped in scopes
            for gce_inst in getattr(scoped, "instances", None) or ()
        ]
        # The server-side filter is authoritative; this guards against partial matches.
        matched = [inst for inst in instances if inst.labels.get(label_key) == label_value]
        log.debug(
            "Found {n} instances labeled {key}={value} in {project}",
            n=len(matched), key=label_key, value=label_value, project=project_id,
        )
        return matched

    def terminate_instance(self, project_id: str, zone: str, instance_name: str) -> None:
        from google.cloud import compute_v1  # type: ignore[reportMissingImports]

        try:
            self._instances.delete(  # type: ignore[union-attr]
                request=compute_v1.DeleteInstanceRequest(
                    project=project_id,
                    zone=zone,
                    instance=instance_name,
                ),
                timeout=self._config.timeout,
            )
        except Exception as e:
            raise CloudApiError("terminate instance", f"{zone}/{instance_name}", e) from e
        log.info("Requested deletion of instance {name} in {zone}", name=instance_name, zone=zone)


# =============================================================================
# Pure helper functions (no GCP API calls)
# =============================================================================


def _label_filter(key: str, value: str) -> str:
    return f'labels.{key} = "{value}"'


def _is_transient(exc: BaseException) -> bool:
    """Rate limiting, server errors and dropped connections are retried."""
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return True
    code = getattr(exc, "code", None)
    return isinstance(code, int) and code in _TRANSIENT_CODES


def _zone_name(zone: str) -> str:
    """Extract zone name from a zone URL (e.g., '.../zones/us-central1-a' -> 'us-central1-a')."""
    return zone.rsplit("/", 1)[-1]


def _build_remote_instance(gce_inst: object) -> RemoteInstance:
    labels: Mapping[str, str] = getattr(gce_inst, "labels", None) or {}
    return RemoteInstance(
        name=gce_inst.name,  # type: ignore[union-attr]
        zone=_zone_name(getattr(gce_inst, "zone", "")),
        labels=dict(labels),
    )


def _resolve_project(explicit: str | None) -> str:
    """Resolve GCP project: explicit > env > ADC."""
    if explicit:
        return explicit

    if env_project := os.environ.get("GOOGLE_CLOUD_PROJECT"):
        return env_project

    if env_project := os.environ.get("GCLOUD_PROJECT"):
        return env_project

    try:
        import google.auth  # type: ignore[reportMissingImports]

        _, project = google.auth.default()
        if project:
            return project
    except Exception as e:
        log.debug("Application Default Credentials unavailable: {err}", err=e)

    raise ConfigurationError(
        "No GCP project found. Set GOOGLE_CLOUD_PROJECT env var, "
        "pass project= to GCP(), or configure Application Default Credentials."
    )
