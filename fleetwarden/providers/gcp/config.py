"""GCP provider configuration.

Immutable configuration dataclass for a Compute Engine account under
management.
"""

from __future__ import annotations

import typing
from dataclasses import dataclass

if typing.TYPE_CHECKING:
    from fleetwarden.providers.gcp.client import ComputeEngineClient


@dataclass(frozen=True, slots=True)
class GCP:
    """GCP Compute Engine account configuration.

    The project is auto-detected from Application Default Credentials or the
    GOOGLE_CLOUD_PROJECT environment variable if not specified.

    Example:
        >>> from fleetwarden.providers.gcp import GCP
        >>> config = GCP(project="my-project")

    Args:
        project: GCP project ID. Auto-detected from ADC or GOOGLE_CLOUD_PROJECT.
        list_attempts: Attempts for transient listing failures (HTTP 429/5xx).
        list_backoff: Multiplier of the exponential backoff, in seconds.
        list_max_wait: Upper bound in seconds for the backoff between attempts.
        timeout: Per-request timeout in seconds.
    """

    project: str | None = None
    list_attempts: int = 3
    list_backoff: float = 1.0
    list_max_wait: float = 10.0
    timeout: float = 60.0

    @property
    def type(self) -> str: return "gcp"

    def create_client(self) -> ComputeEngineClient:
        from fleetwarden.providers.gcp.client import ComputeEngineClient
        return ComputeEngineClient.create(self)
