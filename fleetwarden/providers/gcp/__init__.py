"""GCP Compute Engine provider for fleetwarden.

NOTE: Only config classes are imported at package level to avoid deps.
For the client implementation, import explicitly:

    from fleetwarden.providers.gcp.client import ComputeEngineClient

Environment Variables:
    GOOGLE_CLOUD_PROJECT: GCP project ID (required if not passed directly)
    GOOGLE_APPLICATION_CREDENTIALS: Path to service account key (optional)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .client import ComputeEngineClient

from .config import GCP

__all__ = [
    "GCP",
]
