"""Custom exception hierarchy for fleetwarden.

All fleetwarden-specific exceptions inherit from FleetError, enabling
hosts to catch every library failure with a single except clause.
"""

from __future__ import annotations


class FleetError(Exception):
    """Base exception for all fleetwarden errors."""


class ConfigurationError(FleetError):
    """Raised for invalid configuration or missing required settings."""


class RetentionConfigError(ConfigurationError):
    """Raised when a retention strategy is attached to an incompatible node."""

    def __init__(self, node_name: str, reason: str) -> None:
        self.node_name = node_name
        self.reason = reason
        super().__init__(f"Cannot manage retention of {node_name}: {reason}")


class CloudApiError(FleetError):
    """Raised when a cloud provider call fails."""

    def __init__(self, operation: str, target: str, cause: BaseException | None = None) -> None:
        self.operation = operation
        self.target = target
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{operation} failed for {target}{detail}")


class NodeGoneError(FleetError):
    """Raised when the node backing a computer disappeared before release."""

    def __init__(self, node_name: str) -> None:
        self.node_name = node_name
        super().__init__(f"Node {node_name} no longer exists")
