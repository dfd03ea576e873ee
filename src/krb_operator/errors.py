"""Exceptions raised by the KDC reconciliation engine."""

from typing import Any, Optional


class KrbOperatorError(Exception):
    """Base class for krb-operator errors."""


class ConfigurationError(KrbOperatorError):
    """A required identity field or static configuration value is missing."""


class PlatformOperationError(KrbOperatorError):
    """The Kubernetes API answered a write with an unexpected status."""

    def __init__(self, kind: str, identity: Any, status: Optional[int], resource: Any):
        self.kind = kind
        self.identity = identity
        self.status = status
        self.resource = resource
        super().__init__(
            f"failed to create {kind} {identity}, status: {status}"
        )


class ReadinessTimeoutError(KrbOperatorError):
    """The KDC deployment did not become ready within the wait window."""

    def __init__(self, identity: Any, timeout: float):
        self.identity = identity
        self.timeout = timeout
        super().__init__(
            f"Failed to wait for deployment readiness: {identity} ({timeout}s)"
        )


class TeardownError(KrbOperatorError):
    """Deleting the KDC resources failed. The cause is chained."""

    def __init__(self, identity: Any):
        self.identity = identity
        super().__init__(f"Failed to delete KDC resources for {identity}")


class PrincipalError(KrbOperatorError):
    """A kadmin command executed in the KDC pod reported a failure."""
