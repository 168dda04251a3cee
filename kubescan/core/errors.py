"""Exception types shared by the operator and the worker."""

from __future__ import annotations


class KubescanError(Exception):
    """Base class for all errors raised by kubescan."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class KubeApiError(KubescanError):
    """Raised when a call to the Kubernetes API fails."""

    def __init__(self, message: str, status: int | None = None) -> None:
        self.status = status
        super().__init__(message)


class NotFoundError(KubeApiError):
    """The requested object does not exist (HTTP 404)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, 404)


class ConflictError(KubeApiError):
    """The object already exists or was modified concurrently (HTTP 409)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, 409)


class ReconcileError(KubescanError):
    """
    Aborts a ClusterScan reconciliation.

    reason is the machine-readable reason written on the Ready condition.
    """

    def __init__(self, reason: str, message: str) -> None:
        self.reason = reason
        super().__init__(message)


class UnknownPluginError(KubescanError):
    """Raised when no report parser is registered for a plugin name."""


class ReportParseError(KubescanError):
    """Raised when a plugin report cannot be parsed; no partial result is returned."""


class InvalidRunIdError(KubescanError):
    """Raised when a Job UID or name has no '-<suffix>' segment."""


class MaterializationError(KubescanError):
    """Raised when one or more ClusterIssues could not be created."""

    def __init__(self, message: str, failed: list[str]) -> None:
        self.failed = failed
        super().__init__(message)


class WorkerConfigError(KubescanError):
    """Raised when the worker environment or its done file is unusable."""
