"""Exception hierarchy for argowave.

``ArgoCDAPIError`` covers failed Argo CD API calls. ``ScaleDownError`` and its
subclasses are the fatal outcomes of a wave scale-down run; each one names the
workload (and, once known, the wave) it failed on.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from argowave.models.resources import ResourceStatus

# gRPC status carried in Argo CD error bodies
_GRPC_INVALID_ARGUMENT = 3
_GRPC_NOT_FOUND = 5
_GRPC_UNAUTHENTICATED = 16


class ArgoWaveError(Exception):
    """Base class for every error raised by argowave."""


class ArgoCDAPIError(ArgoWaveError):
    """An Argo CD API call returned a non-2xx response or could not be sent."""

    def __init__(self, message: str, status_code: int | None = None, code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404 or self.code == _GRPC_NOT_FOUND

    @property
    def is_invalid_argument(self) -> bool:
        return self.status_code == 400 or self.code == _GRPC_INVALID_ARGUMENT

    @property
    def is_unauthenticated(self) -> bool:
        return self.status_code == 401 or self.code == _GRPC_UNAUTHENTICATED

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.message} (http {self.status_code})"


class AuthenticationError(ArgoCDAPIError):
    """Session login failed or the server rejected the bearer token."""


class WaitTimeoutError(ArgoWaveError):
    """An application did not become synced and healthy in time."""


class ScaleDownError(ArgoWaveError):
    """A scale-down run aborted."""

    def __init__(
        self,
        message: str,
        workload: ResourceStatus | None = None,
        wave: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.workload = workload
        self.wave = wave

    def __str__(self) -> str:
        parts = []
        if self.wave is not None:
            parts.append(f"wave={self.wave}")
        if self.workload is not None:
            parts.append(str(self.workload))
        prefix = " ".join(parts)
        return f"{prefix}: {self.message}" if prefix else self.message


class DiscoveryError(ScaleDownError):
    """The application or its resource list could not be fetched."""


class PatchError(ScaleDownError):
    """Setting a workload's replicas to zero failed."""


class TreeFetchError(ScaleDownError):
    """The resource tree could not be fetched while waiting for pods."""


class ForceDeleteError(ScaleDownError):
    """A lingering pod could not be force-deleted."""


class DrainTimeoutError(ScaleDownError):
    """The run deadline passed while workloads were still draining."""

    def __init__(
        self,
        message: str,
        pending: list[ResourceStatus] | None = None,
        wave: int | None = None,
    ) -> None:
        pending = pending or []
        super().__init__(message, workload=pending[0] if len(pending) == 1 else None, wave=wave)
        self.pending = pending
