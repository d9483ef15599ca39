"""Exception hierarchy for gcecloud.

All gcecloud exceptions inherit from GCECloudError, so callers can catch
every adapter failure with a single except clause.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gcecloud.operations import OperationErrorDetail, OperationHandle


class GCECloudError(Exception):
    """Base exception for all gcecloud errors."""


class TopologyError(GCECloudError):
    """Raised when instance metadata is unreachable or malformed.

    Fatal at construction: it means the adapter is not running inside
    the target environment, so it is never retried.
    """


class ConfigError(GCECloudError):
    """Raised when explicit configuration fails to parse or is inconsistent."""


class CredentialError(GCECloudError):
    """Raised when no valid token was obtained within the bootstrap deadline."""


class VendorError(GCECloudError):
    """Raised when the vendor rejected an issue call (quota, permission, not found)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)

    @property
    def not_found(self) -> bool:
        return self.status_code == 404


class OperationFailed(GCECloudError):
    """Raised when an accepted operation reached a terminal failure state."""

    def __init__(
        self,
        handle: OperationHandle,
        details: tuple[OperationErrorDetail, ...],
    ) -> None:
        self.handle = handle
        self.details = details
        summary = "; ".join(f"{d.code}: {d.message}" for d in details) or "unknown error"
        super().__init__(f"Operation {handle.name} failed: {summary}")


class OperationTimedOut(GCECloudError):
    """Raised when the polling deadline passed before a terminal status.

    The vendor-side fate of the operation is unknown.
    """

    def __init__(self, handle: OperationHandle, timeout: float) -> None:
        self.handle = handle
        self.timeout = timeout
        super().__init__(f"Timeout waiting for operation {handle.name} after {timeout:.1f}s")


class OperationCancelled(GCECloudError):
    """Raised when the caller cancelled polling. The vendor operation keeps running."""

    def __init__(self, handle: OperationHandle) -> None:
        self.handle = handle
        super().__init__(f"Polling for operation {handle.name} was cancelled")
