from enum import Enum
from typing import Optional


class FailureKind(Enum):
    """Enumeration of external service failure reasons"""

    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    SERVER_ERROR = "server_error"
    NETWORK_ERROR = "network_error"

    @property
    def display_message(self) -> str:
        """Human-readable failure message"""
        messages = {
            self.RATE_LIMITED: "Overpass API rate limit exceeded (429)",
            self.TIMEOUT: "Overpass API request timed out",
            self.SERVER_ERROR: "Overpass API returned an error response",
            self.NETWORK_ERROR: "Could not reach the Overpass API",
        }
        return messages[self]


class SyncError(Exception):
    """Base class for sync pipeline errors."""


class PartitionDegenerate(SyncError):
    """Raised for a bbox with zero area; callers treat it as a no-op."""


class ExternalServiceError(SyncError):
    """A request to the external map service failed after all retries."""

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        status_code: Optional[int] = None,
        retryable: bool = True,
    ):
        super().__init__(f"{kind.display_message}: {message}")
        self.kind = kind
        self.status_code = status_code
        self.retryable = retryable


class RegionBoundaryNotFound(SyncError):
    def __init__(self, region_name: str, detail: Optional[str] = None):
        message = f"Region boundary not found: {region_name}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.region_name = region_name


class WayProcessingError(SyncError):
    def __init__(self, external_id: int, message: str):
        super().__init__(f"Way {external_id} failed: {message}")
        self.external_id = external_id


class SyncCancelled(SyncError):
    def __init__(self, reason: str):
        super().__init__(f"Sync cancelled: {reason}")
        self.reason = reason
