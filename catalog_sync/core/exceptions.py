"""Custom exception classes for the catalog sync engine."""

from enum import Enum
from typing import Optional


class CatalogSyncError(Exception):
    """Base exception for all catalog sync errors."""

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


class FailureKind(str, Enum):
    """Why a page fetch failed."""

    TRANSIENT = "transient"
    BLOCKED = "blocked"
    MALFORMED = "malformed"


class FetchFailure(CatalogSyncError):
    """Raised when a fetch strategy could not obtain usable page content."""

    def __init__(
        self,
        url: str,
        kind: FailureKind,
        message: str = "",
        status_code: Optional[int] = None,
    ):
        self.url = url
        self.kind = kind
        self.status_code = status_code
        detail = message or kind.value
        super().__init__(f"Fetch failed ({kind.value}) for {url}: {detail}")

    @property
    def retriable(self) -> bool:
        """Malformed requests will fail the same way every time."""
        return self.kind is not FailureKind.MALFORMED


class ExtractionFailureKind(str, Enum):
    MISSING_SKU = "missing_sku"
    ADAPTER_ERROR = "adapter_error"


class ExtractionFailure(CatalogSyncError):
    """Raised when a product page does not yield a usable record."""

    def __init__(self, url: str, kind: ExtractionFailureKind, message: str = ""):
        self.url = url
        self.kind = kind
        super().__init__(f"Extraction failed ({kind.value}) for {url}: {message or kind.value}")


class BudgetExceeded(CatalogSyncError):
    """Raised at a cooperative check point once a run may no longer continue.

    ``reason`` is ``"deadline"`` when the wall-clock budget is spent and
    ``"cancelled"`` when the run was cancelled from outside.
    """

    def __init__(self, reason: str = "deadline", message: str = ""):
        self.reason = reason
        super().__init__(message or f"Run budget exhausted ({reason})")

    @property
    def cancelled(self) -> bool:
        return self.reason == "cancelled"


class ReconciliationConflict(CatalogSyncError):
    """Duplicate SKU within one run. Logged and resolved by policy, never raised."""

    def __init__(self, platform: str, sku: str):
        self.platform = platform
        self.sku = sku
        super().__init__(f"Duplicate SKU '{sku}' for {platform} within one run")


class AdapterNotFoundError(CatalogSyncError):
    """Raised when no extraction adapter is registered for a platform."""

    def __init__(self, platform: str):
        self.platform = platform
        super().__init__(f"No extraction adapter registered for platform '{platform}'")
