"""Run-scoped counters and the flat run report handed to monitoring."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum


class RunStatus(str, Enum):
    COMPLETED = "completed"
    PARTIAL = "partial"  # Some category stopped early on errors; no deactivation
    BUDGET_EXCEEDED = "budget_exceeded"
    CANCELLED = "cancelled"


@dataclass
class RunStats:
    """Counters of one platform run.

    Owned by the task driving that run and never shared between runs.
    ``products_found == products_added + products_updated + products_unchanged``
    holds at every point between reconciliations.
    """

    products_found: int = 0
    products_added: int = 0
    products_updated: int = 0
    products_unchanged: int = 0
    products_deactivated: int = 0
    errors_count: int = 0
    pages_fetched: int = 0
    categories_completed: int = 0
    strategy_escalations: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class RunReport:
    platform: str
    status: RunStatus
    started_at: datetime
    duration_seconds: float
    stats: RunStats = field(default_factory=RunStats)

    def as_record(self) -> dict:
        """Flat record: platform, every counter, duration, status."""
        return {
            "platform": self.platform,
            **self.stats.as_dict(),
            "duration": round(self.duration_seconds, 2),
            "status": self.status.value,
            "started_at": self.started_at.astimezone(timezone.utc).isoformat(),
        }
