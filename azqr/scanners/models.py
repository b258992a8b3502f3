"""Data models for recommendations, result rows and scan reports."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from azqr.core.errors import ErrorKind


class RecommendationCategory(str, Enum):
    """Categories of best-practice recommendations."""

    MONITORING = "Monitoring"
    HIGH_AVAILABILITY = "HighAvailability"
    SECURITY = "Security"
    GOVERNANCE = "Governance"
    PERFORMANCE = "Performance"
    OPERATIONAL_EXCELLENCE = "OperationalExcellence"
    COST = "Cost"


class RecommendationImpact(str, Enum):
    """Impact of violating a recommendation."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class ScopeKind(str, Enum):
    """Scope a scanner lists resources in."""

    SUBSCRIPTION = "subscription"
    RESOURCE_GROUP = "resource_group"


class ScanState(str, Enum):
    """States of a scan run."""

    IDLE = "idle"
    BUILDING_CONTEXT = "building_context"
    SCANNING = "scanning"
    AGGREGATING = "aggregating"
    DONE = "done"
    ABORTED = "aborted"


class UnitStatus(str, Enum):
    """Outcome of one unit of work."""

    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class Indeterminate:
    """Predicate outcome for a rule that cannot be decided for a resource."""

    reason: str


RuleOutcome = tuple[bool, str] | Indeterminate
Predicate = Callable[[Any, Any], RuleOutcome]


@dataclass(frozen=True)
class Recommendation:
    """A best-practice rule evaluated against one resource.

    The predicate receives the resource and the subscription's ScanContext and
    returns ``(broken, detail)`` or an :class:`Indeterminate` outcome.
    """

    recommendation_id: str
    resource_type: str
    category: RecommendationCategory
    impact: RecommendationImpact
    description: str
    predicate: Predicate
    learn_more_url: str = ""
    detailed: bool = False

    def is_applicable(self, detailed_scan: bool) -> bool:
        """Detailed-only rules apply only to detailed scans."""
        return detailed_scan or not self.detailed


class Scope(BaseModel):
    """A subscription, or a resource group within it."""

    subscription_id: str
    subscription_name: str = ""
    resource_group: str | None = None

    model_config = {"frozen": True}

    @property
    def kind(self) -> ScopeKind:
        if self.resource_group is None:
            return ScopeKind.SUBSCRIPTION
        return ScopeKind.RESOURCE_GROUP

    def __str__(self) -> str:
        if self.resource_group is None:
            return f"subscription {self.subscription_id}"
        return f"subscription {self.subscription_id} / resource group {self.resource_group}"


class ResourceTarget(BaseModel):
    """Location metadata stamped on every row produced for one resource."""

    subscription_id: str
    subscription_name: str = ""
    resource_group: str = ""
    resource_name: str
    resource_type: str
    location: str = ""

    model_config = {"frozen": True}


class ResultRow(BaseModel):
    """One (resource, rule) evaluation outcome."""

    subscription_id: str = Field(..., description="Subscription ID of the resource")
    subscription_name: str = Field("", description="Subscription display name")
    resource_group: str = Field("", description="Resource group of the resource")
    resource_name: str = Field(..., description="Name of the resource")
    resource_type: str = Field(..., description="ARM resource type")
    location: str = Field("", description="Azure region of the resource")
    rule_id: str = Field(..., description="Recommendation ID")
    category: RecommendationCategory
    impact: RecommendationImpact
    description: str = Field("", description="Recommendation description")
    learn_more_url: str = Field("", description="Documentation link")
    broken: bool = Field(..., description="True when the recommendation is violated")
    detail: str = Field("", description="Context for the outcome, e.g. SKU or SLA")
    indeterminate: bool = Field(
        False, description="True when the rule could not be decided"
    )

    model_config = {"frozen": True}

    def sort_key(self) -> tuple[str, str, str, str]:
        """Report ordering: subscription, resource group, type, name."""
        return (
            self.subscription_id.lower(),
            self.resource_group.lower(),
            self.resource_type.lower(),
            self.resource_name.lower(),
        )


class ScanUnitResult(BaseModel):
    """Outcome of one (scope, scanner) unit of work."""

    subscription_id: str
    resource_group: str | None = None
    scanner: str
    resource_types: list[str] = Field(default_factory=list)
    status: UnitStatus
    row_count: int = 0
    error_kind: ErrorKind | None = None
    message: str = ""
    duration_ms: float = 0

    def is_skipped(self) -> bool:
        return self.status == UnitStatus.SKIPPED

    def is_failed(self) -> bool:
        return self.status == UnitStatus.FAILED


class ScanReport(BaseModel):
    """Complete scan report handed to renderers."""

    id: str = Field(..., description="Unique identifier for this report")
    started_at: datetime = Field(
        default_factory=datetime.utcnow, description="When the scan started"
    )
    completed_at: datetime | None = Field(None, description="When the scan completed")
    state: ScanState = Field(ScanState.IDLE, description="Final state of the run")
    subscription_ids: list[str] = Field(default_factory=list)
    detailed_scan: bool = False
    rows: list[ResultRow] = Field(default_factory=list)
    units: list[ScanUnitResult] = Field(default_factory=list)

    @property
    def broken_count(self) -> int:
        """Get count of violated recommendations."""
        return sum(1 for r in self.rows if r.broken)

    @property
    def indeterminate_count(self) -> int:
        return sum(1 for r in self.rows if r.indeterminate)

    @property
    def resource_count(self) -> int:
        """Get count of distinct scanned resources."""
        return len({
            (r.subscription_id.lower(), r.resource_group.lower(),
             r.resource_type.lower(), r.resource_name.lower())
            for r in self.rows
        })

    @property
    def skipped_units(self) -> list[ScanUnitResult]:
        return [u for u in self.units if u.is_skipped()]

    @property
    def failed_units(self) -> list[ScanUnitResult]:
        return [u for u in self.units if u.is_failed()]

    @property
    def is_complete(self) -> bool:
        """Check if the run finished with every unit scanned."""
        return self.state == ScanState.DONE and not self.skipped_units and not self.failed_units

    def get_rows_for_resource_type(self, resource_type: str) -> list[ResultRow]:
        """Get all rows for one resource type (case-insensitive)."""
        return [r for r in self.rows if r.resource_type.lower() == resource_type.lower()]

    def get_summary(self) -> dict[str, Any]:
        """Get a summary of the report."""
        return {
            "id": self.id,
            "state": self.state.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "subscriptions": len(self.subscription_ids),
            "resources": self.resource_count,
            "rows": len(self.rows),
            "broken": self.broken_count,
            "indeterminate": self.indeterminate_count,
            "units": len(self.units),
            "skipped_units": len(self.skipped_units),
            "failed_units": len(self.failed_units),
            "is_complete": self.is_complete,
        }
