"""Resource scanners for Azure Quick Review.

Each scanner owns one or more resource types and an ordered table of
recommendations. The runner builds a per-subscription scan context, fans the
scanners out over subscriptions and resource groups, and aggregates the rows:

   >>> from azqr.scanners import ScanRunner, ReportGenerator
   >>> report = await ScanRunner().run_scan(["00000000-0000-0000-0000-000000000000"])
   >>> print(ReportGenerator(report).to_markdown())
"""

from azqr.scanners.base import BaseScanner, ScannerConfig
from azqr.scanners.context import (
    DiagnosticsSettingsIndex,
    ScanContext,
    build_scan_context,
)
from azqr.scanners.engine import RecommendationEngine
from azqr.scanners.models import (
    Indeterminate,
    Recommendation,
    RecommendationCategory,
    RecommendationImpact,
    ResultRow,
    ScanReport,
    ScanState,
    ScanUnitResult,
    Scope,
    ScopeKind,
    UnitStatus,
)
from azqr.scanners.registry import ScannerRegistry, get_registry
from azqr.scanners.reports import ReportGenerator
from azqr.scanners.runner import ScanRunner

__all__ = [
    # Base classes
    "BaseScanner",
    "ScannerConfig",
    # Context and engine
    "DiagnosticsSettingsIndex",
    "ScanContext",
    "build_scan_context",
    "RecommendationEngine",
    # Models
    "Indeterminate",
    "Recommendation",
    "RecommendationCategory",
    "RecommendationImpact",
    "ResultRow",
    "ScanReport",
    "ScanState",
    "ScanUnitResult",
    "Scope",
    "ScopeKind",
    "UnitStatus",
    # Orchestration
    "ScannerRegistry",
    "get_registry",
    "ScanRunner",
    "ReportGenerator",
]
