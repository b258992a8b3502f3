"""Rule builders shared by several rule tables."""

from collections.abc import Callable
from typing import Any

from azqr.scanners.context import ScanContext
from azqr.scanners.engine import text
from azqr.scanners.models import (
    Recommendation,
    RecommendationCategory,
    RecommendationImpact,
    RuleOutcome,
)

CAF_NAMING_URL = (
    "https://learn.microsoft.com/en-us/azure/cloud-adoption-framework/ready/"
    "azure-best-practices/resource-abbreviations"
)
TAGS_URL = (
    "https://learn.microsoft.com/en-us/azure/azure-resource-manager/management/"
    "tag-resources?tabs=json"
)


def diagnostics_rule(
    recommendation_id: str,
    resource_type: str,
    description: str,
    learn_more_url: str,
    impact: RecommendationImpact = RecommendationImpact.MEDIUM,
    show_detail: bool = False,
) -> Recommendation:
    """Rule that is broken when the resource has no diagnostic settings."""

    def predicate(resource: Any, context: ScanContext) -> RuleOutcome:
        has_diagnostics = context.has_diagnostics(getattr(resource, "id", None))
        detail = str(has_diagnostics).lower() if show_detail else ""
        return not has_diagnostics, detail

    return Recommendation(
        recommendation_id=recommendation_id,
        resource_type=resource_type,
        category=RecommendationCategory.MONITORING,
        impact=impact,
        description=description,
        predicate=predicate,
        learn_more_url=learn_more_url,
    )


def caf_naming_rule(
    recommendation_id: str,
    resource_type: str,
    description: str,
    prefix: str,
    show_detail: bool = False,
) -> Recommendation:
    """Rule that is broken when the name lacks the CAF abbreviation prefix.

    The prefix match is case-sensitive: CAF abbreviations are lower case.
    """

    def predicate(resource: Any, context: ScanContext) -> RuleOutcome:
        name = getattr(resource, "name", None) or ""
        caf = name.startswith(prefix)
        return not caf, str(caf).lower() if show_detail else ""

    return Recommendation(
        recommendation_id=recommendation_id,
        resource_type=resource_type,
        category=RecommendationCategory.GOVERNANCE,
        impact=RecommendationImpact.LOW,
        description=description,
        predicate=predicate,
        learn_more_url=CAF_NAMING_URL,
    )


def tags_rule(
    recommendation_id: str,
    resource_type: str,
    description: str,
) -> Recommendation:
    """Rule that is broken when the resource has no tags."""

    def predicate(resource: Any, context: ScanContext) -> RuleOutcome:
        tags = getattr(resource, "tags", None)
        return not tags, ""

    return Recommendation(
        recommendation_id=recommendation_id,
        resource_type=resource_type,
        category=RecommendationCategory.GOVERNANCE,
        impact=RecommendationImpact.LOW,
        description=description,
        predicate=predicate,
        learn_more_url=TAGS_URL,
    )


def private_endpoint_rule(
    recommendation_id: str,
    resource_type: str,
    description: str,
    learn_more_url: str,
    show_detail: bool = False,
) -> Recommendation:
    """Rule that is broken when no private endpoint connection exists."""

    def predicate(resource: Any, context: ScanContext) -> RuleOutcome:
        connections = getattr(resource, "private_endpoint_connections", None) or []
        has_private_endpoint = len(connections) > 0
        detail = str(has_private_endpoint).lower() if show_detail else ""
        return not has_private_endpoint, detail

    return Recommendation(
        recommendation_id=recommendation_id,
        resource_type=resource_type,
        category=RecommendationCategory.SECURITY,
        impact=RecommendationImpact.HIGH,
        description=description,
        predicate=predicate,
        learn_more_url=learn_more_url,
    )


def sku_name(resource: Any) -> str:
    """Get the SKU name of a resource, or an empty string."""
    return text(getattr(getattr(resource, "sku", None), "name", None))


def informational_rule(
    recommendation_id: str,
    resource_type: str,
    category: RecommendationCategory,
    impact: RecommendationImpact,
    description: str,
    learn_more_url: str,
    detail: Callable[[Any], str],
) -> Recommendation:
    """Rule that is never broken and only reports a detail (SKU, SLA, ...)."""

    def predicate(resource: Any, context: ScanContext) -> RuleOutcome:
        return False, detail(resource)

    return Recommendation(
        recommendation_id=recommendation_id,
        resource_type=resource_type,
        category=category,
        impact=impact,
        description=description,
        predicate=predicate,
        learn_more_url=learn_more_url,
    )
