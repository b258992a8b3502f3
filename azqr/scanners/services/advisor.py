"""Azure Advisor recommendations scanner.

Advisor already evaluates the subscription, so each active recommendation
becomes one broken row instead of being run through a rule table.
"""

import logging
from typing import Any

from azure.mgmt.advisor import AdvisorManagementClient

from azqr.scanners.base import BaseScanner, ScannerConfig, parse_resource_group
from azqr.scanners.context import ScanContext
from azqr.scanners.engine import text
from azqr.scanners.models import (
    Recommendation,
    RecommendationCategory,
    RecommendationImpact,
    ResultRow,
    Scope,
    ScopeKind,
)

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "Microsoft.Advisor/recommendations"


def _category(recommendation: Any) -> RecommendationCategory:
    try:
        return RecommendationCategory(text(recommendation.category))
    except ValueError:
        return RecommendationCategory.OPERATIONAL_EXCELLENCE


def _impact(recommendation: Any) -> RecommendationImpact:
    try:
        return RecommendationImpact(text(recommendation.impact))
    except ValueError:
        return RecommendationImpact.MEDIUM


def _impacted_resource_id(recommendation: Any) -> str:
    metadata = getattr(recommendation, "resource_metadata", None)
    return getattr(metadata, "resource_id", None) or recommendation.id or ""


class AdvisorScanner(BaseScanner):
    """Lists Azure Advisor recommendations of a subscription."""

    name = "Advisor"
    resource_types = (RESOURCE_TYPE,)
    scope_kind = ScopeKind.SUBSCRIPTION

    def _create_client(self, config: ScannerConfig) -> AdvisorManagementClient:
        return AdvisorManagementClient(
            config.credential, config.subscription_id, **config.client_options
        )

    def _list(self, scope: Scope) -> Any:
        return self.client.recommendations.list()

    @classmethod
    def get_recommendations(cls) -> tuple[Recommendation, ...]:
        return ()

    def scan(self, scope: Scope, context: ScanContext) -> list[ResultRow]:
        """Map every Advisor recommendation of the subscription to a row."""
        config = self._require_config()
        logger.info(f"Scanning Advisor recommendations in subscription {config.subscription_id}")

        rows = []
        for recommendation in self.list_resources(scope):
            short_description = getattr(recommendation, "short_description", None)
            rows.append(
                ResultRow(
                    subscription_id=config.subscription_id,
                    subscription_name=config.subscription_name,
                    resource_group=parse_resource_group(_impacted_resource_id(recommendation)),
                    resource_name=recommendation.impacted_value or "",
                    resource_type=recommendation.impacted_field or RESOURCE_TYPE,
                    rule_id=recommendation.recommendation_type_id or recommendation.name or "",
                    category=_category(recommendation),
                    impact=_impact(recommendation),
                    description=getattr(short_description, "problem", None) or "",
                    learn_more_url=recommendation.learn_more_link or "",
                    broken=True,
                    detail=recommendation.potential_benefits or text(recommendation.risk),
                )
            )
        return rows
