"""Event Hub namespace scanner."""

from typing import Any

from azure.mgmt.eventhub import EventHubManagementClient

from azqr.scanners.base import BaseScanner, ScannerConfig
from azqr.scanners.context import ScanContext
from azqr.scanners.models import (
    Indeterminate,
    Recommendation,
    RecommendationCategory,
    RecommendationImpact,
    RuleOutcome,
    Scope,
)
from azqr.scanners.rules import (
    caf_naming_rule,
    diagnostics_rule,
    informational_rule,
    private_endpoint_rule,
    sku_name,
    tags_rule,
)

RESOURCE_TYPE = "Microsoft.EventHub/namespaces"


def namespace_sla(namespace: Any) -> str:
    """Basic namespaces carry a 99.95% SLA, every other tier 99.99%."""
    return "99.95%" if "Basic" in sku_name(namespace) else "99.99%"


def _zone_redundant(namespace: Any, context: ScanContext) -> RuleOutcome:
    zones = namespace.zone_redundant
    if zones is None:
        return Indeterminate("zoneRedundant not returned")
    return not zones, str(bool(zones)).lower()


def _local_auth(namespace: Any, context: ScanContext) -> RuleOutcome:
    return not namespace.disable_local_auth, ""


class EventHubScanner(BaseScanner):
    """Scanner for Event Hub namespaces."""

    name = "EventHub"
    resource_types = (RESOURCE_TYPE,)

    def _create_client(self, config: ScannerConfig) -> EventHubManagementClient:
        return EventHubManagementClient(
            config.credential, config.subscription_id, **config.client_options
        )

    def _list(self, scope: Scope) -> Any:
        return self.client.namespaces.list_by_resource_group(scope.resource_group)

    @classmethod
    def get_recommendations(cls) -> tuple[Recommendation, ...]:
        return (
            diagnostics_rule(
                "evh-001",
                RESOURCE_TYPE,
                "Event Hub Namespace should have diagnostic settings enabled",
                "https://learn.microsoft.com/en-us/azure/event-hubs/monitor-event-hubs#collection-and-routing",
                show_detail=True,
            ),
            Recommendation(
                recommendation_id="evh-002",
                resource_type=RESOURCE_TYPE,
                category=RecommendationCategory.HIGH_AVAILABILITY,
                impact=RecommendationImpact.HIGH,
                description="Event Hub Namespace should have availability zones enabled",
                predicate=_zone_redundant,
                learn_more_url=(
                    "https://learn.microsoft.com/en-us/azure/event-hubs/event-hubs-premium-overview"
                    "#high-availability-with-availability-zones"
                ),
            ),
            informational_rule(
                "evh-003",
                RESOURCE_TYPE,
                RecommendationCategory.HIGH_AVAILABILITY,
                RecommendationImpact.HIGH,
                "Event Hub Namespace should have a SLA",
                "https://www.azure.cn/en-us/support/sla/event-hubs/",
                namespace_sla,
            ),
            private_endpoint_rule(
                "evh-004",
                RESOURCE_TYPE,
                "Event Hub Namespace should have private endpoints enabled",
                "https://learn.microsoft.com/en-us/azure/event-hubs/network-security",
                show_detail=True,
            ),
            informational_rule(
                "evh-005",
                RESOURCE_TYPE,
                RecommendationCategory.HIGH_AVAILABILITY,
                RecommendationImpact.HIGH,
                "Event Hub Namespace SKU",
                "https://learn.microsoft.com/en-us/azure/event-hubs/compare-tiers",
                sku_name,
            ),
            caf_naming_rule(
                "evh-006",
                RESOURCE_TYPE,
                "Event Hub Namespace Name should comply with naming conventions",
                "evh",
                show_detail=True,
            ),
            Recommendation(
                recommendation_id="evh-007",
                resource_type=RESOURCE_TYPE,
                category=RecommendationCategory.SECURITY,
                impact=RecommendationImpact.MEDIUM,
                description="Event Hub Namespace should have local authentication disabled",
                predicate=_local_auth,
                learn_more_url="https://learn.microsoft.com/en-us/azure/event-hubs/authenticate-shared-access-signature",
            ),
            tags_rule("evh-008", RESOURCE_TYPE, "Event Hub Namespace should have tags"),
        )
