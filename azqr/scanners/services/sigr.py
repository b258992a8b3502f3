"""SignalR scanner."""

from typing import Any

from azure.mgmt.signalr import SignalRManagementClient

from azqr.scanners.base import BaseScanner, ScannerConfig
from azqr.scanners.context import ScanContext
from azqr.scanners.models import (
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

RESOURCE_TYPE = "Microsoft.SignalRService/SignalR"


def _availability_zones(signalr: Any, context: ScanContext) -> RuleOutcome:
    # Zone redundancy is built into the Premium tier only
    sku = sku_name(signalr)
    return "Premium" not in sku, ""


def signalr_sla(signalr: Any) -> str:
    return "None" if "Free" in sku_name(signalr) else "99.9%"


def _sla(signalr: Any, context: ScanContext) -> RuleOutcome:
    sla = signalr_sla(signalr)
    return sla == "None", sla


class SignalRScanner(BaseScanner):
    """Scanner for SignalR services."""

    name = "SignalR"
    resource_types = (RESOURCE_TYPE,)

    def _create_client(self, config: ScannerConfig) -> SignalRManagementClient:
        return SignalRManagementClient(
            config.credential, config.subscription_id, **config.client_options
        )

    def _list(self, scope: Scope) -> Any:
        return self.client.signal_r.list_by_resource_group(scope.resource_group)

    @classmethod
    def get_recommendations(cls) -> tuple[Recommendation, ...]:
        return (
            diagnostics_rule(
                "sigr-001",
                RESOURCE_TYPE,
                "SignalR should have diagnostic settings enabled",
                "https://learn.microsoft.com/en-us/azure/azure-signalr/signalr-howto-troubleshoot-resource-logs",
            ),
            Recommendation(
                recommendation_id="sigr-002",
                resource_type=RESOURCE_TYPE,
                category=RecommendationCategory.HIGH_AVAILABILITY,
                impact=RecommendationImpact.HIGH,
                description="SignalR should have availability zones enabled",
                predicate=_availability_zones,
                learn_more_url="https://learn.microsoft.com/en-us/azure/azure-signalr/availability-zones",
            ),
            Recommendation(
                recommendation_id="sigr-003",
                resource_type=RESOURCE_TYPE,
                category=RecommendationCategory.HIGH_AVAILABILITY,
                impact=RecommendationImpact.HIGH,
                description="SignalR should have a SLA",
                predicate=_sla,
                learn_more_url="https://www.azure.cn/en-us/support/sla/signalr-service/",
            ),
            private_endpoint_rule(
                "sigr-004",
                RESOURCE_TYPE,
                "SignalR should have private endpoints enabled",
                "https://learn.microsoft.com/en-us/azure/azure-signalr/howto-private-endpoints",
            ),
            informational_rule(
                "sigr-005",
                RESOURCE_TYPE,
                RecommendationCategory.HIGH_AVAILABILITY,
                RecommendationImpact.HIGH,
                "SignalR SKU",
                "https://azure.microsoft.com/en-us/pricing/details/signalr-service/",
                sku_name,
            ),
            caf_naming_rule(
                "sigr-006",
                RESOURCE_TYPE,
                "SignalR Name should comply with naming conventions",
                "sigr",
            ),
            tags_rule("sigr-007", RESOURCE_TYPE, "SignalR should have tags"),
        )
