"""Container Instances scanner."""

from typing import Any

from azure.mgmt.containerinstance import ContainerInstanceManagementClient

from azqr.scanners.base import BaseScanner, ScannerConfig
from azqr.scanners.context import ScanContext
from azqr.scanners.engine import text
from azqr.scanners.models import (
    Recommendation,
    RecommendationCategory,
    RecommendationImpact,
    RuleOutcome,
    Scope,
)
from azqr.scanners.rules import caf_naming_rule, informational_rule, tags_rule

RESOURCE_TYPE = "Microsoft.ContainerInstance/containerGroups"


def _availability_zones(group: Any, context: ScanContext) -> RuleOutcome:
    zones = getattr(group, "zones", None) or []
    return len(zones) == 0, ", ".join(zones)


def _private_ip(group: Any, context: ScanContext) -> RuleOutcome:
    ip_address = getattr(group, "ip_address", None)
    ip_type = text(getattr(ip_address, "type", None))
    private = ip_type.lower() == "private" or bool(getattr(group, "subnet_ids", None))
    return not private, ip_type


def _sku(group: Any, context: ScanContext) -> RuleOutcome:
    sku = text(getattr(group, "sku", None)) or "Standard"
    return sku.lower() != "standard", sku


class ContainerInstanceScanner(BaseScanner):
    """Scanner for Container Instances."""

    name = "ContainerInstances"
    resource_types = (RESOURCE_TYPE,)

    def _create_client(self, config: ScannerConfig) -> ContainerInstanceManagementClient:
        return ContainerInstanceManagementClient(
            config.credential, config.subscription_id, **config.client_options
        )

    def _list(self, scope: Scope) -> Any:
        return self.client.container_groups.list_by_resource_group(scope.resource_group)

    @classmethod
    def get_recommendations(cls) -> tuple[Recommendation, ...]:
        return (
            Recommendation(
                recommendation_id="ci-001",
                resource_type=RESOURCE_TYPE,
                category=RecommendationCategory.HIGH_AVAILABILITY,
                impact=RecommendationImpact.HIGH,
                description="Container Instances should use availability zones",
                predicate=_availability_zones,
                learn_more_url="https://learn.microsoft.com/en-us/azure/container-instances/availability-zones",
            ),
            informational_rule(
                "ci-002",
                RESOURCE_TYPE,
                RecommendationCategory.HIGH_AVAILABILITY,
                RecommendationImpact.HIGH,
                "Container Instances should have a SLA",
                "https://www.azure.cn/en-us/support/sla/container-instances/",
                lambda group: "99.9%",
            ),
            Recommendation(
                recommendation_id="ci-003",
                resource_type=RESOURCE_TYPE,
                category=RecommendationCategory.SECURITY,
                impact=RecommendationImpact.HIGH,
                description="Container Instances should use private IP addresses",
                predicate=_private_ip,
                learn_more_url="https://learn.microsoft.com/en-us/azure/container-instances/container-instances-vnet",
            ),
            Recommendation(
                recommendation_id="ci-004",
                resource_type=RESOURCE_TYPE,
                category=RecommendationCategory.HIGH_AVAILABILITY,
                impact=RecommendationImpact.HIGH,
                description="Container Instances SKU",
                predicate=_sku,
                learn_more_url="https://azure.microsoft.com/en-us/pricing/details/container-instances/",
            ),
            caf_naming_rule(
                "ci-005",
                RESOURCE_TYPE,
                "Container Instances Name should comply with naming conventions",
                "ci",
            ),
            tags_rule("ci-006", RESOURCE_TYPE, "Container Instances should have tags"),
        )
