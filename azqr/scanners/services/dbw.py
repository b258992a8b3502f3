"""Azure Databricks workspace scanner."""

from typing import Any

from azure.mgmt.databricks import AzureDatabricksManagementClient

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

RESOURCE_TYPE = "Microsoft.Databricks/workspaces"


def _no_public_ip(workspace: Any, context: ScanContext) -> RuleOutcome:
    parameters = getattr(workspace, "parameters", None)
    setting = getattr(parameters, "enable_no_public_ip", None)
    enabled = bool(setting is not None and setting.value)
    return not enabled, ""


class DatabricksScanner(BaseScanner):
    """Scanner for Azure Databricks workspaces."""

    name = "Databricks"
    resource_types = (RESOURCE_TYPE,)

    def _create_client(self, config: ScannerConfig) -> AzureDatabricksManagementClient:
        return AzureDatabricksManagementClient(
            config.credential, config.subscription_id, **config.client_options
        )

    def _list(self, scope: Scope) -> Any:
        return self.client.workspaces.list_by_resource_group(scope.resource_group)

    @classmethod
    def get_recommendations(cls) -> tuple[Recommendation, ...]:
        return (
            diagnostics_rule(
                "dbw-001",
                RESOURCE_TYPE,
                "Azure Databricks should have diagnostic settings enabled",
                "https://learn.microsoft.com/en-us/azure/databricks/administration-guide/account-settings/audit-log-delivery",
                impact=RecommendationImpact.LOW,
            ),
            informational_rule(
                "dbw-003",
                RESOURCE_TYPE,
                RecommendationCategory.HIGH_AVAILABILITY,
                RecommendationImpact.HIGH,
                "Azure Databricks should have a SLA",
                "https://www.microsoft.com/licensing/docs/view/Service-Level-Agreements-SLA-for-Online-Services",
                lambda workspace: "99.95%",
            ),
            private_endpoint_rule(
                "dbw-004",
                RESOURCE_TYPE,
                "Azure Databricks should have private endpoints enabled",
                "https://learn.microsoft.com/en-us/azure/databricks/administration-guide/cloud-configurations/azure/private-link",
            ),
            informational_rule(
                "dbw-005",
                RESOURCE_TYPE,
                RecommendationCategory.HIGH_AVAILABILITY,
                RecommendationImpact.HIGH,
                "Azure Databricks SKU",
                "https://azure.microsoft.com/en-us/pricing/details/databricks/",
                sku_name,
            ),
            caf_naming_rule(
                "dbw-006",
                RESOURCE_TYPE,
                "Azure Databricks Name should comply with naming conventions",
                "dbw",
            ),
            Recommendation(
                recommendation_id="dbw-007",
                resource_type=RESOURCE_TYPE,
                category=RecommendationCategory.SECURITY,
                impact=RecommendationImpact.MEDIUM,
                description="Azure Databricks should have the Public IP disabled",
                predicate=_no_public_ip,
                learn_more_url="https://learn.microsoft.com/en-us/azure/databricks/security/network/secure-cluster-connectivity",
            ),
            tags_rule("dbw-008", RESOURCE_TYPE, "Azure Databricks should have tags"),
        )
