"""Azure Kubernetes Service scanner."""

from typing import Any

from azure.mgmt.containerservice import ContainerServiceClient

from azqr.scanners.base import BaseScanner, ScannerConfig
from azqr.scanners.context import ScanContext
from azqr.scanners.engine import text
from azqr.scanners.models import (
    Indeterminate,
    Recommendation,
    RecommendationCategory,
    RecommendationImpact,
    RuleOutcome,
    Scope,
)
from azqr.scanners.rules import caf_naming_rule, diagnostics_rule, tags_rule

RESOURCE_TYPE = "Microsoft.ContainerService/managedClusters"


def _tier(cluster: Any) -> str:
    return text(getattr(getattr(cluster, "sku", None), "tier", None)) or "Free"


def _zones_enabled(cluster: Any) -> bool:
    """Every agent pool must span at least two availability zones."""
    profiles = getattr(cluster, "agent_pool_profiles", None)
    if not profiles:
        return False
    return all(len(profile.availability_zones or []) > 1 for profile in profiles)


def _addon_enabled(cluster: Any, addon: str) -> bool | None:
    """Look up an addon profile case-insensitively; None when absent."""
    profiles = getattr(cluster, "addon_profiles", None) or {}
    for name, profile in profiles.items():
        if name.lower() == addon.lower():
            return bool(getattr(profile, "enabled", False))
    return None


def _availability_zones(cluster: Any, context: ScanContext) -> RuleOutcome:
    return not _zones_enabled(cluster), ""


def _sla(cluster: Any, context: ScanContext) -> RuleOutcome:
    sla = "None"
    if "Free" not in _tier(cluster):
        sla = "99.95%" if _zones_enabled(cluster) else "99.9%"
    return sla == "None", sla


def _private_cluster(cluster: Any, context: ScanContext) -> RuleOutcome:
    profile = getattr(cluster, "api_server_access_profile", None)
    private = bool(profile is not None and profile.enable_private_cluster)
    return not private, ""


def _sku(cluster: Any, context: ScanContext) -> RuleOutcome:
    tier = _tier(cluster)
    return tier == "Free", tier


def _aad_managed(cluster: Any, context: ScanContext) -> RuleOutcome:
    profile = getattr(cluster, "aad_profile", None)
    managed = bool(profile is not None and profile.managed)
    return not managed, ""


def _rbac(cluster: Any, context: ScanContext) -> RuleOutcome:
    return not cluster.enable_rbac, ""


def _local_accounts(cluster: Any, context: ScanContext) -> RuleOutcome:
    return not cluster.disable_local_accounts, ""


def _http_application_routing(cluster: Any, context: ScanContext) -> RuleOutcome:
    return bool(_addon_enabled(cluster, "httpApplicationRouting")), ""


def _container_insights(cluster: Any, context: ScanContext) -> RuleOutcome:
    return not _addon_enabled(cluster, "omsagent"), ""


def _outbound_type(cluster: Any, context: ScanContext) -> RuleOutcome:
    profile = getattr(cluster, "network_profile", None)
    if profile is None:
        return Indeterminate("Network profile not returned")
    outbound = text(profile.outbound_type)
    return outbound.lower() != "userdefinedrouting", outbound


def _kubenet(cluster: Any, context: ScanContext) -> RuleOutcome:
    # A missing network profile is not kubenet
    profile = getattr(cluster, "network_profile", None)
    plugin = text(getattr(profile, "network_plugin", None))
    return plugin.lower() == "kubenet", plugin


def _autoscaler(cluster: Any, context: ScanContext) -> RuleOutcome:
    profiles = getattr(cluster, "agent_pool_profiles", None)
    if not profiles:
        return True, ""
    disabled = [p.name for p in profiles if not p.enable_auto_scaling]
    return bool(disabled), ", ".join(name for name in disabled if name)


class AKSScanner(BaseScanner):
    """Scanner for AKS managed clusters."""

    name = "AKS"
    resource_types = (RESOURCE_TYPE,)

    def _create_client(self, config: ScannerConfig) -> ContainerServiceClient:
        return ContainerServiceClient(
            config.credential, config.subscription_id, **config.client_options
        )

    def _list(self, scope: Scope) -> Any:
        return self.client.managed_clusters.list_by_resource_group(scope.resource_group)

    @classmethod
    def get_recommendations(cls) -> tuple[Recommendation, ...]:
        return (
            diagnostics_rule(
                "aks-001",
                RESOURCE_TYPE,
                "AKS Cluster should have diagnostic settings enabled",
                "https://learn.microsoft.com/en-us/azure/aks/monitor-aks#collect-resource-logs",
            ),
            Recommendation(
                recommendation_id="aks-002",
                resource_type=RESOURCE_TYPE,
                category=RecommendationCategory.HIGH_AVAILABILITY,
                impact=RecommendationImpact.HIGH,
                description="AKS Cluster should have availability zones enabled",
                predicate=_availability_zones,
                learn_more_url="https://learn.microsoft.com/en-us/azure/aks/availability-zones",
            ),
            Recommendation(
                recommendation_id="aks-003",
                resource_type=RESOURCE_TYPE,
                category=RecommendationCategory.HIGH_AVAILABILITY,
                impact=RecommendationImpact.HIGH,
                description="AKS Cluster should have an SLA",
                predicate=_sla,
                learn_more_url=(
                    "https://learn.microsoft.com/en-us/azure/aks/free-standard-pricing-tiers"
                    "#uptime-sla-terms-and-conditions"
                ),
            ),
            Recommendation(
                recommendation_id="aks-004",
                resource_type=RESOURCE_TYPE,
                category=RecommendationCategory.SECURITY,
                impact=RecommendationImpact.HIGH,
                description="AKS Cluster should be private",
                predicate=_private_cluster,
                learn_more_url="https://learn.microsoft.com/en-us/azure/aks/private-clusters",
            ),
            Recommendation(
                recommendation_id="aks-005",
                resource_type=RESOURCE_TYPE,
                category=RecommendationCategory.HIGH_AVAILABILITY,
                impact=RecommendationImpact.HIGH,
                description="AKS Production Cluster should use Standard SKU",
                predicate=_sku,
                learn_more_url="https://learn.microsoft.com/en-us/azure/aks/free-standard-pricing-tiers",
            ),
            caf_naming_rule(
                "aks-006",
                RESOURCE_TYPE,
                "AKS Name should comply with naming conventions",
                "aks",
            ),
            Recommendation(
                recommendation_id="aks-007",
                resource_type=RESOURCE_TYPE,
                category=RecommendationCategory.SECURITY,
                impact=RecommendationImpact.MEDIUM,
                description="AKS should integrate authentication with AAD (Managed)",
                predicate=_aad_managed,
                learn_more_url="https://learn.microsoft.com/azure/aks/managed-azure-ad",
            ),
            Recommendation(
                recommendation_id="aks-008",
                resource_type=RESOURCE_TYPE,
                category=RecommendationCategory.SECURITY,
                impact=RecommendationImpact.MEDIUM,
                description="AKS should be RBAC enabled",
                predicate=_rbac,
                learn_more_url="https://learn.microsoft.com/azure/aks/manage-azure-rbac",
            ),
            Recommendation(
                recommendation_id="aks-009",
                resource_type=RESOURCE_TYPE,
                category=RecommendationCategory.SECURITY,
                impact=RecommendationImpact.MEDIUM,
                description="AKS should have local accounts disabled",
                predicate=_local_accounts,
                learn_more_url="https://learn.microsoft.com/azure/aks/managed-aad#disable-local-accounts",
            ),
            Recommendation(
                recommendation_id="aks-010",
                resource_type=RESOURCE_TYPE,
                category=RecommendationCategory.SECURITY,
                impact=RecommendationImpact.MEDIUM,
                description="AKS should have httpApplicationRouting disabled",
                predicate=_http_application_routing,
                learn_more_url="https://learn.microsoft.com/azure/aks/http-application-routing",
            ),
            Recommendation(
                recommendation_id="aks-011",
                resource_type=RESOURCE_TYPE,
                category=RecommendationCategory.MONITORING,
                impact=RecommendationImpact.MEDIUM,
                description="AKS should have Container Insights enabled",
                predicate=_container_insights,
                learn_more_url="https://learn.microsoft.com/azure/azure-monitor/insights/container-insights-overview",
            ),
            Recommendation(
                recommendation_id="aks-012",
                resource_type=RESOURCE_TYPE,
                category=RecommendationCategory.SECURITY,
                impact=RecommendationImpact.HIGH,
                description="AKS should have outbound type set to user defined routing",
                predicate=_outbound_type,
                learn_more_url="https://learn.microsoft.com/azure/aks/limit-egress-traffic",
            ),
            Recommendation(
                recommendation_id="aks-013",
                resource_type=RESOURCE_TYPE,
                category=RecommendationCategory.PERFORMANCE,
                impact=RecommendationImpact.MEDIUM,
                description="AKS should avoid using kubenet network plugin",
                predicate=_kubenet,
                learn_more_url="https://learn.microsoft.com/azure/aks/operator-best-practices-network",
            ),
            Recommendation(
                recommendation_id="aks-014",
                resource_type=RESOURCE_TYPE,
                category=RecommendationCategory.OPERATIONAL_EXCELLENCE,
                impact=RecommendationImpact.MEDIUM,
                description="AKS should have autoscaler enabled on every node pool",
                predicate=_autoscaler,
                learn_more_url="https://learn.microsoft.com/azure/aks/concepts-scale",
            ),
            tags_rule("aks-015", RESOURCE_TYPE, "AKS should have tags"),
        )
