"""Virtual Machine Scale Set scanner."""

from typing import Any

from azure.mgmt.compute import ComputeManagementClient

from azqr.scanners.base import BaseScanner, ScannerConfig
from azqr.scanners.context import ScanContext
from azqr.scanners.models import (
    Recommendation,
    RecommendationCategory,
    RecommendationImpact,
    RuleOutcome,
    Scope,
)
from azqr.scanners.rules import caf_naming_rule, diagnostics_rule, tags_rule

RESOURCE_TYPE = "Microsoft.Compute/virtualMachineScaleSets"


def _zoned(vmss: Any) -> bool:
    return len(getattr(vmss, "zones", None) or []) > 1


def _availability_zones(vmss: Any, context: ScanContext) -> RuleOutcome:
    return not _zoned(vmss), ", ".join(vmss.zones or [])


def _sla(vmss: Any, context: ScanContext) -> RuleOutcome:
    return False, "99.99%" if _zoned(vmss) else "99.95%"


def _automatic_os_upgrade(vmss: Any, context: ScanContext) -> RuleOutcome:
    policy = getattr(vmss, "upgrade_policy", None)
    os_policy = getattr(policy, "automatic_os_upgrade_policy", None)
    enabled = bool(getattr(os_policy, "enable_automatic_os_upgrade", False))
    return not enabled, ""


class VirtualMachineScaleSetScanner(BaseScanner):
    """Scanner for Virtual Machine Scale Sets."""

    name = "VMSS"
    resource_types = (RESOURCE_TYPE,)

    def _create_client(self, config: ScannerConfig) -> ComputeManagementClient:
        return ComputeManagementClient(
            config.credential, config.subscription_id, **config.client_options
        )

    def _list(self, scope: Scope) -> Any:
        return self.client.virtual_machine_scale_sets.list(scope.resource_group)

    @classmethod
    def get_recommendations(cls) -> tuple[Recommendation, ...]:
        return (
            diagnostics_rule(
                "vmss-001",
                RESOURCE_TYPE,
                "Virtual Machine Scale Set should have diagnostic settings enabled",
                "https://learn.microsoft.com/en-us/azure/virtual-machine-scale-sets/monitor-virtual-machine-scale-sets",
                impact=RecommendationImpact.LOW,
            ),
            Recommendation(
                recommendation_id="vmss-002",
                resource_type=RESOURCE_TYPE,
                category=RecommendationCategory.HIGH_AVAILABILITY,
                impact=RecommendationImpact.HIGH,
                description="Virtual Machine Scale Set should have availability zones enabled",
                predicate=_availability_zones,
                learn_more_url="https://learn.microsoft.com/en-us/azure/virtual-machine-scale-sets/virtual-machine-scale-sets-use-availability-zones",
            ),
            Recommendation(
                recommendation_id="vmss-003",
                resource_type=RESOURCE_TYPE,
                category=RecommendationCategory.HIGH_AVAILABILITY,
                impact=RecommendationImpact.HIGH,
                description="Virtual Machine Scale Set should have a SLA",
                predicate=_sla,
                learn_more_url="https://www.azure.cn/en-us/support/sla/virtual-machines/",
            ),
            caf_naming_rule(
                "vmss-004",
                RESOURCE_TYPE,
                "Virtual Machine Scale Set Name should comply with naming conventions",
                "vmss",
            ),
            Recommendation(
                recommendation_id="vmss-005",
                resource_type=RESOURCE_TYPE,
                category=RecommendationCategory.OPERATIONAL_EXCELLENCE,
                impact=RecommendationImpact.MEDIUM,
                description="Virtual Machine Scale Set should have automatic OS upgrades enabled",
                predicate=_automatic_os_upgrade,
                learn_more_url="https://learn.microsoft.com/en-us/azure/virtual-machine-scale-sets/virtual-machine-scale-sets-automatic-upgrade",
            ),
            tags_rule("vmss-006", RESOURCE_TYPE, "Virtual Machine Scale Set should have tags"),
        )
