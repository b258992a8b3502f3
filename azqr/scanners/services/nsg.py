"""Network Security Group scanner.

NSGs are listed once per subscription rather than per resource group.
"""

from typing import Any

from azure.mgmt.network import NetworkManagementClient

from azqr.scanners.base import BaseScanner, ScannerConfig
from azqr.scanners.context import ScanContext
from azqr.scanners.engine import text
from azqr.scanners.models import (
    Recommendation,
    RecommendationCategory,
    RecommendationImpact,
    RuleOutcome,
    Scope,
    ScopeKind,
)
from azqr.scanners.rules import caf_naming_rule, diagnostics_rule, tags_rule

RESOURCE_TYPE = "Microsoft.Network/networkSecurityGroups"

MANAGEMENT_PORTS = (22, 3389)
INTERNET_SOURCES = {"*", "0.0.0.0/0", "internet", "any"}


def _port_range_includes(port_range: str, port: int) -> bool:
    """Check if an NSG port expression (``*``, ``22``, ``20-30``) covers a port."""
    port_range = port_range.strip()
    if port_range == "*":
        return True
    if "-" in port_range:
        low, _, high = port_range.partition("-")
        return int(low) <= port <= int(high)
    return port_range == str(port)


def _exposes_management_port(rule: Any) -> bool:
    if text(rule.access).lower() != "allow":
        return False
    if text(rule.direction).lower() != "inbound":
        return False

    ports = [rule.destination_port_range] if rule.destination_port_range else []
    ports.extend(rule.destination_port_ranges or [])
    sources = [rule.source_address_prefix] if rule.source_address_prefix else []
    sources.extend(rule.source_address_prefixes or [])

    if not any(source.lower() in INTERNET_SOURCES for source in sources):
        return False
    return any(
        _port_range_includes(port_range, port)
        for port_range in ports
        for port in MANAGEMENT_PORTS
    )


def _management_ports_exposed(nsg: Any, context: ScanContext) -> RuleOutcome:
    exposed = [
        rule.name for rule in (nsg.security_rules or []) if _exposes_management_port(rule)
    ]
    return bool(exposed), ", ".join(exposed)


class NSGScanner(BaseScanner):
    """Scanner for Network Security Groups."""

    name = "NSG"
    resource_types = (RESOURCE_TYPE,)
    scope_kind = ScopeKind.SUBSCRIPTION

    def _create_client(self, config: ScannerConfig) -> NetworkManagementClient:
        return NetworkManagementClient(
            config.credential, config.subscription_id, **config.client_options
        )

    def _list(self, scope: Scope) -> Any:
        return self.client.network_security_groups.list_all()

    @classmethod
    def get_recommendations(cls) -> tuple[Recommendation, ...]:
        return (
            diagnostics_rule(
                "nsg-001",
                RESOURCE_TYPE,
                "NSG should have diagnostic settings enabled",
                "https://learn.microsoft.com/en-us/azure/virtual-network/virtual-network-nsg-manage-log",
            ),
            Recommendation(
                recommendation_id="nsg-002",
                resource_type=RESOURCE_TYPE,
                category=RecommendationCategory.SECURITY,
                impact=RecommendationImpact.HIGH,
                description="NSG should not allow SSH or RDP from the Internet",
                predicate=_management_ports_exposed,
                learn_more_url="https://learn.microsoft.com/en-us/azure/security/fundamentals/network-best-practices",
            ),
            caf_naming_rule(
                "nsg-003",
                RESOURCE_TYPE,
                "NSG Name should comply with naming conventions",
                "nsg",
            ),
            tags_rule("nsg-004", RESOURCE_TYPE, "NSG should have tags"),
        )
