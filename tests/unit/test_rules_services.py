"""Tests for the NSG, VMSS, Container Instances, SignalR and Databricks tables."""

from enum import Enum
from types import SimpleNamespace

import pytest

from azqr.scanners.engine import RecommendationEngine
from azqr.scanners.registry import DEFAULT_SCANNERS
from azqr.scanners.services import ci, dbw, nsg, sigr, vmss
from tests.fixtures import make_context, make_resource, make_target, row_for


class SecurityRuleAccess(str, Enum):
    ALLOW = "Allow"
    DENY = "Deny"


def evaluate(scanner_cls, resource, diagnostics=(), detailed_scan=False):
    return RecommendationEngine().evaluate(
        scanner_cls.get_recommendations(),
        resource,
        make_context(diagnostics, detailed_scan=detailed_scan),
        make_target(resource),
    )


def security_rule(name, port="22", source="*", access="Allow", direction="Inbound",
                  ports=None, sources=None):
    return SimpleNamespace(
        name=name,
        access=access,
        direction=direction,
        destination_port_range=port,
        destination_port_ranges=ports or [],
        source_address_prefix=source,
        source_address_prefixes=sources or [],
    )


class TestDiagnosticsRules:
    """The diagnostics rule of every table uses the shared index."""

    @pytest.mark.parametrize("scanner_cls", DEFAULT_SCANNERS)
    def test_diagnostics_case_insensitive(self, scanner_cls):
        rules = scanner_cls.get_recommendations()
        diagnostics_rules = [
            r for r in rules if r.category.value == "Monitoring" and r.recommendation_id.endswith("-001")
        ]
        if not diagnostics_rules:
            pytest.skip(f"{scanner_cls.get_name()} has no diagnostics rule")
        rule = diagnostics_rules[0]
        resource = make_resource(rule.resource_type, "res-1")

        present = rule.predicate(resource, make_context([resource.id.upper()]))
        absent = rule.predicate(resource, make_context())

        assert present[0] is False
        assert absent[0] is True


class TestNSGRules:
    """Tests for the NSG table."""

    def make_nsg(self, *rules, **fields):
        return make_resource(nsg.RESOURCE_TYPE, "nsg-web", security_rules=list(rules), **fields)

    def test_ssh_from_internet(self):
        group = self.make_nsg(security_rule("allow-ssh"), security_rule("allow-https", port="443"))
        row = row_for(evaluate(nsg.NSGScanner, group, detailed_scan=True), "nsg-002")

        assert row.broken
        assert row.detail == "allow-ssh"

    def test_rdp_in_port_range_with_enum_access(self):
        group = self.make_nsg(
            security_rule(
                "allow-range",
                port=None,
                ports=["3000-4000"],
                source=None,
                sources=["Internet"],
                access=SecurityRuleAccess.ALLOW,
            )
        )
        row = row_for(evaluate(nsg.NSGScanner, group, detailed_scan=True), "nsg-002")
        assert row.broken

    def test_restricted_sources_and_denies(self):
        group = self.make_nsg(
            security_rule("ssh-from-office", source="10.0.0.0/8"),
            security_rule("deny-rdp", port="3389", access=SecurityRuleAccess.DENY),
            security_rule("outbound-ssh", direction="Outbound"),
        )
        row = row_for(evaluate(nsg.NSGScanner, group, detailed_scan=True), "nsg-002")
        assert not row.broken

    def test_exposure_rule_runs_in_quick_scans(self):
        group = self.make_nsg(security_rule("allow-ssh"))
        rows = evaluate(nsg.NSGScanner, group)

        assert len(rows) == len(nsg.NSGScanner.get_recommendations())
        assert row_for(rows, "nsg-002").broken

    def test_nsg_without_rules(self):
        group = self.make_nsg(tags=None)
        group.security_rules = None
        rows = evaluate(nsg.NSGScanner, group, detailed_scan=True)

        assert not row_for(rows, "nsg-002").broken
        assert not row_for(rows, "nsg-003").broken
        assert row_for(rows, "nsg-004").broken


class TestVMSSRules:
    """Tests for the VMSS table."""

    def test_zonal_scale_set(self):
        scale_set = make_resource(vmss.RESOURCE_TYPE, "vmss-web", zones=["1", "2", "3"])
        rows = evaluate(vmss.VirtualMachineScaleSetScanner, scale_set)

        assert not row_for(rows, "vmss-002").broken
        assert row_for(rows, "vmss-003").detail == "99.99%"

    def test_regional_scale_set(self):
        scale_set = make_resource(vmss.RESOURCE_TYPE, "web", zones=None)
        rows = evaluate(vmss.VirtualMachineScaleSetScanner, scale_set)

        assert row_for(rows, "vmss-002").broken
        assert row_for(rows, "vmss-003").detail == "99.95%"
        assert row_for(rows, "vmss-004").broken

    def test_automatic_os_upgrade(self):
        policy = SimpleNamespace(
            automatic_os_upgrade_policy=SimpleNamespace(enable_automatic_os_upgrade=True)
        )
        scale_set = make_resource(vmss.RESOURCE_TYPE, "vmss-web", zones=[], upgrade_policy=policy)
        rows = evaluate(vmss.VirtualMachineScaleSetScanner, scale_set, detailed_scan=True)
        assert not row_for(rows, "vmss-005").broken

        scale_set.upgrade_policy = None
        rows = evaluate(vmss.VirtualMachineScaleSetScanner, scale_set, detailed_scan=True)
        assert row_for(rows, "vmss-005").broken


class TestContainerInstanceRules:
    """Tests for the Container Instances table."""

    def test_public_container_group(self):
        group = make_resource(
            ci.RESOURCE_TYPE,
            "ci-api",
            zones=None,
            ip_address=SimpleNamespace(type="Public"),
            subnet_ids=None,
            sku="Standard",
        )
        rows = evaluate(ci.ContainerInstanceScanner, group)

        assert row_for(rows, "ci-001").broken
        assert row_for(rows, "ci-002").detail == "99.9%"
        assert row_for(rows, "ci-003").broken
        assert not row_for(rows, "ci-004").broken

    def test_private_container_group(self):
        group = make_resource(
            ci.RESOURCE_TYPE,
            "ci-api",
            zones=["1"],
            ip_address=SimpleNamespace(type="Private"),
            subnet_ids=[SimpleNamespace(id="subnet-1")],
            sku="Dedicated",
        )
        rows = evaluate(ci.ContainerInstanceScanner, group)

        assert not row_for(rows, "ci-001").broken
        assert not row_for(rows, "ci-003").broken
        assert row_for(rows, "ci-004").broken
        assert row_for(rows, "ci-004").detail == "Dedicated"


class TestSignalRRules:
    """Tests for the SignalR table."""

    def make_signalr(self, sku):
        return make_resource(
            sigr.RESOURCE_TYPE,
            "sigr-chat",
            sku=SimpleNamespace(name=sku, tier=sku),
            private_endpoint_connections=[],
        )

    def test_free_tier(self):
        rows = evaluate(sigr.SignalRScanner, self.make_signalr("Free_F1"))

        sla = row_for(rows, "sigr-003")
        assert sla.detail == "None"
        assert sla.broken
        assert row_for(rows, "sigr-002").broken
        assert row_for(rows, "sigr-004").broken

    def test_premium_tier(self):
        rows = evaluate(sigr.SignalRScanner, self.make_signalr("Premium_P1"))

        assert not row_for(rows, "sigr-002").broken
        assert row_for(rows, "sigr-003").detail == "99.9%"
        assert row_for(rows, "sigr-005").detail == "Premium_P1"


class TestDatabricksRules:
    """Tests for the Databricks table."""

    def make_workspace(self, no_public_ip):
        parameters = SimpleNamespace(
            enable_no_public_ip=SimpleNamespace(value=no_public_ip)
        )
        return make_resource(
            dbw.RESOURCE_TYPE,
            "dbw-analytics",
            sku=SimpleNamespace(name="premium"),
            parameters=parameters,
            private_endpoint_connections=None,
        )

    def test_rule_ids(self):
        ids = [r.recommendation_id for r in dbw.DatabricksScanner.get_recommendations()]
        assert ids == ["dbw-001", "dbw-003", "dbw-004", "dbw-005", "dbw-006", "dbw-007", "dbw-008"]

    def test_public_ip_enabled(self):
        rows = evaluate(dbw.DatabricksScanner, self.make_workspace(False))
        assert row_for(rows, "dbw-007").broken

    def test_no_public_ip(self):
        rows = evaluate(dbw.DatabricksScanner, self.make_workspace(True))

        assert not row_for(rows, "dbw-007").broken
        assert row_for(rows, "dbw-003").detail == "99.95%"
        assert row_for(rows, "dbw-004").broken
        assert row_for(rows, "dbw-005").detail == "premium"
