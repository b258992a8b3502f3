"""Tests for the scan runner."""

import threading
import time
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from azure.core.exceptions import HttpResponseError

from azqr.core.config import Settings
from azqr.core.errors import ConfigurationError, ErrorKind, ScanCancelledError
from azqr.scanners.base import BaseScanner
from azqr.scanners.models import (
    Recommendation,
    RecommendationCategory,
    RecommendationImpact,
    ScanState,
    ScopeKind,
    UnitStatus,
)
from azqr.scanners.registry import ScannerRegistry
from azqr.scanners.runner import ScanRunner
from tests.fixtures import (
    OTHER_SUBSCRIPTION_ID,
    SUBSCRIPTION_ID,
    FakeItemPaged,
    make_resource,
)

ALPHA_TYPE = "Test/alphas"
BETA_TYPE = "Test/betas"


def forbidden():
    error = HttpResponseError(message="(AuthorizationFailed) The client does not have authorization")
    error.status_code = 403
    return error


def make_scanner_cls(name, resource_type, inventory=None, errors=None,
                     scope_kind=ScopeKind.RESOURCE_GROUP, init_error=None, on_list=None):
    """Build a scanner whose listing is served from ``inventory[(sub, rg)]``."""
    inventory = inventory or {}
    errors = errors or {}
    rules = (
        Recommendation(
            recommendation_id=f"{name.lower()}-001",
            resource_type=resource_type,
            category=RecommendationCategory.GOVERNANCE,
            impact=RecommendationImpact.LOW,
            description=f"{name} should have tags",
            predicate=lambda r, c: (not r.tags, ""),
        ),
        Recommendation(
            recommendation_id=f"{name.lower()}-002",
            resource_type=resource_type,
            category=RecommendationCategory.MONITORING,
            impact=RecommendationImpact.MEDIUM,
            description=f"{name} should have diagnostic settings enabled",
            predicate=lambda r, c: (not c.has_diagnostics(r.id), ""),
        ),
    )

    class FakeScanner(BaseScanner):
        def _create_client(self, config):
            if init_error is not None:
                raise init_error
            return MagicMock()

        def _list(self, scope):
            key = (scope.subscription_id, scope.resource_group)
            if on_list is not None:
                on_list(scope)
            if key in errors:
                raise errors[key]
            return FakeItemPaged([inventory.get(key, [])])

        @classmethod
        def get_recommendations(cls):
            return rules

    FakeScanner.name = name
    FakeScanner.resource_types = (resource_type,)
    FakeScanner.scope_kind = scope_kind
    return FakeScanner


def make_runner(mock_client_manager, *scanner_classes, **settings_fields):
    registry = ScannerRegistry()
    for scanner_cls in scanner_classes:
        registry.register(scanner_cls)
    settings_fields.setdefault("subscription_ids", [SUBSCRIPTION_ID])
    settings = Settings(_env_file=None, **settings_fields)
    return ScanRunner(
        settings=settings, registry=registry, client_manager=mock_client_manager
    )


class TestScanRunner:
    """Tests for ScanRunner.run_scan."""

    @pytest.mark.asyncio
    async def test_scans_every_resource_group(self, mock_client_manager):
        mock_client_manager.list_resource_groups.return_value = ["rg-a", "rg-b"]
        alpha = make_scanner_cls(
            "Alpha",
            ALPHA_TYPE,
            inventory={
                (SUBSCRIPTION_ID, "rg-a"): [make_resource(ALPHA_TYPE, "a1", "rg-a")],
                (SUBSCRIPTION_ID, "rg-b"): [make_resource(ALPHA_TYPE, "a2", "rg-b", tags=None)],
            },
        )
        runner = make_runner(mock_client_manager, alpha)

        report = await runner.run_scan()

        assert report.state == ScanState.DONE
        assert runner.state == ScanState.DONE
        assert runner.last_report is report
        assert report.is_complete
        assert len(report.units) == 2
        assert [row.resource_name for row in report.rows] == ["a1", "a1", "a2", "a2"]
        assert [row.rule_id for row in report.rows] == ["alpha-001", "alpha-002"] * 2
        assert report.rows[0].subscription_name == "Test Subscription"
        assert report.rows[2].broken

    @pytest.mark.asyncio
    async def test_partial_failure_skips_only_the_failing_unit(self, mock_client_manager):
        alpha = make_scanner_cls(
            "Alpha", ALPHA_TYPE, errors={(SUBSCRIPTION_ID, "rg-app"): forbidden()}
        )
        beta = make_scanner_cls(
            "Beta",
            BETA_TYPE,
            inventory={(SUBSCRIPTION_ID, "rg-app"): [make_resource(BETA_TYPE, "b1")]},
        )
        runner = make_runner(mock_client_manager, alpha, beta)

        report = await runner.run_scan()

        assert report.state == ScanState.DONE
        assert {row.resource_type for row in report.rows} == {BETA_TYPE}
        assert len(report.rows) == 2

        alpha_unit = next(u for u in report.units if u.scanner == "Alpha")
        assert alpha_unit.status == UnitStatus.SKIPPED
        assert alpha_unit.error_kind == ErrorKind.PERMISSION
        assert alpha_unit.row_count == 0
        assert report.skipped_units == [alpha_unit]
        assert not report.failed_units
        assert not report.is_complete

    @pytest.mark.asyncio
    async def test_unexpected_errors_fail_the_unit(self, mock_client_manager):
        alpha = make_scanner_cls(
            "Alpha", ALPHA_TYPE, errors={(SUBSCRIPTION_ID, "rg-app"): ValueError("boom")}
        )
        beta = make_scanner_cls(
            "Beta",
            BETA_TYPE,
            inventory={(SUBSCRIPTION_ID, "rg-app"): [make_resource(BETA_TYPE, "b1")]},
        )
        runner = make_runner(mock_client_manager, alpha, beta)

        report = await runner.run_scan()

        assert report.state == ScanState.DONE
        assert [u.scanner for u in report.failed_units] == ["Alpha"]
        assert report.failed_units[0].error_kind == ErrorKind.UNKNOWN
        assert report.failed_units[0].message == "boom"
        assert len(report.rows) == 2

    @pytest.mark.asyncio
    async def test_init_failure_fails_all_scanner_units(self, mock_client_manager):
        mock_client_manager.list_resource_groups.return_value = ["rg-a", "rg-b"]
        alpha = make_scanner_cls("Alpha", ALPHA_TYPE, init_error=RuntimeError("no client"))
        runner = make_runner(mock_client_manager, alpha)

        report = await runner.run_scan()

        assert len(report.failed_units) == 2
        assert {u.resource_group for u in report.failed_units} == {"rg-a", "rg-b"}
        assert all(u.error_kind == ErrorKind.CONFIGURATION for u in report.failed_units)

    @pytest.mark.asyncio
    async def test_context_build_failure_skips_subscription(
        self, mock_client_manager, mock_graph_client
    ):
        def resources(request):
            if request.subscriptions == [OTHER_SUBSCRIPTION_ID]:
                raise forbidden()
            return SimpleNamespace(data=[], skip_token=None)

        mock_graph_client.resources.side_effect = resources
        alpha = make_scanner_cls(
            "Alpha",
            ALPHA_TYPE,
            inventory={(SUBSCRIPTION_ID, "rg-app"): [make_resource(ALPHA_TYPE, "a1")]},
        )
        runner = make_runner(
            mock_client_manager,
            alpha,
            subscription_ids=[SUBSCRIPTION_ID, OTHER_SUBSCRIPTION_ID],
        )

        report = await runner.run_scan()

        assert report.state == ScanState.DONE
        assert {row.subscription_id for row in report.rows} == {SUBSCRIPTION_ID}
        context_units = [u for u in report.units if u.error_kind == ErrorKind.CONTEXT_BUILD]
        assert len(context_units) == 1
        assert context_units[0].subscription_id == OTHER_SUBSCRIPTION_ID
        assert context_units[0].status == UnitStatus.FAILED
        mock_client_manager.list_resource_groups.assert_called_once()

    @pytest.mark.asyncio
    async def test_all_contexts_failed_aborts(self, mock_client_manager, mock_graph_client):
        mock_graph_client.resources.side_effect = forbidden()
        runner = make_runner(mock_client_manager, make_scanner_cls("Alpha", ALPHA_TYPE))

        report = await runner.run_scan()

        assert report.state == ScanState.ABORTED
        assert report.rows == []
        assert len(report.failed_units) == 1
        assert runner.last_report is report

    @pytest.mark.asyncio
    async def test_diagnostics_index_feeds_rules(
        self, mock_client_manager, mock_graph_client, mock_monitor_client
    ):
        resource = make_resource(ALPHA_TYPE, "a1")
        mock_graph_client.resources.return_value = SimpleNamespace(
            data=[{"id": resource.id.upper()}], skip_token=None
        )
        mock_monitor_client.diagnostic_settings.list.side_effect = (
            lambda resource_uri: FakeItemPaged([[SimpleNamespace(id=f"{resource_uri}/diag")]])
        )
        alpha = make_scanner_cls(
            "Alpha", ALPHA_TYPE, inventory={(SUBSCRIPTION_ID, "rg-app"): [resource]}
        )
        runner = make_runner(mock_client_manager, alpha)

        report = await runner.run_scan()

        diagnostics_row = next(r for r in report.rows if r.rule_id == "alpha-002")
        assert not diagnostics_row.broken

    @pytest.mark.asyncio
    async def test_rows_sorted_case_insensitively(self, mock_client_manager):
        mock_client_manager.list_resource_groups.return_value = ["rg-b", "RG-a"]
        alpha = make_scanner_cls(
            "Alpha",
            ALPHA_TYPE,
            inventory={
                (SUBSCRIPTION_ID, "rg-b"): [make_resource(ALPHA_TYPE, "z1", "rg-b")],
                (SUBSCRIPTION_ID, "RG-a"): [
                    make_resource(ALPHA_TYPE, "Y2", "RG-a"),
                    make_resource(ALPHA_TYPE, "x3", "RG-a"),
                ],
            },
        )
        runner = make_runner(mock_client_manager, alpha)

        report = await runner.run_scan()

        names = [row.resource_name for row in report.rows if row.rule_id == "alpha-001"]
        assert names == ["x3", "Y2", "z1"]

    @pytest.mark.asyncio
    async def test_runs_are_idempotent(self, mock_client_manager):
        mock_client_manager.list_resource_groups.return_value = ["rg-a", "rg-b", "rg-c"]
        inventory = {
            (SUBSCRIPTION_ID, rg): [make_resource(ALPHA_TYPE, f"{rg}-{i}", rg) for i in range(3)]
            for rg in ("rg-a", "rg-b", "rg-c")
        }
        alpha = make_scanner_cls("Alpha", ALPHA_TYPE, inventory=inventory)
        runner = make_runner(mock_client_manager, alpha, max_parallel_scans=2)

        first = await runner.run_scan()
        second = await runner.run_scan()

        assert first.id != second.id
        assert first.rows == second.rows

    @pytest.mark.asyncio
    async def test_subscription_scope_scanner(self, mock_client_manager):
        mock_client_manager.list_resource_groups.return_value = ["rg-a", "rg-b"]
        listed_scopes = []
        gamma = make_scanner_cls(
            "Gamma",
            ALPHA_TYPE,
            inventory={
                (SUBSCRIPTION_ID, None): [
                    make_resource(ALPHA_TYPE, "g1", "rg-b"),
                    make_resource(ALPHA_TYPE, "g2", "rg-a"),
                ]
            },
            scope_kind=ScopeKind.SUBSCRIPTION,
            on_list=listed_scopes.append,
        )
        runner = make_runner(mock_client_manager, gamma)

        report = await runner.run_scan()

        assert len(listed_scopes) == 1
        assert listed_scopes[0].resource_group is None
        mock_client_manager.list_resource_groups.assert_not_called()
        assert [row.resource_group for row in report.rows] == ["rg-a", "rg-a", "rg-b", "rg-b"]

    @pytest.mark.asyncio
    async def test_resource_group_filter_applies_to_subscription_scope(self, mock_client_manager):
        gamma = make_scanner_cls(
            "Gamma",
            ALPHA_TYPE,
            inventory={
                (SUBSCRIPTION_ID, None): [
                    make_resource(ALPHA_TYPE, "g1", "rg-a"),
                    make_resource(ALPHA_TYPE, "g2", "rg-b"),
                    make_resource(ALPHA_TYPE, "g3", "RG-A"),
                ]
            },
            scope_kind=ScopeKind.SUBSCRIPTION,
        )
        runner = make_runner(mock_client_manager, gamma, resource_group_filter=["rg-a"])

        report = await runner.run_scan()

        assert {row.resource_group.lower() for row in report.rows} == {"rg-a"}
        assert {row.resource_name for row in report.rows} == {"g1", "g3"}
        assert report.units[0].row_count == 4

    @pytest.mark.asyncio
    async def test_resource_group_filter(self, mock_client_manager):
        mock_client_manager.list_resource_groups.return_value = ["rg-a", "RG-B", "rg-c"]
        listed_scopes = []
        alpha = make_scanner_cls("Alpha", ALPHA_TYPE, on_list=listed_scopes.append)
        runner = make_runner(
            mock_client_manager, alpha, resource_group_filter=["rg-b", "rg-c"]
        )

        await runner.run_scan()

        assert sorted(scope.resource_group for scope in listed_scopes) == ["RG-B", "rg-c"]

    @pytest.mark.asyncio
    async def test_include_exclude_filters(self, mock_client_manager):
        listed = []
        alpha = make_scanner_cls("Alpha", ALPHA_TYPE, on_list=lambda s: listed.append("Alpha"))
        beta = make_scanner_cls("Beta", BETA_TYPE, on_list=lambda s: listed.append("Beta"))
        runner = make_runner(
            mock_client_manager, alpha, beta, exclude_resource_types=[ALPHA_TYPE.upper()]
        )

        report = await runner.run_scan()

        assert listed == ["Beta"]
        assert [u.scanner for u in report.units] == ["Beta"]

    @pytest.mark.asyncio
    async def test_resource_group_listing_failure(self, mock_client_manager):
        mock_client_manager.list_resource_groups.side_effect = forbidden()
        runner = make_runner(mock_client_manager, make_scanner_cls("Alpha", ALPHA_TYPE))

        report = await runner.run_scan()

        assert report.state == ScanState.DONE
        assert len(report.skipped_units) == 1
        assert report.skipped_units[0].resource_group is None

    @pytest.mark.asyncio
    async def test_resolves_enabled_subscriptions(self, mock_client_manager):
        mock_client_manager.list_subscriptions.return_value = [
            {"subscription_id": SUBSCRIPTION_ID.upper(), "display_name": "One", "state": "Enabled"},
            {"subscription_id": OTHER_SUBSCRIPTION_ID, "display_name": "Two", "state": "Disabled"},
        ]
        runner = make_runner(
            mock_client_manager, make_scanner_cls("Alpha", ALPHA_TYPE), subscription_ids=[]
        )

        report = await runner.run_scan()

        assert report.subscription_ids == [SUBSCRIPTION_ID]

    @pytest.mark.asyncio
    async def test_subscription_listing_failure_without_ids(self, mock_client_manager):
        mock_client_manager.list_subscriptions.side_effect = forbidden()
        runner = make_runner(
            mock_client_manager, make_scanner_cls("Alpha", ALPHA_TYPE), subscription_ids=[]
        )

        with pytest.raises(ConfigurationError):
            await runner.run_scan()
        assert runner.last_report.state == ScanState.ABORTED

    @pytest.mark.asyncio
    async def test_progress_callback(self, mock_client_manager):
        mock_client_manager.list_resource_groups.return_value = ["rg-a", "rg-b"]
        progress = []
        runner = make_runner(mock_client_manager, make_scanner_cls("Alpha", ALPHA_TYPE))
        runner.set_progress_callback(lambda done, total, unit: progress.append((done, total)))

        await runner.run_scan()

        assert sorted(progress) == [(1, 2), (2, 2)]

    @pytest.mark.asyncio
    async def test_max_parallel_scans_bounds_concurrency(self, mock_client_manager):
        mock_client_manager.list_resource_groups.return_value = [f"rg-{i}" for i in range(6)]
        lock = threading.Lock()
        active = 0
        peak = 0

        def slow_list(scope):
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.05)
            with lock:
                active -= 1

        alpha = make_scanner_cls("Alpha", ALPHA_TYPE, on_list=slow_list)
        beta = make_scanner_cls("Beta", BETA_TYPE, on_list=slow_list)
        runner = make_runner(mock_client_manager, alpha, beta, max_parallel_scans=2)

        report = await runner.run_scan()

        assert len(report.units) == 12
        assert peak == 2


class TestCancellation:
    """Tests for cancellation and timeouts."""

    @pytest.mark.asyncio
    async def test_cancel_aborts_run(self, mock_client_manager):
        runner = None

        def cancel_on_list(scope):
            runner.cancel("stopped by test")

        alpha = make_scanner_cls("Alpha", ALPHA_TYPE, on_list=cancel_on_list)
        runner = make_runner(mock_client_manager, alpha)

        with pytest.raises(ScanCancelledError, match="stopped by test"):
            await runner.run_scan()

        assert runner.state == ScanState.ABORTED
        assert runner.last_report.state == ScanState.ABORTED
        assert runner.last_report.completed_at is not None

    @pytest.mark.asyncio
    async def test_timeout_aborts_run(self, mock_client_manager):
        alpha = make_scanner_cls("Alpha", ALPHA_TYPE, on_list=lambda scope: time.sleep(0.3))
        runner = make_runner(mock_client_manager, alpha, scan_timeout_seconds=0.05)

        with pytest.raises(ScanCancelledError, match="timeout"):
            await runner.run_scan()

        assert runner.last_report.state == ScanState.ABORTED

    def test_cancel_without_run_is_noop(self, mock_client_manager):
        runner = make_runner(mock_client_manager)
        runner.cancel()
        assert runner.state == ScanState.IDLE
