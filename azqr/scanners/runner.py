"""Scan runner - orchestrates scanners across subscriptions and resource groups.

Provides bounded parallel execution, per-unit error classification, timeout
handling and cancellation.
"""

import asyncio
import logging
import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Any

from azqr.core.azure_client import AzureClientManager
from azqr.core.config import Settings, get_settings
from azqr.core.errors import (
    SKIPPABLE_KINDS,
    ConfigurationError,
    ContextBuildError,
    ErrorKind,
    ScanCancelledError,
    classify_error,
    sanitize_error_message,
)
from azqr.core.paging import CancellationToken
from azqr.scanners.base import BaseScanner, ScannerConfig
from azqr.scanners.context import ScanContext, build_scan_context
from azqr.scanners.models import (
    ResultRow,
    ScanReport,
    ScanState,
    ScanUnitResult,
    Scope,
    ScopeKind,
    UnitStatus,
)
from azqr.scanners.registry import ScannerRegistry, get_registry

logger = logging.getLogger(__name__)

UnitOutcome = tuple[ScanUnitResult, list[ResultRow]]


class ScanRunner:
    """Orchestrates one scan run at a time."""

    def __init__(
        self,
        settings: Settings | None = None,
        registry: ScannerRegistry | None = None,
        client_manager: AzureClientManager | None = None,
    ):
        """Initialize the scan runner.

        Args:
            settings: Scan settings. Defaults to the cached environment settings.
            registry: Scanner registry. Defaults to every built-in scanner.
            client_manager: Azure client manager. Defaults to one built from settings.
        """
        self.settings = settings or get_settings()
        self.registry = registry if registry is not None else get_registry()
        self.client_manager = (
            client_manager if client_manager is not None else AzureClientManager(self.settings)
        )

        self._state = ScanState.IDLE
        self._cancel_token: CancellationToken | None = None
        self._last_report: ScanReport | None = None
        self._progress_callback: Callable[[int, int, str], None] | None = None

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def is_running(self) -> bool:
        """Check if a scan is currently running."""
        return self._state in (
            ScanState.BUILDING_CONTEXT,
            ScanState.SCANNING,
            ScanState.AGGREGATING,
        )

    @property
    def last_report(self) -> ScanReport | None:
        """Get the report of the most recent run."""
        return self._last_report

    def set_progress_callback(self, callback: Callable[[int, int, str], None]) -> None:
        """Set a callback for progress updates.

        Callback receives (completed: int, total: int, unit: str).
        """
        self._progress_callback = callback

    def cancel(self, reason: str = "Scan cancelled by caller") -> None:
        """Cancel the running scan. No new page is requested after this."""
        if self._cancel_token is not None:
            self._cancel_token.cancel(reason)

    async def run_scan(self, subscription_ids: list[str] | None = None) -> ScanReport:
        """Run every selected scanner over the requested subscriptions.

        Args:
            subscription_ids: Subscriptions to scan (overrides settings). If
                neither is set, every enabled subscription is scanned.

        Returns:
            Complete ScanReport with rows sorted for rendering

        Raises:
            ScanCancelledError: If the run was cancelled or timed out
            ConfigurationError: If credentials or subscriptions cannot be resolved
        """
        if self.is_running:
            raise ConfigurationError(
                "A scan is already running", error_code="scan_in_progress"
            )

        requested = [s.lower() for s in subscription_ids or self.settings.subscription_ids]
        token = CancellationToken()
        self._cancel_token = token

        report = ScanReport(
            id=str(uuid.uuid4()),
            started_at=datetime.utcnow(),
            detailed_scan=self.settings.enable_detailed_scan,
        )
        self._set_state(report, ScanState.BUILDING_CONTEXT)

        timeout = self.settings.scan_timeout_seconds
        try:
            if timeout is not None:
                await asyncio.wait_for(self._execute(report, requested, token), timeout)
            else:
                await self._execute(report, requested, token)
        except TimeoutError:
            token.cancel(f"Scan exceeded timeout of {timeout}s")
            self._abort(report)
            raise ScanCancelledError(token.reason)
        except Exception:
            self._abort(report)
            raise
        finally:
            self._cancel_token = None

        return report

    async def _execute(
        self,
        report: ScanReport,
        requested: list[str],
        token: CancellationToken,
    ) -> None:
        subscriptions = await asyncio.to_thread(
            self._resolve_subscriptions, requested, token
        )
        report.subscription_ids = [sub_id for sub_id, _ in subscriptions]
        if not subscriptions:
            logger.warning("No subscriptions to scan")

        scanner_classes = self.registry.get_scanners(
            self.settings.include_resource_types,
            self.settings.exclude_resource_types,
        )
        # Only rule tables read the diagnostics index
        indexed_types = [
            t
            for cls in scanner_classes
            if cls.get_recommendations()
            for t in cls.get_resource_types()
        ]

        semaphore = asyncio.Semaphore(self.settings.max_parallel_scans)
        contexts = await self._build_contexts(
            report, subscriptions, indexed_types, token, semaphore
        )

        if subscriptions and not contexts:
            logger.error("Scan context could not be built for any subscription")
            report.completed_at = datetime.utcnow()
            self._set_state(report, ScanState.ABORTED)
            self._last_report = report
            return

        self._set_state(report, ScanState.SCANNING)
        credential = self.client_manager.get_credential()
        logger.info(
            f"Running {len(scanner_classes)} scanners over {len(contexts)} subscriptions"
        )

        tasks = []
        planned_units: list[ScanUnitResult] = []
        for (sub_id, sub_name), context in contexts:
            config = ScannerConfig(
                subscription_id=sub_id,
                subscription_name=sub_name,
                credential=credential,
                cancel_token=token,
                enable_detailed_scan=self.settings.enable_detailed_scan,
            )
            sub_tasks, sub_units = await self._plan_subscription(
                config, context, scanner_classes, semaphore
            )
            tasks.extend(sub_tasks)
            planned_units.extend(sub_units)

        outcomes = await self._gather_units(tasks, token)

        self._set_state(report, ScanState.AGGREGATING)
        rows: list[ResultRow] = []
        units = list(report.units) + planned_units
        for unit, unit_rows in outcomes:
            units.append(unit)
            rows.extend(unit_rows)

        report.units = units
        report.rows = sorted(rows, key=ResultRow.sort_key)
        report.completed_at = datetime.utcnow()
        self._set_state(report, ScanState.DONE)
        self._last_report = report

        logger.info(
            f"Scan completed: {len(report.rows)} rows, {report.broken_count} broken, "
            f"{len(report.skipped_units)} skipped units, "
            f"{len(report.failed_units)} failed units"
        )

    def _resolve_subscriptions(
        self, requested: list[str], token: CancellationToken
    ) -> list[tuple[str, str]]:
        """Resolve (subscription id, display name) pairs for the run."""
        try:
            available = self.client_manager.list_subscriptions(token)
        except ScanCancelledError:
            raise
        except Exception as e:
            if not requested:
                raise ConfigurationError(
                    f"Unable to list subscriptions: {sanitize_error_message(e)}",
                    error_code="subscription_listing_failed",
                ) from e
            logger.warning(f"Unable to resolve subscription names: {e}")
            available = []

        names = {s["subscription_id"].lower(): s["display_name"] for s in available}
        if requested:
            return [(sub_id, names.get(sub_id, "")) for sub_id in requested]

        enabled = [
            (s["subscription_id"].lower(), s["display_name"])
            for s in available
            if str(s["state"]).lower() == "enabled"
        ]
        logger.info(f"Scanning {len(enabled)} enabled subscriptions")
        return enabled

    async def _build_contexts(
        self,
        report: ScanReport,
        subscriptions: list[tuple[str, str]],
        resource_types: list[str],
        token: CancellationToken,
        semaphore: asyncio.Semaphore,
    ) -> list[tuple[tuple[str, str], ScanContext]]:
        """Build one ScanContext per subscription, concurrently."""

        async def build(sub_id: str) -> ScanContext:
            async with semaphore:
                token.raise_if_cancelled()
                return await asyncio.to_thread(
                    build_scan_context,
                    self.client_manager,
                    sub_id,
                    token,
                    self.settings.enable_detailed_scan,
                    resource_types,
                    self.settings.diagnostics_lookup_workers,
                )

        results = await asyncio.gather(
            *(build(sub_id) for sub_id, _ in subscriptions), return_exceptions=True
        )

        contexts = []
        for subscription, result in zip(subscriptions, results):
            sub_id = subscription[0]
            if isinstance(result, ScanCancelledError):
                raise result
            if isinstance(result, BaseException):
                if not isinstance(result, ContextBuildError):
                    logger.error(
                        f"Unexpected error building context for {sub_id}: {result}"
                    )
                report.units.append(
                    ScanUnitResult(
                        subscription_id=sub_id,
                        scanner="ScanContext",
                        status=UnitStatus.FAILED,
                        error_kind=ErrorKind.CONTEXT_BUILD,
                        message=sanitize_error_message(result),
                    )
                )
                continue
            contexts.append((subscription, result))
        return contexts

    async def _plan_subscription(
        self,
        config: ScannerConfig,
        context: ScanContext,
        scanner_classes: list[type[BaseScanner]],
        semaphore: asyncio.Semaphore,
    ) -> tuple[list[Any], list[ScanUnitResult]]:
        """Create the unit tasks of one subscription.

        Returns:
            Coroutines to run, and units already decided (init or listing failures)
        """
        tasks: list[Any] = []
        units: list[ScanUnitResult] = []

        needs_groups = any(
            cls.scope_kind == ScopeKind.RESOURCE_GROUP for cls in scanner_classes
        )
        groups: list[str] = []
        group_error: Exception | None = None
        if needs_groups:
            try:
                groups = await asyncio.to_thread(
                    self.client_manager.list_resource_groups,
                    config.subscription_id,
                    config.cancel_token,
                )
                groups = self._filter_resource_groups(groups)
            except ScanCancelledError:
                raise
            except Exception as e:
                group_error = e

        for scanner_cls in scanner_classes:
            subscription_scope = Scope(
                subscription_id=config.subscription_id,
                subscription_name=config.subscription_name,
            )
            if scanner_cls.scope_kind == ScopeKind.SUBSCRIPTION:
                scopes = [subscription_scope]
            elif group_error is not None:
                units.append(
                    self._error_unit(scanner_cls, subscription_scope, group_error)
                )
                continue
            else:
                scopes = [
                    Scope(
                        subscription_id=config.subscription_id,
                        subscription_name=config.subscription_name,
                        resource_group=group,
                    )
                    for group in groups
                ]

            scanner = scanner_cls()
            try:
                scanner.init(config)
            except ConfigurationError as e:
                units.extend(self._error_unit(scanner_cls, scope, e) for scope in scopes)
                continue

            for scope in scopes:
                tasks.append(
                    self._run_unit(scanner, scope, context, config.cancel_token, semaphore)
                )

        return tasks, units

    def _filter_resource_groups(self, groups: list[str]) -> list[str]:
        """Apply the resource group filter (case-insensitive)."""
        wanted = {g.lower() for g in self.settings.resource_group_filter}
        if not wanted:
            return groups
        return [g for g in groups if g.lower() in wanted]

    def _filter_rows(self, rows: list[ResultRow]) -> list[ResultRow]:
        """Apply the resource group filter to rows of a subscription-wide listing."""
        wanted = {g.lower() for g in self.settings.resource_group_filter}
        if not wanted:
            return rows
        return [r for r in rows if r.resource_group.lower() in wanted]

    async def _run_unit(
        self,
        scanner: BaseScanner,
        scope: Scope,
        context: ScanContext,
        token: CancellationToken,
        semaphore: asyncio.Semaphore,
    ) -> UnitOutcome:
        """Scan one (scope, scanner) unit in a worker thread."""
        async with semaphore:
            token.raise_if_cancelled()

            start_time = datetime.utcnow()
            try:
                rows = await asyncio.to_thread(scanner.scan, scope, context)
                if scope.resource_group is None:
                    rows = self._filter_rows(rows)
            except ScanCancelledError:
                raise
            except Exception as e:
                unit = self._error_unit(type(scanner), scope, e)
                unit.duration_ms = (datetime.utcnow() - start_time).total_seconds() * 1000
                return unit, []
            end_time = datetime.utcnow()

        unit = ScanUnitResult(
            subscription_id=scope.subscription_id,
            resource_group=scope.resource_group,
            scanner=scanner.get_name(),
            resource_types=list(scanner.get_resource_types()),
            status=UnitStatus.COMPLETED,
            row_count=len(rows),
            duration_ms=(end_time - start_time).total_seconds() * 1000,
        )
        return unit, rows

    def _error_unit(
        self, scanner_cls: type[BaseScanner], scope: Scope, error: Exception
    ) -> ScanUnitResult:
        """Classify a unit failure into a skipped or failed unit."""
        kind = classify_error(error)
        if kind in SKIPPABLE_KINDS:
            status = UnitStatus.SKIPPED
            logger.warning(
                f"Skipping {scanner_cls.get_name()} in {scope} ({kind.value}): {error}"
            )
        else:
            status = UnitStatus.FAILED
            logger.error(
                f"{scanner_cls.get_name()} failed in {scope} ({kind.value}): {error}"
            )

        return ScanUnitResult(
            subscription_id=scope.subscription_id,
            resource_group=scope.resource_group,
            scanner=scanner_cls.get_name(),
            resource_types=list(scanner_cls.get_resource_types()),
            status=status,
            error_kind=kind,
            message=sanitize_error_message(error),
        )

    async def _gather_units(
        self, tasks: list[Any], token: CancellationToken
    ) -> list[UnitOutcome]:
        """Run unit tasks and fan their results in, in submission order."""
        total = len(tasks)
        completed = 0

        async def tracked(task: Any) -> UnitOutcome:
            nonlocal completed
            outcome = await task
            completed += 1
            if self._progress_callback:
                unit = outcome[0]
                self._progress_callback(
                    completed, total, f"{unit.scanner}:{unit.resource_group or unit.subscription_id}"
                )
            return outcome

        results = await asyncio.gather(
            *(tracked(task) for task in tasks), return_exceptions=True
        )

        outcomes: list[UnitOutcome] = []
        for result in results:
            if isinstance(result, ScanCancelledError):
                raise ScanCancelledError(token.reason)
            if isinstance(result, BaseException):
                raise result
            outcomes.append(result)
        return outcomes

    def _abort(self, report: ScanReport) -> None:
        report.completed_at = datetime.utcnow()
        self._set_state(report, ScanState.ABORTED)
        self._last_report = report
        logger.warning(f"Scan {report.id} aborted")

    def _set_state(self, report: ScanReport, state: ScanState) -> None:
        logger.debug(f"Scan {report.id}: {self._state.value} -> {state.value}")
        self._state = state
        report.state = state
