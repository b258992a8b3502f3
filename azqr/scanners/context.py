"""Per-subscription scan context and the diagnostics-settings index.

The context is built once per subscription before any scanner runs and is
read-only afterwards, so scanners running in parallel threads can share it
without locking.
"""

import logging
from collections.abc import Iterable, Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from azure.core.exceptions import HttpResponseError
from azure.mgmt.resourcegraph.models import QueryRequest, QueryRequestOptions

from azqr.core.errors import (
    ContextBuildError,
    ErrorKind,
    ScanCancelledError,
    classify_error,
    sanitize_error_message,
)
from azqr.core.paging import CancellationToken, list_all, list_pages

logger = logging.getLogger(__name__)

DIAGNOSTIC_SETTINGS_SEGMENT = "/providers/microsoft.insights/diagnosticsettings/"

RESOURCE_GRAPH_PAGE_SIZE = 1000

DIAGNOSTICS_LOOKUP_WORKERS = 8

# Returned for resource types that do not support diagnostic settings
UNSUPPORTED_STATUS_CODES = {400, 404}


def owning_resource_id(setting: Any) -> str | None:
    """Get the id of the resource a diagnostic setting belongs to.

    Accepts a setting id string, a record (dict) or an SDK model.
    Rows may carry the owning id directly as ``resource_id``/``resourceId``.
    """
    if isinstance(setting, dict):
        direct = setting.get("resource_id") or setting.get("resourceId")
        setting_id = setting.get("id")
    elif isinstance(setting, str):
        direct = None
        setting_id = setting
    else:
        direct = getattr(setting, "resource_id", None)
        setting_id = getattr(setting, "id", None)

    if direct:
        return str(direct)
    if not setting_id:
        return None

    lowered = str(setting_id).lower()
    position = lowered.find(DIAGNOSTIC_SETTINGS_SEGMENT)
    if position <= 0:
        return None
    return str(setting_id)[:position]


class DiagnosticsSettingsIndex:
    """Set of resource ids that have diagnostic settings configured.

    Lookups are case-insensitive. An id that is not in the index means "no
    diagnostics configured", never "unknown".
    """

    def __init__(self, resource_ids: Iterable[str] = ()) -> None:
        self._resource_ids: set[str] = set()
        for resource_id in resource_ids:
            self.add(resource_id)

    def __len__(self) -> int:
        return len(self._resource_ids)

    def __contains__(self, resource_id: object) -> bool:
        return isinstance(resource_id, str) and self.has_diagnostics(resource_id)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._resource_ids))

    def add(self, resource_id: str) -> None:
        if resource_id:
            self._resource_ids.add(resource_id.strip().lower())

    def has_diagnostics(self, resource_id: str | None) -> bool:
        """Check if a resource has diagnostic settings configured."""
        if not resource_id:
            return False
        return resource_id.strip().lower() in self._resource_ids

    @classmethod
    def build(
        cls,
        pages: Iterable[Iterable[Any]],
        cancel_token: CancellationToken | None = None,
    ) -> "DiagnosticsSettingsIndex":
        """Build the index from pages of diagnostic setting records.

        Args:
            pages: Pages of setting ids, setting records or SDK models
            cancel_token: Token checked before each page request

        Returns:
            The populated index
        """
        index = cls()
        unresolved = 0
        for setting in list_pages(pages, cancel_token):
            resource_id = owning_resource_id(setting)
            if resource_id:
                index.add(resource_id)
            else:
                unresolved += 1

        if unresolved:
            logger.debug(f"Ignored {unresolved} diagnostic settings without an owning resource")
        return index


def resource_ids_query(resource_types: Iterable[str] | None = None) -> str:
    """Resource Graph query listing the ids of the resources to index.

    ``None`` lists every resource of the subscription.
    """
    if resource_types is None:
        return "resources | project id"
    quoted = ", ".join(f"'{t.lower()}'" for t in sorted(set(resource_types)))
    return f"resources | where type in~ ({quoted}) | project id"


def resource_graph_pages(
    client: Any, subscription_id: str, query: str
) -> Iterator[list[dict[str, Any]]]:
    """Yield pages of Resource Graph rows for one subscription.

    Pages are requested lazily, so a cancelled run stops between requests.
    """
    skip_token: str | None = None
    while True:
        request = QueryRequest(
            subscriptions=[subscription_id],
            query=query,
            options=QueryRequestOptions(
                skip_token=skip_token,
                top=RESOURCE_GRAPH_PAGE_SIZE,
                result_format="objectArray",
            ),
        )
        response = client.resources(request)
        yield list(response.data or [])

        skip_token = getattr(response, "skip_token", None)
        if not skip_token:
            break


def list_resource_ids(
    client: Any,
    subscription_id: str,
    resource_types: Iterable[str] | None = None,
    cancel_token: CancellationToken | None = None,
) -> list[str]:
    """List the ids of a subscription's resources through Resource Graph."""
    if resource_types is not None:
        resource_types = list(resource_types)
        if not resource_types:
            return []
    rows = list_pages(
        resource_graph_pages(client, subscription_id, resource_ids_query(resource_types)),
        cancel_token,
    )
    return [row["id"] for row in rows if row.get("id")]


def list_diagnostic_settings(
    monitor_client: Any,
    resource_id: str,
    cancel_token: CancellationToken | None = None,
) -> list[dict[str, str]]:
    """List the diagnostic settings of one resource.

    Returns:
        One record per setting, carrying the owning resource id

    Raises:
        HttpResponseError: Unless the resource is gone or does not support
            diagnostic settings
    """
    if cancel_token is not None:
        cancel_token.raise_if_cancelled()
    try:
        settings = list_all(monitor_client.diagnostic_settings.list(resource_id), cancel_token)
    except HttpResponseError as e:
        if e.status_code in UNSUPPORTED_STATUS_CODES or classify_error(e) in (
            ErrorKind.NOT_FOUND,
            ErrorKind.NOT_AVAILABLE,
        ):
            logger.debug(f"No diagnostic settings available for {resource_id}: {e}")
            return []
        raise
    return [{"resource_id": resource_id, "id": getattr(s, "id", None) or ""} for s in settings]


def diagnostic_settings_pages(
    monitor_client: Any,
    resource_ids: Sequence[str],
    cancel_token: CancellationToken | None = None,
    max_workers: int = DIAGNOSTICS_LOOKUP_WORKERS,
) -> Iterator[list[dict[str, str]]]:
    """Yield the diagnostic settings of each resource, one page per resource.

    Lookups run on a bounded thread pool; pages come back in resource order.
    """
    executor = ThreadPoolExecutor(max_workers=max_workers)
    try:
        yield from executor.map(
            lambda resource_id: list_diagnostic_settings(
                monitor_client, resource_id, cancel_token
            ),
            resource_ids,
        )
    finally:
        executor.shutdown(wait=True, cancel_futures=True)


@dataclass(frozen=True)
class ScanContext:
    """Read-only lookups shared by every scanner of one subscription."""

    subscription_id: str
    diagnostics: DiagnosticsSettingsIndex
    detailed_scan: bool = False

    def has_diagnostics(self, resource_id: str | None) -> bool:
        return self.diagnostics.has_diagnostics(resource_id)


def build_scan_context(
    client_manager: Any,
    subscription_id: str,
    cancel_token: CancellationToken | None = None,
    detailed_scan: bool = False,
    resource_types: Iterable[str] | None = None,
    max_workers: int = DIAGNOSTICS_LOOKUP_WORKERS,
) -> ScanContext:
    """Build the scan context for one subscription.

    Resource ids come from one paged Resource Graph query; each resource's
    diagnostic settings are then read from Azure Monitor.

    Args:
        client_manager: AzureClientManager providing the Resource Graph and
            Monitor clients
        subscription_id: Subscription to index
        cancel_token: Token governing the run
        detailed_scan: Whether detailed-only rules are applicable
        resource_types: Resource types to index (None indexes every resource)
        max_workers: Concurrent diagnostic settings lookups

    Returns:
        The subscription's ScanContext

    Raises:
        ContextBuildError: If the diagnostics index cannot be built
        ScanCancelledError: If the run is cancelled while building
    """
    logger.info(f"Building diagnostics settings index for subscription {subscription_id}")

    try:
        resource_ids = list_resource_ids(
            client_manager.get_resource_graph_client(),
            subscription_id,
            resource_types,
            cancel_token,
        )
        logger.debug(
            f"Looking up diagnostic settings of {len(resource_ids)} resources "
            f"in subscription {subscription_id}"
        )
        monitor_client = client_manager.get_monitor_client(subscription_id)
        try:
            index = DiagnosticsSettingsIndex.build(
                diagnostic_settings_pages(
                    monitor_client, resource_ids, cancel_token, max_workers
                ),
                cancel_token,
            )
        finally:
            monitor_client.close()
    except ScanCancelledError:
        raise
    except Exception as e:
        kind = classify_error(e)
        logger.error(
            f"Failed to build diagnostics settings index for subscription "
            f"{subscription_id} ({kind.value}): {e}"
        )
        raise ContextBuildError(
            f"Diagnostics settings index could not be built: {sanitize_error_message(e)}",
            subscription_id=subscription_id,
            cause_kind=kind,
            details={"error_type": type(e).__name__},
        ) from e

    logger.info(
        f"Indexed {len(index)} resources with diagnostic settings "
        f"in subscription {subscription_id}"
    )
    return ScanContext(
        subscription_id=subscription_id,
        diagnostics=index,
        detailed_scan=detailed_scan,
    )
