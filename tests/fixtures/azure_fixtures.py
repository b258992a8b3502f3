"""Fake Azure SDK resources, pagers and scan contexts."""

from types import SimpleNamespace

from azqr.scanners.context import DiagnosticsSettingsIndex, ScanContext
from azqr.scanners.models import ResourceTarget

SUBSCRIPTION_ID = "00000000-0000-0000-0000-000000000001"
OTHER_SUBSCRIPTION_ID = "00000000-0000-0000-0000-000000000002"


class FakeItemPaged:
    """Stand-in for an Azure SDK ItemPaged that records page requests."""

    def __init__(self, pages):
        self.pages = [list(page) for page in pages]
        self.requested_pages = 0

    def by_page(self):
        for page in self.pages:
            self.requested_pages += 1
            yield page

    def __iter__(self):
        for page in self.pages:
            yield from page


def resource_id(resource_group: str, provider_type: str, name: str,
                subscription_id: str = SUBSCRIPTION_ID) -> str:
    return (
        f"/subscriptions/{subscription_id}/resourceGroups/{resource_group}"
        f"/providers/{provider_type}/{name}"
    )


def make_resource(provider_type: str, name: str, resource_group: str = "rg-app",
                  subscription_id: str = SUBSCRIPTION_ID, **fields):
    """Create a resource shaped like an Azure SDK model."""
    data = {
        "id": resource_id(resource_group, provider_type, name, subscription_id),
        "name": name,
        "type": provider_type,
        "location": "westeurope",
        "tags": {"env": "prod"},
    }
    data.update(fields)
    return SimpleNamespace(**data)


def make_context(resource_ids=(), detailed_scan: bool = False,
                 subscription_id: str = SUBSCRIPTION_ID) -> ScanContext:
    return ScanContext(
        subscription_id=subscription_id,
        diagnostics=DiagnosticsSettingsIndex(resource_ids),
        detailed_scan=detailed_scan,
    )


def make_target(resource) -> ResourceTarget:
    return ResourceTarget(
        subscription_id=SUBSCRIPTION_ID,
        subscription_name="Test Subscription",
        resource_group="rg-app",
        resource_name=resource.name,
        resource_type=resource.type,
        location=resource.location,
    )


def row_for(rows, rule_id: str):
    """Find the row produced by one rule."""
    matches = [row for row in rows if row.rule_id == rule_id]
    assert len(matches) == 1, f"expected one row for {rule_id}, got {len(matches)}"
    return matches[0]
