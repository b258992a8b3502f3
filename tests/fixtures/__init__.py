"""Test fixtures for Azure resource scanning."""

from .azure_fixtures import (
    OTHER_SUBSCRIPTION_ID,
    SUBSCRIPTION_ID,
    FakeItemPaged,
    make_context,
    make_resource,
    make_target,
    resource_id,
    row_for,
)

__all__ = [
    "SUBSCRIPTION_ID",
    "OTHER_SUBSCRIPTION_ID",
    "FakeItemPaged",
    "make_context",
    "make_resource",
    "make_target",
    "resource_id",
    "row_for",
]
