"""Shared fixtures for unit tests."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from azqr.core.config import Settings
from tests.fixtures import SUBSCRIPTION_ID, FakeItemPaged, make_context


@pytest.fixture
def settings():
    """Settings isolated from any local .env file."""
    return Settings(_env_file=None, subscription_ids=[SUBSCRIPTION_ID])


@pytest.fixture
def context():
    """Scan context with no diagnostic settings."""
    return make_context()


@pytest.fixture
def mock_graph_client():
    """Resource Graph client returning a single empty page."""
    client = MagicMock()
    client.resources.return_value = SimpleNamespace(data=[], skip_token=None)
    return client


@pytest.fixture
def mock_monitor_client():
    """Azure Monitor client reporting no diagnostic settings."""
    client = MagicMock()
    client.diagnostic_settings.list.side_effect = lambda resource_uri: FakeItemPaged([[]])
    return client


@pytest.fixture
def mock_client_manager(mock_graph_client, mock_monitor_client):
    """AzureClientManager with one enabled subscription and one resource group."""
    manager = MagicMock()
    manager.get_credential.return_value = MagicMock()
    manager.get_resource_graph_client.return_value = mock_graph_client
    manager.get_monitor_client.return_value = mock_monitor_client
    manager.list_subscriptions.return_value = [
        {
            "subscription_id": SUBSCRIPTION_ID,
            "display_name": "Test Subscription",
            "state": "Enabled",
        }
    ]
    manager.list_resource_groups.return_value = ["rg-app"]
    return manager
