"""Azure SDK client wrapper shared by the scan runner.

Supports two credential modes:
1. Service principal: AZURE_TENANT_ID, AZURE_CLIENT_ID and AZURE_CLIENT_SECRET
2. DefaultAzureCredential: Azure CLI, managed identity, environment, ...

Scanners never read ambient credentials themselves; the runner resolves the
credential here once and threads it into every scanner through ScannerConfig.
"""

import logging
from typing import Any

from azure.identity import ClientSecretCredential, DefaultAzureCredential
from azure.mgmt.monitor import MonitorManagementClient
from azure.mgmt.resource import ResourceManagementClient
from azure.mgmt.resource.subscriptions import SubscriptionClient
from azure.mgmt.resourcegraph import ResourceGraphClient

from azqr.core.config import Settings, get_settings
from azqr.core.errors import ConfigurationError
from azqr.core.paging import CancellationToken, list_all

logger = logging.getLogger(__name__)


class AzureClientManager:
    """Builds the run credential and the management clients the runner needs."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._credential: Any = None
        self._resource_graph_client: ResourceGraphClient | None = None

    def get_credential(self) -> Any:
        """Get or create the credential for this run.

        Returns:
            ClientSecretCredential when a service principal is configured,
            otherwise DefaultAzureCredential

        Raises:
            ConfigurationError: If the credential cannot be created
        """
        if self._credential is not None:
            return self._credential

        try:
            if self._settings.is_service_principal_configured:
                self._credential = ClientSecretCredential(
                    tenant_id=str(self._settings.azure_tenant_id),
                    client_id=str(self._settings.azure_client_id),
                    client_secret=str(self._settings.azure_client_secret),
                )
                logger.debug(
                    f"Using service principal credential "
                    f"(client_id: {str(self._settings.azure_client_id)[:8]}...)"
                )
            else:
                self._credential = DefaultAzureCredential(
                    exclude_interactive_browser_credential=True
                )
                logger.debug("Using DefaultAzureCredential")
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid Azure credential configuration: {e}",
                error_code="invalid_credentials",
            ) from e

        return self._credential

    def get_subscription_client(self) -> SubscriptionClient:
        """Get subscription client."""
        return SubscriptionClient(self.get_credential())

    def get_resource_client(self, subscription_id: str) -> ResourceManagementClient:
        """Get resource management client."""
        return ResourceManagementClient(self.get_credential(), subscription_id)

    def get_monitor_client(self, subscription_id: str) -> MonitorManagementClient:
        """Get an Azure Monitor client for diagnostic settings lookups."""
        return MonitorManagementClient(self.get_credential(), subscription_id)

    def get_resource_graph_client(self) -> ResourceGraphClient:
        """Get the (cached) Resource Graph client."""
        if self._resource_graph_client is None:
            self._resource_graph_client = ResourceGraphClient(self.get_credential())
        return self._resource_graph_client

    def list_subscriptions(
        self, cancel_token: CancellationToken | None = None
    ) -> list[dict[str, str]]:
        """List all subscriptions visible to the credential."""
        client = self.get_subscription_client()
        subscriptions = []
        for sub in list_all(client.subscriptions.list(), cancel_token):
            state = getattr(sub.state, "value", sub.state)
            subscriptions.append({
                "subscription_id": sub.subscription_id,
                "display_name": sub.display_name or "",
                "state": state or "Unknown",
            })
        logger.info(f"Found {len(subscriptions)} subscriptions")
        return subscriptions

    def list_resource_groups(
        self,
        subscription_id: str,
        cancel_token: CancellationToken | None = None,
    ) -> list[str]:
        """List resource group names of a subscription in API order."""
        client = self.get_resource_client(subscription_id)
        groups = list_all(client.resource_groups.list(), cancel_token)
        return [group.name for group in groups]

    def close(self) -> None:
        """Close the credential and cached clients."""
        if self._resource_graph_client is not None:
            self._resource_graph_client.close()
            self._resource_graph_client = None
        if self._credential is not None and hasattr(self._credential, "close"):
            self._credential.close()
        self._credential = None
