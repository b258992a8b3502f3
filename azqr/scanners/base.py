"""Abstract base class for resource-type scanners.

Every scanner supplies the resource types it owns, an ordered rule table and
a listing operation for one scope. Listing, rule evaluation and row stamping
are shared here so a new resource type only declares those three things.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from azqr.core.errors import ConfigurationError
from azqr.core.paging import CancellationToken, list_all
from azqr.scanners.context import ScanContext
from azqr.scanners.engine import RecommendationEngine
from azqr.scanners.models import (
    Recommendation,
    ResourceTarget,
    ResultRow,
    Scope,
    ScopeKind,
)

logger = logging.getLogger(__name__)


@dataclass
class ScannerConfig:
    """Per-subscription configuration threaded into every scanner."""

    subscription_id: str
    subscription_name: str
    credential: Any
    cancel_token: CancellationToken = field(default_factory=CancellationToken)
    enable_detailed_scan: bool = False
    client_options: dict[str, Any] = field(default_factory=dict)


def parse_resource_group(resource_id: str | None) -> str:
    """Extract the resource group name from an ARM resource id.

    Format: /subscriptions/{sub}/resourceGroups/{rg}/providers/{provider}/{type}/{name}
    """
    if not resource_id:
        return ""
    id_parts = resource_id.split("/")
    for i, part in enumerate(id_parts):
        if part.lower() == "resourcegroups" and i + 1 < len(id_parts):
            return id_parts[i + 1]
    return ""


class BaseScanner(ABC):
    """Abstract base class for all resource-type scanners.

    Subclasses must define ``resource_types`` and implement
    ``get_recommendations``, ``_create_client`` and ``_list``.
    """

    name: str = ""
    resource_types: tuple[str, ...] = ()
    scope_kind: ScopeKind = ScopeKind.RESOURCE_GROUP

    def __init__(self) -> None:
        self.config: ScannerConfig | None = None
        self.client: Any = None
        self._engine = RecommendationEngine()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}({', '.join(self.resource_types)})>"

    @classmethod
    def get_name(cls) -> str:
        return cls.name or cls.__name__

    @classmethod
    def get_resource_types(cls) -> tuple[str, ...]:
        """Resource types this scanner owns."""
        return cls.resource_types

    @classmethod
    @abstractmethod
    def get_recommendations(cls) -> tuple[Recommendation, ...]:
        """Ordered rule table for this scanner."""

    @abstractmethod
    def _create_client(self, config: ScannerConfig) -> Any:
        """Create the management client for the configured subscription."""

    @abstractmethod
    def _list(self, scope: Scope) -> Any:
        """Return the SDK pager listing the resources of a scope."""

    def init(self, config: ScannerConfig) -> None:
        """Bind the scanner to a subscription.

        Raises:
            ConfigurationError: If the client cannot be created
        """
        self.config = config
        try:
            self.client = self._create_client(config)
        except Exception as e:
            raise ConfigurationError(
                f"Failed to initialize {self.get_name()}: {e}",
                error_code="scanner_init_failed",
                details={"scanner": self.get_name()},
            ) from e

    def list_resources(self, scope: Scope) -> list[Any]:
        """List live resources of a scope, concatenated in API order."""
        config = self._require_config()
        return list_all(self._list(scope), config.cancel_token)

    def scan(self, scope: Scope, context: ScanContext) -> list[ResultRow]:
        """Scan every resource of a scope.

        Args:
            scope: Subscription or resource group to scan
            context: The subscription's scan context

        Returns:
            Rows for every resource, in listing order then rule order
        """
        config = self._require_config()
        if scope.resource_group is None:
            logger.info(f"Scanning {self.resource_types[0]} in subscription {config.subscription_id}")
        else:
            logger.info(
                f"Scanning {self.resource_types[0]} in subscription "
                f"{config.subscription_id}, resource group {scope.resource_group}"
            )

        rules = self.get_recommendations()
        results: list[ResultRow] = []
        for resource in self.list_resources(scope):
            target = self._target_for(resource, scope)
            results.extend(self._engine.evaluate(rules, resource, context, target))
        return results

    def _target_for(self, resource: Any, scope: Scope) -> ResourceTarget:
        config = self._require_config()
        resource_group = scope.resource_group or parse_resource_group(
            getattr(resource, "id", None)
        )
        return ResourceTarget(
            subscription_id=config.subscription_id,
            subscription_name=config.subscription_name,
            resource_group=resource_group,
            resource_name=getattr(resource, "name", None) or "",
            resource_type=getattr(resource, "type", None) or self.resource_types[0],
            location=getattr(resource, "location", None) or "",
        )

    def _require_config(self) -> ScannerConfig:
        if self.config is None or self.client is None:
            raise ConfigurationError(
                f"{self.get_name()} used before init()",
                error_code="scanner_not_initialized",
            )
        return self.config
