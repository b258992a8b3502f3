"""Scanner registry.

Scanners are registered as classes; the runner creates one instance per
subscription so no scanner state is shared across subscriptions.
"""

import logging
from functools import lru_cache

from azqr.core.errors import RegistrationError
from azqr.scanners.base import BaseScanner
from azqr.scanners.services.advisor import AdvisorScanner
from azqr.scanners.services.aks import AKSScanner
from azqr.scanners.services.ci import ContainerInstanceScanner
from azqr.scanners.services.dbw import DatabricksScanner
from azqr.scanners.services.evh import EventHubScanner
from azqr.scanners.services.nsg import NSGScanner
from azqr.scanners.services.sigr import SignalRScanner
from azqr.scanners.services.vmss import VirtualMachineScaleSetScanner

logger = logging.getLogger(__name__)


class ScannerRegistry:
    """Holds the registered scanner classes and their rule ids."""

    def __init__(self) -> None:
        self._scanners: dict[str, type[BaseScanner]] = {}
        self._rule_owners: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._scanners)

    def __contains__(self, name: object) -> bool:
        return name in self._scanners

    def register(self, scanner_cls: type[BaseScanner]) -> None:
        """Register a scanner class.

        Raises:
            RegistrationError: If the scanner name is taken, a rule targets a
                resource type the scanner does not own, or a rule id is
                already registered
        """
        name = scanner_cls.get_name()
        if name in self._scanners:
            raise RegistrationError(
                f"Scanner {name} is already registered",
                error_code="duplicate_scanner",
                details={"scanner": name},
            )

        owned_types = {t.lower() for t in scanner_cls.get_resource_types()}
        if not owned_types:
            raise RegistrationError(
                f"Scanner {name} does not declare any resource types",
                error_code="missing_resource_types",
                details={"scanner": name},
            )

        rule_ids: list[str] = []
        for rule in scanner_cls.get_recommendations():
            if rule.resource_type.lower() not in owned_types:
                raise RegistrationError(
                    f"Rule {rule.recommendation_id} targets {rule.resource_type}, "
                    f"which scanner {name} does not own",
                    error_code="rule_type_mismatch",
                    details={"scanner": name, "rule_id": rule.recommendation_id},
                )
            owner = self._rule_owners.get(rule.recommendation_id)
            if owner is not None or rule.recommendation_id in rule_ids:
                raise RegistrationError(
                    f"Rule id {rule.recommendation_id} is already registered"
                    f" by {owner or name}",
                    error_code="duplicate_rule_id",
                    details={"scanner": name, "rule_id": rule.recommendation_id},
                )
            rule_ids.append(rule.recommendation_id)

        self._scanners[name] = scanner_cls
        for rule_id in rule_ids:
            self._rule_owners[rule_id] = name
        logger.debug(f"Registered scanner {name} with {len(rule_ids)} rules")

    def get_scanner(self, name: str) -> type[BaseScanner] | None:
        return self._scanners.get(name)

    def get_all_scanners(self) -> list[type[BaseScanner]]:
        """Get every registered scanner class in registration order."""
        return list(self._scanners.values())

    def get_scanners(
        self,
        include_types: list[str] | None = None,
        exclude_types: list[str] | None = None,
    ) -> list[type[BaseScanner]]:
        """Get scanner classes filtered by resource type.

        Args:
            include_types: Resource types to keep. If empty, every scanner is kept.
            exclude_types: Resource types to drop.

        Returns:
            Matching scanner classes in registration order
        """
        include = {t.lower() for t in include_types or []}
        exclude = {t.lower() for t in exclude_types or []}

        selected = []
        for scanner_cls in self._scanners.values():
            types = {t.lower() for t in scanner_cls.get_resource_types()}
            if include and not types & include:
                continue
            if types & exclude:
                continue
            selected.append(scanner_cls)
        return selected

    def rule_ids(self) -> list[str]:
        """Get every registered rule id."""
        return list(self._rule_owners)


DEFAULT_SCANNERS: tuple[type[BaseScanner], ...] = (
    AKSScanner,
    EventHubScanner,
    DatabricksScanner,
    NSGScanner,
    VirtualMachineScaleSetScanner,
    ContainerInstanceScanner,
    SignalRScanner,
    AdvisorScanner,
)


@lru_cache
def get_registry() -> ScannerRegistry:
    """Get the registry of every built-in scanner."""
    registry = ScannerRegistry()
    for scanner_cls in DEFAULT_SCANNERS:
        registry.register(scanner_cls)
    logger.info(f"Loaded {len(registry)} scanners")
    return registry
