"""Built-in resource-type scanners."""

from azqr.scanners.services.advisor import AdvisorScanner
from azqr.scanners.services.aks import AKSScanner
from azqr.scanners.services.ci import ContainerInstanceScanner
from azqr.scanners.services.dbw import DatabricksScanner
from azqr.scanners.services.evh import EventHubScanner
from azqr.scanners.services.nsg import NSGScanner
from azqr.scanners.services.sigr import SignalRScanner
from azqr.scanners.services.vmss import VirtualMachineScaleSetScanner

__all__ = [
    "AdvisorScanner",
    "AKSScanner",
    "ContainerInstanceScanner",
    "DatabricksScanner",
    "EventHubScanner",
    "NSGScanner",
    "SignalRScanner",
    "VirtualMachineScaleSetScanner",
]
