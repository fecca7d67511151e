"""External collaborator contracts and in-memory adapters."""

from hybridgov.integration.balances import BalanceLedger, BalanceOracle, BalanceRegistry
from hybridgov.integration.capabilities import CapabilityProvider, CapabilityRegistry
from hybridgov.integration.dispatch import (
    ActionDispatcher,
    DispatchResult,
    RecordingDispatcher,
)

__all__ = [
    "BalanceLedger",
    "BalanceOracle",
    "BalanceRegistry",
    "CapabilityProvider",
    "CapabilityRegistry",
    "ActionDispatcher",
    "DispatchResult",
    "RecordingDispatcher",
]
