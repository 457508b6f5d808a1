"""
Prize Raffle Package
Tiered-price entry raffles with externally randomised, per-tier winner draws
"""

__version__ = "1.0.0"

# Export main components
from .raffle import RaffleService
from .lifecycle import RaffleStateMachine
from .ledger import EntryLedger, EntryRanges
from .draw import DrawCoordinator, WinnerSelector, select_winners
from .claims import ClaimManager
from .custodian import AssetCustodian, InMemoryCustodian
from .randomness import RandomnessProvider, ProvablyFairRandomnessProvider
from .models import EntryOption, PricingOption, Prize, PrizeKind, RaffleConfig

__all__ = [
    'RaffleService',
    'RaffleStateMachine',
    'EntryLedger',
    'EntryRanges',
    'DrawCoordinator',
    'WinnerSelector',
    'select_winners',
    'ClaimManager',
    'AssetCustodian',
    'InMemoryCustodian',
    'RandomnessProvider',
    'ProvablyFairRandomnessProvider',
    'EntryOption',
    'PricingOption',
    'Prize',
    'PrizeKind',
    'RaffleConfig',
]
