from dataclasses import dataclass, field
from enum import Enum


class PrizeKind(str, Enum):
    SINGLE_UNIT = "single_unit"
    MULTI_UNIT = "multi_unit"
    NATIVE_CURRENCY = "native"


def native_prize_total(prize_tiers):
    """Native currency the owner must deposit for these prize tiers"""
    return sum(
        prize.amount
        for tier in prize_tiers
        for prize in tier
        if prize.kind == PrizeKind.NATIVE_CURRENCY
    )


@dataclass(frozen=True)
class PricingOption:
    price: int
    entry_count: int


@dataclass(frozen=True)
class Prize:
    kind: PrizeKind
    asset_address: str
    asset_id: int
    amount: int


@dataclass(frozen=True)
class EntryOption:
    pricing_option_index: int
    unit_count: int


@dataclass(frozen=True)
class RaffleConfig:
    cutoff_time: int
    is_minimum_entries_fixed: bool
    minimum_entries: int
    maximum_entries_per_participant: int
    pricing_options: list[PricingOption]
    prize_tiers: list[list[Prize]]
    # Accepted and stored, never applied
    discounts: list = field(default_factory=list)

    @property
    def native_prize_total(self) -> int:
        return native_prize_total(self.prize_tiers)
