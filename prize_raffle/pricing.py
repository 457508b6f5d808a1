"""
Raffle Configuration Validation
Checks a raffle configuration once, at creation time, before anything is stored
"""

from .config import MAXIMUM_PRICING_OPTIONS, MAXIMUM_PRIZE_TIERS
from .exceptions import (
    InvalidCutoffTime,
    InvalidMaximumEntriesPerParticipant,
    InvalidMinimumEntries,
    InvalidPricingOption,
    InvalidPrize,
)
from .models import PrizeKind, RaffleConfig


def validate_pricing_options(pricing_options, minimum_entries, is_minimum_entries_fixed):
    """
    Validate the ordered list of pricing options

    Each later option must buy strictly more entries, cost strictly more in
    total and cost strictly less per entry. Unit prices are compared by cross-multiplication:
        b.price / b.entry_count < a.price / a.entry_count
        <=> b.price * a.entry_count < a.price * b.entry_count

    Raises:
        InvalidPricingOption: if any rule is broken
    """
    if not pricing_options or len(pricing_options) > MAXIMUM_PRICING_OPTIONS:
        raise InvalidPricingOption(
            f"Expected 1-{MAXIMUM_PRICING_OPTIONS} pricing options, got {len(pricing_options or [])}"
        )

    for option in pricing_options:
        if option.price <= 0 or option.entry_count <= 0:
            raise InvalidPricingOption(f"Price and entry count must be positive: {option}")

    # A fixed raffle has to be able to land exactly on its minimum
    first = pricing_options[0]
    if is_minimum_entries_fixed and minimum_entries % first.entry_count != 0:
        raise InvalidPricingOption(
            f"Minimum entries {minimum_entries} is not a multiple of {first.entry_count}"
        )

    for previous, current in zip(pricing_options, pricing_options[1:]):
        if current.entry_count <= previous.entry_count:
            raise InvalidPricingOption(
                f"Entry count must increase: {previous.entry_count} -> {current.entry_count}"
            )
        if current.price <= previous.price:
            raise InvalidPricingOption(f"Price must increase: {previous.price} -> {current.price}")
        if current.price * previous.entry_count >= previous.price * current.entry_count:
            raise InvalidPricingOption(
                f"Unit price must decrease: {previous.price}/{previous.entry_count} -> "
                f"{current.price}/{current.entry_count}"
            )


def validate_prize_tiers(prize_tiers):
    if not prize_tiers or len(prize_tiers) > MAXIMUM_PRIZE_TIERS:
        raise InvalidPrize(f"Expected 1-{MAXIMUM_PRIZE_TIERS} prize tiers, got {len(prize_tiers or [])}")

    for tier_index, tier in enumerate(prize_tiers):
        if not tier:
            raise InvalidPrize(f"Prize tier {tier_index} is empty")
        for prize in tier:
            if prize.amount <= 0:
                raise InvalidPrize(f"Prize amount must be positive in tier {tier_index}")
            if prize.kind == PrizeKind.SINGLE_UNIT and prize.amount != 1:
                raise InvalidPrize(f"Single-unit prize must have amount 1 in tier {tier_index}")


def validate_raffle_config(config: RaffleConfig, now: int) -> None:
    """
    Validate a raffle configuration

    Args:
        config: RaffleConfig to check
        now: Current unix time in seconds

    Raises:
        RaffleValidationError subclass describing the first problem found
    """
    if config.cutoff_time <= now:
        raise InvalidCutoffTime(f"Cutoff time {config.cutoff_time} is not after {now}")

    if config.minimum_entries < 1:
        raise InvalidMinimumEntries(f"Minimum entries must be at least 1, got {config.minimum_entries}")

    validate_pricing_options(
        config.pricing_options, config.minimum_entries, config.is_minimum_entries_fixed
    )

    largest = config.pricing_options[-1].entry_count
    if config.maximum_entries_per_participant < largest:
        raise InvalidMaximumEntriesPerParticipant(
            f"Maximum entries per participant {config.maximum_entries_per_participant} "
            f"is below the largest pricing option ({largest})"
        )

    validate_prize_tiers(config.prize_tiers)
