"""
Test raffle configuration validation
"""

import pytest

from conftest import START_TIME, WEI_PRICING, make_config, make_prize_tiers
from prize_raffle.exceptions import (
    InvalidCutoffTime,
    InvalidMaximumEntriesPerParticipant,
    InvalidMinimumEntries,
    InvalidPricingOption,
    InvalidPrize,
)
from prize_raffle.models import PricingOption, Prize, PrizeKind
from prize_raffle.pricing import validate_pricing_options, validate_raffle_config


def test_valid_config_passes(clock):
    validate_raffle_config(make_config(clock), START_TIME)


@pytest.mark.parametrize("cutoff_offset", [0, -1, -86400])
def test_cutoff_must_be_in_the_future(clock, cutoff_offset):
    config = make_config(clock, cutoff_time=START_TIME + cutoff_offset)
    with pytest.raises(InvalidCutoffTime):
        validate_raffle_config(config, START_TIME)


def test_cutoff_from_last_year_rejected(clock):
    config = make_config(clock, cutoff_time=1691876258, minimum_entries=500,
                         maximum_entries_per_participant=10, pricing_options=WEI_PRICING)
    with pytest.raises(InvalidCutoffTime):
        validate_raffle_config(config, START_TIME)


def test_equal_entry_counts_rejected():
    options = [PricingOption(1_000_000_000_000, 10), PricingOption(1_700_000_000_000, 10)]
    with pytest.raises(InvalidPricingOption):
        validate_pricing_options(options, 500, True)


def test_equal_prices_rejected():
    options = [PricingOption(1_000_000_000_000, 10), PricingOption(1_000_000_000_000, 20)]
    with pytest.raises(InvalidPricingOption):
        validate_pricing_options(options, 500, True)


@pytest.mark.parametrize("options", [
    [PricingOption(100, 10), PricingOption(200, 20)],
    [PricingOption(200, 20), PricingOption(100, 10)],
    [PricingOption(50, 5), PricingOption(150, 15), PricingOption(300, 30)],
])
def test_equal_unit_price_rejected_in_any_order(options):
    with pytest.raises(InvalidPricingOption):
        validate_pricing_options(options, 60, False)


def test_unit_price_compared_without_rounding():
    # 7/3 = 2.333.. and 14/6 = 2.333.. are equal; 13/6 = 2.1666.. is cheaper
    with pytest.raises(InvalidPricingOption):
        validate_pricing_options([PricingOption(7, 3), PricingOption(14, 6)], 6, False)
    validate_pricing_options([PricingOption(7, 3), PricingOption(13, 6)], 6, False)


def test_valid_lists_have_strictly_decreasing_unit_price():
    lists = [
        WEI_PRICING,
        [PricingOption(100, 10), PricingOption(170, 20)],
        [PricingOption(10, 1), PricingOption(45, 5), PricingOption(80, 10), PricingOption(700, 100)],
    ]
    for options in lists:
        validate_pricing_options(options, 100, True)
        for previous, current in zip(options, options[1:]):
            assert current.price / current.entry_count < previous.price / previous.entry_count


def test_empty_pricing_rejected():
    with pytest.raises(InvalidPricingOption):
        validate_pricing_options([], 10, False)


def test_too_many_pricing_options_rejected():
    options = [PricingOption(10 * n - n // 2, 10 * n) for n in range(1, 8)]
    with pytest.raises(InvalidPricingOption):
        validate_pricing_options(options, 10, False)


def test_non_positive_price_rejected():
    with pytest.raises(InvalidPricingOption):
        validate_pricing_options([PricingOption(0, 10)], 10, False)


def test_fixed_minimum_must_be_reachable():
    # Minimum 5 with a first tier of 10 entries can never be hit exactly
    with pytest.raises(InvalidPricingOption):
        validate_pricing_options(WEI_PRICING, 5, True)
    # Not fixed: the minimum is only a threshold
    validate_pricing_options(WEI_PRICING, 5, False)


def test_minimum_entries_at_least_one(clock):
    with pytest.raises(InvalidMinimumEntries):
        validate_raffle_config(make_config(clock, minimum_entries=0), START_TIME)


def test_maximum_per_participant_covers_largest_tier(clock):
    config = make_config(clock, maximum_entries_per_participant=19)
    with pytest.raises(InvalidMaximumEntriesPerParticipant):
        validate_raffle_config(config, START_TIME)


def test_prize_tiers_required(clock):
    with pytest.raises(InvalidPrize):
        validate_raffle_config(make_config(clock, prize_tiers=[]), START_TIME)


def test_empty_prize_tier_rejected(clock):
    tiers = make_prize_tiers() + [[]]
    with pytest.raises(InvalidPrize):
        validate_raffle_config(make_config(clock, prize_tiers=tiers), START_TIME)


def test_single_unit_prize_amount_must_be_one(clock):
    tiers = [[Prize(PrizeKind.SINGLE_UNIT, "0xnft", 7, 2)]]
    with pytest.raises(InvalidPrize):
        validate_raffle_config(make_config(clock, prize_tiers=tiers), START_TIME)


def test_discounts_are_accepted_untouched(clock):
    config = make_config(clock, discounts=[{'code': 'anything', 'percent': 90}])
    validate_raffle_config(config, START_TIME)
