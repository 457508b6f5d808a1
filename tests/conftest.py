"""
Shared fixtures for the raffle tests
Each test gets its own SQLite file, a controllable clock and an in-memory custodian
"""

import os
import sys

import pytest
from sqlalchemy import create_engine

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from prize_raffle.custodian import NATIVE_ASSET_ADDRESS, CustodyError, InMemoryCustodian
from prize_raffle.models import PricingOption, Prize, PrizeKind, RaffleConfig
from prize_raffle.raffle import RaffleService
from prize_raffle.randomness import ProvablyFairRandomnessProvider

START_TIME = 1_700_000_000
OWNER = "0xoperator"
NFT_ADDRESS = "0xnft"
MULTI_ADDRESS = "0xmulti"

# Scaled-down pricing: 10 entries for 100, 20 entries for 170
SMALL_PRICING = [PricingOption(price=100, entry_count=10), PricingOption(price=170, entry_count=20)]

# Two tiers priced in wei: 10 entries for 1e12, 20 entries for 1.7e12
WEI_PRICING = [
    PricingOption(price=1_000_000_000_000, entry_count=10),
    PricingOption(price=1_700_000_000_000, entry_count=20),
]


class FakeClock:
    def __init__(self, now=START_TIME):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class RefusingCustodian(InMemoryCustodian):
    """Refuses to lock assets of kind `refuse` (None locks everything)"""

    def __init__(self, refuse=None):
        super().__init__()
        self.refuse = refuse

    def lock(self, raffle_id, kind, asset_address, asset_id, amount, owner):
        if self.refuse is not None and PrizeKind(kind) == self.refuse:
            raise CustodyError(f"{owner} has no {self.refuse.value} to lock")
        super().lock(raffle_id, kind, asset_address, asset_id, amount, owner)


class UnreachableProvider(ProvablyFairRandomnessProvider):
    def request_randomness(self, raffle_id):
        raise ConnectionError("randomness provider unreachable")


def make_prize_tiers(native_amount=1000):
    return [
        [
            Prize(PrizeKind.SINGLE_UNIT, NFT_ADDRESS, 1, 1),
            Prize(PrizeKind.SINGLE_UNIT, NFT_ADDRESS, 2, 1),
        ],
        [
            Prize(PrizeKind.MULTI_UNIT, MULTI_ADDRESS, 1, 5),
        ],
        [
            Prize(PrizeKind.NATIVE_CURRENCY, NATIVE_ASSET_ADDRESS, 0, native_amount),
        ],
    ]


def make_config(clock, **overrides):
    values = {
        'cutoff_time': clock() + 86400,
        'is_minimum_entries_fixed': True,
        'minimum_entries': 40,
        'maximum_entries_per_participant': 40,
        'pricing_options': list(SMALL_PRICING),
        'prize_tiers': make_prize_tiers(),
        'discounts': [],
    }
    values.update(overrides)
    return RaffleConfig(**values)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'raffle.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def custodian():
    return InMemoryCustodian()


@pytest.fixture
def provider():
    return ProvablyFairRandomnessProvider(client_seed="test-seed")


@pytest.fixture
def service(engine, custodian, provider, clock):
    return RaffleService(engine, custodian=custodian, provider=provider, clock=clock)


@pytest.fixture
def open_raffle(service, clock):
    """Fixed-minimum raffle (40 entries) with prizes deposited"""
    config = make_config(clock)
    raffle_id = service.create_raffle(config, OWNER, is_operator=True)
    service.deposit_prizes(raffle_id, config.native_prize_total, is_operator=True)
    return raffle_id


@pytest.fixture
def drawing_raffle(service, open_raffle):
    """open_raffle sold out by alice and bob, awaiting randomness"""
    service.enter_raffle(open_raffle, "alice", [{'pricing_option_index': 1, 'unit_count': 1}], 170)
    service.enter_raffle(open_raffle, "bob", [{'pricing_option_index': 1, 'unit_count': 1}], 170)
    return open_raffle


@pytest.fixture
def drawn_raffle(service, provider, drawing_raffle):
    request_id = service.get_raffle(drawing_raffle)['request_id']
    provider.fulfill(request_id)
    return drawing_raffle
