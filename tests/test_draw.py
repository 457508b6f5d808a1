"""
Test randomness requests, fulfilment and winner selection
"""

import hashlib

import pytest

from conftest import OWNER, make_config
from prize_raffle.draw import select_winners, tier_entry_index
from prize_raffle.exceptions import (
    InsufficientEntries,
    InvalidRaffleStatus,
    InvalidRequestId,
    NotOperator,
    RaffleNotEligibleForDraw,
)
from prize_raffle.ledger import EntryRanges

ONE_BIG = [{'pricing_option_index': 1, 'unit_count': 1}]
DRAWING_RANGES = [(0, 20, "alice"), (20, 40, "bob")]


@pytest.fixture
def flexible_raffle(service, clock):
    """Raffle without a fixed minimum: 20 entries needed, alice holds 20"""
    config = make_config(clock, is_minimum_entries_fixed=False, minimum_entries=20)
    raffle_id = service.create_raffle(config, OWNER, is_operator=True)
    service.deposit_prizes(raffle_id, 1000, is_operator=True)
    service.enter_raffle(raffle_id, "alice", ONE_BIG, 170)
    return raffle_id


def test_reaching_fixed_minimum_requests_randomness(service, provider, drawing_raffle):
    raffle = service.get_raffle(drawing_raffle)

    assert raffle['status'] == 'drawing'
    assert raffle['entries_sold'] == 40
    assert raffle['request_id'] == 1
    assert raffle['winners'] == []
    assert provider.pending_requests() == [1]

    pending = service.get_pending_request(drawing_raffle)
    assert pending['request_id'] == 1
    assert pending['raffle_id'] == drawing_raffle
    assert pending['random_value'] is None


def test_force_draw(service, provider, flexible_raffle, clock):
    assert service.get_raffle(flexible_raffle)['status'] == 'open'

    clock.advance(86400)
    request_id = service.force_draw(flexible_raffle, is_operator=True)

    assert request_id == 1
    assert service.get_raffle(flexible_raffle)['status'] == 'drawing'


def test_force_draw_is_idempotent(service, provider, flexible_raffle, clock):
    clock.advance(86400)
    first = service.force_draw(flexible_raffle, is_operator=True)
    second = service.force_draw(flexible_raffle, is_operator=True)

    assert first == second
    assert len(provider.requests) == 1


def test_force_draw_on_drawing_fixed_raffle_returns_request(service, provider, drawing_raffle):
    assert service.force_draw(drawing_raffle, is_operator=True) == 1
    assert len(provider.requests) == 1


def test_force_draw_requires_operator(service, flexible_raffle, clock):
    clock.advance(86400)
    with pytest.raises(NotOperator):
        service.force_draw(flexible_raffle)


def test_force_draw_before_cutoff_rejected(service, flexible_raffle):
    with pytest.raises(RaffleNotEligibleForDraw):
        service.force_draw(flexible_raffle, is_operator=True)


def test_force_draw_below_minimum_rejected(service, clock):
    config = make_config(clock, is_minimum_entries_fixed=False, minimum_entries=30)
    raffle_id = service.create_raffle(config, OWNER, is_operator=True)
    service.deposit_prizes(raffle_id, 1000, is_operator=True)
    service.enter_raffle(raffle_id, "alice", ONE_BIG, 170)

    clock.advance(86400)
    with pytest.raises(RaffleNotEligibleForDraw):
        service.force_draw(raffle_id, is_operator=True)


def test_force_draw_on_fixed_raffle_rejected(service, open_raffle, clock):
    clock.advance(86400)
    with pytest.raises(RaffleNotEligibleForDraw):
        service.force_draw(open_raffle, is_operator=True)


def test_provider_callback_draws_winners(service, provider, drawn_raffle):
    raffle = service.get_raffle(drawn_raffle)

    assert raffle['status'] == 'drawn'
    assert raffle['random_value'] == provider.requests[1]['proof']['random_value']
    assert raffle['drawn_at'] is not None
    assert len(raffle['winners']) == 3
    assert service.get_pending_request(drawn_raffle) is None
    assert provider.verify(1) is True

    for winner in raffle['winners']:
        assert winner['participant'] in ("alice", "bob")
        assert winner['claimed'] is False
        assert service.entry_owner_at(drawn_raffle, winner['entry_index']) == winner['participant']


def test_split_fulfil_then_select(service, drawing_raffle):
    assert service.fulfill_randomness(1, 12345) is True

    # Fulfilled but not yet selected
    assert service.get_raffle(drawing_raffle)['status'] == 'drawing'
    assert service.get_pending_request(drawing_raffle)['random_value'] == '12345'

    winners = service.select_winners(1)
    assert winners == select_winners(12345, EntryRanges(DRAWING_RANGES), 3)
    assert service.get_winners(drawing_raffle) == winners
    assert service.get_raffle(drawing_raffle)['random_value'] == 12345


def test_fulfil_twice_rejected(service, drawing_raffle):
    service.fulfill_randomness(1, 12345)
    with pytest.raises(InvalidRequestId):
        service.fulfill_randomness(1, 67890)
    assert service.get_pending_request(drawing_raffle)['random_value'] == '12345'


def test_select_before_fulfil_rejected(service, drawing_raffle):
    with pytest.raises(InvalidRaffleStatus):
        service.select_winners(1)
    assert service.get_raffle(drawing_raffle)['status'] == 'drawing'


def test_consumed_request_rejected(service, drawing_raffle):
    service.on_fulfilled(1, 12345)
    winners = service.get_winners(drawing_raffle)

    with pytest.raises(InvalidRequestId):
        service.select_winners(1)
    with pytest.raises(InvalidRequestId):
        service.on_fulfilled(1, 67890)
    with pytest.raises(InvalidRequestId):
        service.fulfill_randomness(1, 67890)

    assert service.get_winners(drawing_raffle) == winners


def test_unknown_request_rejected(service, drawing_raffle):
    with pytest.raises(InvalidRequestId):
        service.fulfill_randomness(999, 12345)
    with pytest.raises(InvalidRequestId):
        service.select_winners(999)
    assert service.get_raffle(drawing_raffle)['status'] == 'drawing'


@pytest.mark.parametrize("random_value", [-1, True, "12345", 1.5])
def test_random_value_must_be_non_negative_int(service, drawing_raffle, random_value):
    with pytest.raises(ValueError):
        service.fulfill_randomness(1, random_value)
    assert service.get_pending_request(drawing_raffle)['random_value'] is None


def test_draw_replays_from_published_seed(service, provider, drawing_raffle):
    provider.fulfill(1, server_seed="published-seed")

    digest = hashlib.sha256(f"published-seed:test-seed:{drawing_raffle}:1".encode()).hexdigest()
    expected = select_winners(int(digest, 16), EntryRanges(DRAWING_RANGES), 3)

    assert service.get_winners(drawing_raffle) == expected


def test_tier_entry_index_formula():
    digest = hashlib.sha256(b"12345:2").hexdigest()
    assert tier_entry_index(12345, 2, 40) == int(digest, 16) % 40


def test_selection_is_deterministic():
    ranges = EntryRanges([(0, 240, "alice"), (240, 500, "bob")])
    value = 2 ** 255 + 12345

    first = select_winners(value, ranges, 3)
    assert first == select_winners(value, ranges, 3)
    assert [winner['tier_index'] for winner in first] == [0, 1, 2]
    for winner in first:
        assert 0 <= winner['entry_index'] < 500
        assert winner['participant'] == ranges.owner_at(winner['entry_index'])


def test_selection_with_replacement():
    # Two participants and three tiers: someone must win twice
    ranges = EntryRanges([(0, 1, "alice"), (1, 2, "bob")])
    for value in range(20):
        participants = [winner['participant'] for winner in select_winners(value, ranges, 3)]
        assert len(set(participants)) < len(participants)


def test_single_participant_wins_every_tier():
    ranges = EntryRanges([(0, 10, "alice")])
    assert {winner['participant'] for winner in select_winners(987654321, ranges, 5)} == {"alice"}


def test_no_entries_cannot_be_drawn():
    with pytest.raises(InsufficientEntries):
        select_winners(12345, EntryRanges([]), 3)


def test_win_probability(service, drawing_raffle):
    chances = service.get_win_probability(drawing_raffle, "alice")

    assert chances['entries'] == 20
    assert chances['total_entries'] == 40
    assert chances['tiers'] == 3
    assert chances['probability_per_tier_percent'] == pytest.approx(50.0)
    assert chances['probability_any_tier_percent'] == pytest.approx(87.5)
    assert chances['expected_wins'] == pytest.approx(1.5)
    assert chances['odds'] == "20/40"

    assert service.get_win_probability(drawing_raffle, "carol") is None


def test_simulate_draw(service, drawing_raffle):
    simulation = service.simulate_draw(drawing_raffle, num_simulations=200)

    assert simulation['num_simulations'] == 200
    assert simulation['total_entries'] == 40
    assert simulation['tiers'] == 3
    assert simulation['participants'] == 2
    assert [result['participant'] for result in simulation['results']] == ["alice", "bob"]
    assert sum(result['actual_wins'] for result in simulation['results']) == 600
    for result in simulation['results']:
        assert result['expected_wins'] == pytest.approx(300.0)

    # Simulation leaves the raffle alone
    assert service.get_raffle(drawing_raffle)['status'] == 'drawing'


def test_simulate_draw_without_entries(service, open_raffle):
    assert service.simulate_draw(open_raffle, num_simulations=10) is None


def test_second_fulfil_keeps_published_proof(service, provider, drawn_raffle):
    request_id = service.get_raffle(drawn_raffle)['request_id']
    proof = provider.requests[request_id]['proof']

    with pytest.raises(InvalidRequestId):
        provider.fulfill(request_id, server_seed="another-seed")

    assert provider.requests[request_id]['proof'] == proof
    assert proof['random_value'] == service.get_raffle(drawn_raffle)['random_value']
    assert provider.verify(request_id) is True
