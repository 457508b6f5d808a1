"""
Raffle Draw Logic
Maps one external random value to one winner per prize tier

For tier i the winning entry is
    sha256(f"{random_value}:{i}") % entries_sold
and its owner is found in the entry ledger. Tiers are independent draws, so
the same participant can win several tiers (selection with replacement).
"""

import hashlib
import logging
import secrets

from sqlalchemy import text

from utils.error_helpers import db_error_handler, log_exceptions

from .config import DEFAULT_SIMULATION_RUNS, STATUS_DRAWING, STATUS_DRAWN, STATUS_OPEN
from .exceptions import (
    InsufficientEntries,
    InvalidRaffleStatus,
    InvalidRequestId,
    RaffleNotEligibleForDraw,
)
from .ledger import load_entry_ranges
from .lifecycle import require_operator, require_status

logger = logging.getLogger(__name__)


def tier_entry_index(random_value, tier_index, entries_sold):
    """Winning entry index for one tier"""
    digest = hashlib.sha256(f"{random_value}:{tier_index}".encode()).hexdigest()
    return int(digest, 16) % entries_sold


def select_winners(random_value, entry_ranges, number_of_tiers):
    """
    Pick one winner per tier, in tier order

    Deterministic: the same random value over the same entry ranges always
    gives the same winners.

    Args:
        random_value: Non-negative integer from the randomness provider
        entry_ranges: EntryRanges snapshot of the raffle
        number_of_tiers: Number of prize tiers

    Returns:
        list: One winner dict per tier
    """
    entries_sold = entry_ranges.total
    if entries_sold == 0:
        raise InsufficientEntries("Cannot select winners without entries")

    winners = []
    for tier_index in range(number_of_tiers):
        entry_index = tier_entry_index(random_value, tier_index, entries_sold)
        winners.append({
            'tier_index': tier_index,
            'participant': entry_ranges.owner_at(entry_index),
            'entry_index': entry_index,
            'claimed': False,
        })
    return winners


class WinnerSelector:
    """Runs select_winners() against a raffle's stored entries"""

    def select(self, conn, raffle, random_value):
        entry_ranges = load_entry_ranges(conn, raffle['id'])
        if entry_ranges.total != raffle['entries_sold']:
            raise InsufficientEntries(
                f"Raffle #{raffle['id']} ledger holds {entry_ranges.total} entries, "
                f"expected {raffle['entries_sold']}",
                raffle_id=raffle['id'],
            )
        return select_winners(random_value, entry_ranges, len(raffle['prize_tiers']))


class DrawCoordinator:
    """
    Bridges raffles and the randomness provider

    request_id -> raffle_id lives in raffle_randomness_requests from the
    request until the winners are selected; the row is then deleted, so any
    later callback for that id is rejected.
    """

    def __init__(self, engine, state_machine, provider, selector=None):
        self.engine = engine
        self.state_machine = state_machine
        self.provider = provider
        self.selector = selector or WinnerSelector()

    def last_request_id(self):
        """Highest request id any raffle or pending request has recorded (0 if none)"""
        with self.engine.connect() as conn:
            return conn.execute(text("""
                SELECT COALESCE(MAX(request_id), 0) FROM (
                    SELECT request_id FROM raffles WHERE request_id IS NOT NULL
                    UNION ALL
                    SELECT request_id FROM raffle_randomness_requests
                ) AS issued
            """)).scalar()

    def request_draw(self, conn, raffle):
        """
        Request randomness for an Open raffle and move it to Drawing

        Calling again while the raffle is Drawing returns the outstanding
        request id without asking the provider a second time.

        Returns:
            int: Request id
        """
        if raffle['status'] == STATUS_DRAWING:
            logger.debug(f"Raffle #{raffle['id']} already awaiting request {raffle['request_id']}")
            return raffle['request_id']
        require_status(raffle, STATUS_OPEN)

        request_id = self.provider.request_randomness(raffle['id'])

        existing = conn.execute(text("""
            SELECT raffle_id FROM raffle_randomness_requests WHERE request_id = :request_id
        """), {'request_id': request_id}).fetchone()
        if existing:
            raise InvalidRequestId(f"Request {request_id} already belongs to raffle #{existing[0]}")

        conn.execute(text("""
            INSERT INTO raffle_randomness_requests (request_id, raffle_id, requested_at)
            VALUES (:request_id, :raffle_id, :requested_at)
        """), {'request_id': request_id, 'raffle_id': raffle['id'], 'requested_at': self.state_machine.now()})

        self.state_machine.transition(conn, raffle, STATUS_DRAWING, request_id=request_id)

        logger.info(f"🎲 Randomness requested for raffle #{raffle['id']} (request {request_id})")
        return request_id

    @db_error_handler
    def force_draw(self, raffle_id, is_operator=False):
        """
        Start the draw of a raffle without a fixed minimum

        Allowed after the cutoff once at least minimum_entries were sold.
        """
        require_operator(is_operator, "force a draw")

        with self.engine.begin() as conn:
            raffle = self.state_machine.load_raffle(conn, raffle_id)
            if raffle['status'] == STATUS_DRAWING:
                return raffle['request_id']
            require_status(raffle, STATUS_OPEN)

            if raffle['is_minimum_entries_fixed']:
                raise RaffleNotEligibleForDraw(
                    f"Raffle #{raffle_id} draws automatically at its minimum", raffle_id=raffle_id
                )
            if self.state_machine.now() < raffle['cutoff_time']:
                raise RaffleNotEligibleForDraw(f"Raffle #{raffle_id} cutoff has not passed", raffle_id=raffle_id)
            if raffle['entries_sold'] < raffle['minimum_entries']:
                raise RaffleNotEligibleForDraw(
                    f"Raffle #{raffle_id} sold {raffle['entries_sold']}/{raffle['minimum_entries']} entries",
                    raffle_id=raffle_id,
                )

            return self.request_draw(conn, raffle)

    def _load_request(self, conn, request_id):
        row = conn.execute(text("""
            SELECT request_id, raffle_id, random_value FROM raffle_randomness_requests
            WHERE request_id = :request_id
        """), {'request_id': request_id}).fetchone()

        if not row:
            raise InvalidRequestId(f"Unknown or consumed request {request_id}")
        return dict(row._mapping)

    def _fulfill(self, conn, request_id, random_value):
        if not isinstance(random_value, int) or isinstance(random_value, bool) or random_value < 0:
            raise ValueError(f"Random value must be a non-negative integer, got {random_value!r}")

        request = self._load_request(conn, request_id)
        if request['random_value'] is not None:
            raise InvalidRequestId(f"Request {request_id} was already fulfilled")

        conn.execute(text("""
            UPDATE raffle_randomness_requests
            SET random_value = :random_value, fulfilled_at = :fulfilled_at
            WHERE request_id = :request_id
        """), {
            'request_id': request_id,
            'random_value': str(random_value),
            'fulfilled_at': self.state_machine.now(),
        })
        logger.info(f"Randomness fulfilled for raffle #{request['raffle_id']} (request {request_id})")

    def _select(self, conn, request_id):
        request = self._load_request(conn, request_id)
        raffle = self.state_machine.load_raffle(conn, request['raffle_id'])

        if request['random_value'] is None:
            raise InvalidRaffleStatus(
                f"Request {request_id} for raffle #{raffle['id']} is not fulfilled yet", raffle_id=raffle['id']
            )
        require_status(raffle, STATUS_DRAWING)
        if raffle['request_id'] != request_id:
            raise InvalidRequestId(f"Raffle #{raffle['id']} is waiting on request {raffle['request_id']}")

        random_value = int(request['random_value'])
        with log_exceptions("selecting winners", raffle_id=raffle['id'], request_id=request_id):
            winners = self.selector.select(conn, raffle, random_value)

        conn.execute(text("""
            INSERT INTO raffle_winners (raffle_id, tier_index, participant, entry_index, claimed)
            VALUES (:raffle_id, :tier_index, :participant, :entry_index, :claimed)
        """), [dict(winner, raffle_id=raffle['id']) for winner in winners])

        conn.execute(text("""
            DELETE FROM raffle_randomness_requests WHERE request_id = :request_id
        """), {'request_id': request_id})

        self.state_machine.transition(
            conn, raffle, STATUS_DRAWN, random_value=str(random_value), drawn_at=self.state_machine.now()
        )

        logger.info(f"🎲 Drew raffle #{raffle['id']}")
        logger.info(f"   Total entries: {raffle['entries_sold']}")
        logger.info(f"   Random value: {random_value}")
        for winner in winners:
            logger.info(
                f"🎉 Tier {winner['tier_index']}: {winner['participant']} (entry #{winner['entry_index']})"
            )

        return winners

    @db_error_handler
    def fulfill_randomness(self, request_id, random_value):
        """Record the provider's answer; winners are picked by select_winners()"""
        with self.engine.begin() as conn:
            self._fulfill(conn, request_id, random_value)
        return True

    @db_error_handler
    def select_winners(self, request_id):
        """
        Pick winners for a fulfilled request and move the raffle to Drawn

        Returns:
            list: One winner dict per prize tier
        """
        with self.engine.begin() as conn:
            return self._select(conn, request_id)

    @db_error_handler
    def on_fulfilled(self, request_id, random_value):
        """Provider callback: record the value and pick winners in one step"""
        with self.engine.begin() as conn:
            self._fulfill(conn, request_id, random_value)
            return self._select(conn, request_id)

    def get_win_probability(self, raffle_id, participant):
        """
        Calculate a participant's chances in a raffle

        Returns:
            dict: Win probability info or None if the participant holds no entries
        """
        with self.engine.connect() as conn:
            raffle = self.state_machine.load_raffle(conn, raffle_id)
            entries = conn.execute(text("""
                SELECT entries_count FROM raffle_participants
                WHERE raffle_id = :raffle_id AND participant = :participant
            """), {'raffle_id': raffle_id, 'participant': participant}).scalar()

        total_entries = raffle['entries_sold']
        if not entries or total_entries == 0:
            return None

        tiers = len(raffle['prize_tiers'])
        per_tier = entries / total_entries

        return {
            'entries': entries,
            'total_entries': total_entries,
            'tiers': tiers,
            'probability_per_tier_percent': per_tier * 100,
            'probability_any_tier_percent': (1 - (1 - per_tier) ** tiers) * 100,
            'expected_wins': per_tier * tiers,
            'odds': f"{entries}/{total_entries}",
        }

    def simulate_draw(self, raffle_id, num_simulations=None):
        """
        Simulate many draws with fresh random values to check fairness

        Does not touch the raffle; works in any status once entries exist.

        Returns:
            dict: Simulation results or None if the raffle has no entries
        """
        num_simulations = num_simulations or DEFAULT_SIMULATION_RUNS

        with self.engine.connect() as conn:
            raffle = self.state_machine.load_raffle(conn, raffle_id)
            entry_ranges = load_entry_ranges(conn, raffle_id)
            holdings = conn.execute(text("""
                SELECT participant, entries_count FROM raffle_participants
                WHERE raffle_id = :raffle_id
                ORDER BY participant
            """), {'raffle_id': raffle_id}).fetchall()

        if entry_ranges.total == 0:
            return None

        tiers = len(raffle['prize_tiers'])
        wins = {participant: 0 for participant, _ in holdings}

        for _ in range(num_simulations):
            for winner in select_winners(secrets.randbits(256), entry_ranges, tiers):
                wins[winner['participant']] += 1

        results = []
        for participant, entries in holdings:
            expected_wins = entries / entry_ranges.total * num_simulations * tiers
            actual_wins = wins[participant]
            variance = ((actual_wins - expected_wins) / expected_wins * 100) if expected_wins > 0 else 0

            results.append({
                'participant': participant,
                'entries': entries,
                'expected_wins': expected_wins,
                'actual_wins': actual_wins,
                'variance_percent': variance,
            })

        return {
            'num_simulations': num_simulations,
            'total_entries': entry_ranges.total,
            'tiers': tiers,
            'participants': len(holdings),
            'results': results,
        }
