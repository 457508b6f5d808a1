"""
Raffle Service
Single entry point for operators, participants, the randomness provider and queries
"""

import logging

from sqlalchemy import text

from .claims import ClaimManager
from .custodian import InMemoryCustodian
from .database import setup_raffle_database
from .draw import DrawCoordinator
from .ledger import EntryLedger
from .lifecycle import RaffleStateMachine, load_winners
from .randomness import ProvablyFairRandomnessProvider

logger = logging.getLogger(__name__)


class RaffleService:
    """
    Wires the raffle components together

    Args:
        engine: SQLAlchemy engine instance
        custodian: AssetCustodian (default InMemoryCustodian)
        provider: RandomnessProvider (default ProvablyFairRandomnessProvider)
        clock: Callable returning unix seconds (default time.time)
        setup_schema: Create tables on start
    """

    def __init__(self, engine, custodian=None, provider=None, clock=None, setup_schema=True):
        self.engine = engine
        self.custodian = custodian or InMemoryCustodian()
        self.provider = provider or ProvablyFairRandomnessProvider()

        # Local providers answer straight into the coordinator
        if getattr(self.provider, 'callback', False) is None:
            self.provider.callback = self.on_fulfilled

        if setup_schema and not setup_raffle_database(engine):
            raise RuntimeError("Failed to setup raffle database schema")

        self.state_machine = RaffleStateMachine(engine, self.custodian, clock=clock)
        self.coordinator = DrawCoordinator(engine, self.state_machine, self.provider)
        self.ledger = EntryLedger(engine, self.state_machine, self.coordinator, self.custodian)
        self.claims = ClaimManager(engine, self.state_machine, self.custodian)

        # A fresh local provider must not reissue ids already stored by an earlier run
        if hasattr(self.provider, 'resume_after'):
            self.provider.resume_after(self.coordinator.last_request_id())

        logger.debug(f"Raffle service ready (custodian={type(self.custodian).__name__}, "
                     f"provider={type(self.provider).__name__})")

    # ---------- Operator API ----------

    def create_raffle(self, config, owner, is_operator=False):
        return self.state_machine.create_raffle(config, owner, is_operator=is_operator)

    def deposit_prizes(self, raffle_id, native_amount=0, is_operator=False):
        return self.state_machine.deposit_prizes(raffle_id, native_amount, is_operator=is_operator)

    def cancel(self, raffle_id, is_operator=False):
        return self.state_machine.cancel(raffle_id, is_operator=is_operator)

    def force_draw(self, raffle_id, is_operator=False):
        return self.coordinator.force_draw(raffle_id, is_operator=is_operator)

    def withdraw_prizes(self, raffle_id, is_operator=False):
        return self.claims.withdraw_prizes(raffle_id, is_operator=is_operator)

    def claim_proceeds(self, raffle_id, is_operator=False):
        return self.claims.claim_proceeds(raffle_id, is_operator=is_operator)

    # ---------- Participant API ----------

    def enter_raffle(self, raffle_id, participant, entries, payment):
        return self.ledger.enter_raffle(raffle_id, participant, entries, payment)

    def claim_prizes(self, raffle_id, participant, tier_indices):
        return self.claims.claim_prizes(raffle_id, participant, tier_indices)

    def claim_refund(self, raffle_id, participant):
        return self.claims.claim_refund(raffle_id, participant)

    # ---------- Randomness provider API ----------

    def fulfill_randomness(self, request_id, random_value):
        return self.coordinator.fulfill_randomness(request_id, random_value)

    def select_winners(self, request_id):
        return self.coordinator.select_winners(request_id)

    def on_fulfilled(self, request_id, random_value):
        return self.coordinator.on_fulfilled(request_id, random_value)

    # ---------- Query API ----------

    def get_raffle(self, raffle_id):
        return self.state_machine.get_raffle(raffle_id)

    def get_winners(self, raffle_id):
        with self.engine.connect() as conn:
            self.state_machine.load_raffle(conn, raffle_id)
            return load_winners(conn, raffle_id)

    def get_entries(self, raffle_id, participant):
        return self.ledger.get_entries(raffle_id, participant)

    def entry_owner_at(self, raffle_id, index):
        return self.ledger.entry_owner_at(raffle_id, index)

    def get_win_probability(self, raffle_id, participant):
        return self.coordinator.get_win_probability(raffle_id, participant)

    def simulate_draw(self, raffle_id, num_simulations=None):
        return self.coordinator.simulate_draw(raffle_id, num_simulations)

    def get_pending_request(self, raffle_id):
        """Outstanding randomness request for a raffle, or None"""
        with self.engine.connect() as conn:
            row = conn.execute(text("""
                SELECT request_id, raffle_id, random_value, requested_at, fulfilled_at
                FROM raffle_randomness_requests
                WHERE raffle_id = :raffle_id
            """), {'raffle_id': raffle_id}).fetchone()
        return dict(row._mapping) if row else None
