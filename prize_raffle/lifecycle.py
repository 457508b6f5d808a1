"""
Raffle Lifecycle
Creation, prize deposit, cancellation and every status transition

    open -> drawing -> drawn -> complete
    open -> cancelled

RaffleStateMachine.transition() is the only place a raffle's status is written.
"""

import json
import logging
import time
from dataclasses import asdict

from sqlalchemy import text

from utils.error_helpers import db_error_handler

from .config import (
    STATUS_CANCELLED,
    STATUS_COMPLETE,
    STATUS_DRAWING,
    STATUS_DRAWN,
    STATUS_OPEN,
)
from .custodian import lock_prizes, release_prizes
from .exceptions import (
    IncorrectPayment,
    InvalidRaffleStatus,
    NotOperator,
    RaffleNotEligibleForCancellation,
    RaffleNotFound,
)
from .models import PricingOption, Prize, PrizeKind, RaffleConfig, native_prize_total
from .pricing import validate_raffle_config

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    STATUS_OPEN: {STATUS_DRAWING, STATUS_CANCELLED},
    STATUS_DRAWING: {STATUS_DRAWN},
    STATUS_DRAWN: {STATUS_COMPLETE},
    STATUS_COMPLETE: set(),
    STATUS_CANCELLED: set(),
}

BOOLEAN_COLUMNS = (
    'is_minimum_entries_fixed',
    'prizes_deposited',
    'prizes_withdrawn',
    'proceeds_claimed',
)

# Columns transition() may set alongside the new status
TRANSITION_COLUMNS = {'request_id', 'random_value', 'drawn_at'}


def assert_transition(old, new, raffle_id=None):
    if new not in ALLOWED_TRANSITIONS.get(old, set()):
        raise InvalidRaffleStatus(f"Illegal raffle transition: {old} -> {new}", raffle_id=raffle_id)


def require_operator(is_operator, action):
    if not is_operator:
        raise NotOperator(f"Only an operator may {action}")


def require_status(raffle, *statuses):
    if raffle['status'] not in statuses:
        raise InvalidRaffleStatus(
            f"Raffle #{raffle['id']} is {raffle['status']}, expected {' or '.join(statuses)}",
            raffle_id=raffle['id'],
        )


class RaffleStateMachine:
    """Owns raffle rows and their status"""

    def __init__(self, engine, custodian, clock=None):
        self.engine = engine
        self.custodian = custodian
        self.clock = clock or time.time

    def now(self):
        return int(self.clock())

    def load_raffle(self, conn, raffle_id):
        """
        Load a raffle with its pricing options and prize tiers

        Raises:
            RaffleNotFound: if no raffle has this id
        """
        row = conn.execute(text("""
            SELECT * FROM raffles WHERE id = :raffle_id
        """), {'raffle_id': raffle_id}).fetchone()

        if not row:
            raise RaffleNotFound(f"Raffle #{raffle_id} not found", raffle_id=raffle_id)

        raffle = dict(row._mapping)
        for column in BOOLEAN_COLUMNS:
            raffle[column] = bool(raffle[column])
        raffle['discounts'] = json.loads(raffle['discounts'] or '[]')
        if raffle['random_value'] is not None:
            raffle['random_value'] = int(raffle['random_value'])

        pricing = conn.execute(text("""
            SELECT price, entry_count FROM raffle_pricing_options
            WHERE raffle_id = :raffle_id
            ORDER BY option_index
        """), {'raffle_id': raffle_id})
        raffle['pricing_options'] = [PricingOption(price=row[0], entry_count=row[1]) for row in pricing]

        prizes = conn.execute(text("""
            SELECT tier_index, kind, asset_address, asset_id, amount FROM raffle_prizes
            WHERE raffle_id = :raffle_id
            ORDER BY tier_index, position
        """), {'raffle_id': raffle_id})

        prize_tiers = []
        for tier_index, kind, asset_address, asset_id, amount in prizes:
            if tier_index == len(prize_tiers):
                prize_tiers.append([])
            prize_tiers[tier_index].append(
                Prize(kind=PrizeKind(kind), asset_address=asset_address, asset_id=asset_id, amount=amount)
            )
        raffle['prize_tiers'] = prize_tiers

        return raffle

    def transition(self, conn, raffle, new_status, **fields):
        """
        Move a raffle to new_status, optionally setting request_id, random_value or drawn_at

        The UPDATE is guarded on the status the raffle was loaded with, so a
        stale raffle dict can never overwrite a newer status.
        """
        assert_transition(raffle['status'], new_status, raffle_id=raffle['id'])

        unknown = set(fields) - TRANSITION_COLUMNS
        if unknown:
            raise ValueError(f"transition() cannot set {sorted(unknown)}")

        assignments = ''.join(f", {column} = :{column}" for column in fields)
        result = conn.execute(text(f"""
            UPDATE raffles
            SET status = :new_status{assignments}
            WHERE id = :raffle_id AND status = :old_status
        """), {
            'raffle_id': raffle['id'],
            'new_status': new_status,
            'old_status': raffle['status'],
            **fields
        })

        if result.rowcount != 1:
            raise InvalidRaffleStatus(f"Raffle #{raffle['id']} changed status concurrently", raffle_id=raffle['id'])

        logger.info(f"Raffle #{raffle['id']}: {raffle['status']} -> {new_status}")
        raffle['status'] = new_status
        raffle.update(fields)

    def draw_threshold_reached(self, raffle, entries_sold):
        """A fixed-minimum raffle draws the moment its minimum is sold"""
        return raffle['is_minimum_entries_fixed'] and entries_sold >= raffle['minimum_entries']

    @db_error_handler
    def create_raffle(self, config: RaffleConfig, owner, is_operator=False):
        """
        Validate and store a new Open raffle

        Args:
            config: RaffleConfig
            owner: Account that deposits the prizes and receives proceeds
            is_operator: Caller holds the operator capability

        Returns:
            int: New raffle id
        """
        require_operator(is_operator, "create a raffle")
        now = self.now()
        validate_raffle_config(config, now)

        with self.engine.begin() as conn:
            raffle_id = conn.execute(text("SELECT COALESCE(MAX(id), 0) + 1 FROM raffles")).scalar()

            conn.execute(text("""
                INSERT INTO raffles
                    (id, owner, cutoff_time, is_minimum_entries_fixed, minimum_entries,
                     maximum_entries_per_participant, discounts, status, entries_sold, created_at)
                VALUES
                    (:id, :owner, :cutoff_time, :is_minimum_entries_fixed, :minimum_entries,
                     :maximum_entries_per_participant, :discounts, :status, 0, :created_at)
            """), {
                'id': raffle_id,
                'owner': owner,
                'cutoff_time': config.cutoff_time,
                'is_minimum_entries_fixed': config.is_minimum_entries_fixed,
                'minimum_entries': config.minimum_entries,
                'maximum_entries_per_participant': config.maximum_entries_per_participant,
                'discounts': json.dumps(config.discounts),
                'status': STATUS_OPEN,
                'created_at': now,
            })

            conn.execute(text("""
                INSERT INTO raffle_pricing_options (raffle_id, option_index, price, entry_count)
                VALUES (:raffle_id, :option_index, :price, :entry_count)
            """), [
                {'raffle_id': raffle_id, 'option_index': i, 'price': option.price, 'entry_count': option.entry_count}
                for i, option in enumerate(config.pricing_options)
            ])

            conn.execute(text("""
                INSERT INTO raffle_prizes (raffle_id, tier_index, position, kind, asset_address, asset_id, amount)
                VALUES (:raffle_id, :tier_index, :position, :kind, :asset_address, :asset_id, :amount)
            """), [
                {
                    'raffle_id': raffle_id,
                    'tier_index': tier_index,
                    'position': position,
                    'kind': PrizeKind(prize.kind).value,
                    'asset_address': prize.asset_address,
                    'asset_id': prize.asset_id,
                    'amount': prize.amount,
                }
                for tier_index, tier in enumerate(config.prize_tiers)
                for position, prize in enumerate(tier)
            ])

        logger.info(
            f"✅ Created raffle #{raffle_id}: {len(config.prize_tiers)} prize tier(s), "
            f"minimum {config.minimum_entries} entries, cutoff {config.cutoff_time}"
        )
        return raffle_id

    @db_error_handler
    def deposit_prizes(self, raffle_id, native_amount=0, is_operator=False):
        """
        Lock every prize of an Open raffle with the custodian

        native_amount must equal the raffle's total native-currency prizes.
        Entries can only be bought once prizes are deposited.
        """
        require_operator(is_operator, "deposit prizes")

        prizes = None
        try:
            with self.engine.begin() as conn:
                raffle = self.load_raffle(conn, raffle_id)
                require_status(raffle, STATUS_OPEN)
                if raffle['prizes_deposited']:
                    raise InvalidRaffleStatus(f"Raffle #{raffle_id} prizes already deposited", raffle_id=raffle_id)

                expected = native_prize_total(raffle['prize_tiers'])
                if native_amount != expected:
                    raise IncorrectPayment(
                        f"Raffle #{raffle_id} needs {expected} native currency deposited, got {native_amount}",
                        raffle_id=raffle_id,
                    )

                conn.execute(text("""
                    UPDATE raffles SET prizes_deposited = :deposited WHERE id = :raffle_id
                """), {'raffle_id': raffle_id, 'deposited': True})

                # Custody moves last; everything before it rolls back with the transaction
                deposit = [prize for tier in raffle['prize_tiers'] for prize in tier]
                lock_prizes(self.custodian, raffle_id, deposit, raffle['owner'])
                prizes = deposit
        except Exception:
            # Commit failed after the prizes were locked: hand them back
            if prizes is not None:
                release_prizes(self.custodian, raffle_id, prizes, raffle['owner'])
            raise

        logger.info(f"✅ Prizes deposited for raffle #{raffle_id}")
        return True

    @db_error_handler
    def cancel(self, raffle_id, is_operator=False):
        """
        Cancel an Open raffle whose cutoff passed without reaching its minimum
        """
        require_operator(is_operator, "cancel a raffle")

        with self.engine.begin() as conn:
            raffle = self.load_raffle(conn, raffle_id)
            require_status(raffle, STATUS_OPEN)

            if self.now() < raffle['cutoff_time']:
                raise RaffleNotEligibleForCancellation(
                    f"Raffle #{raffle_id} cutoff has not passed", raffle_id=raffle_id
                )
            if raffle['entries_sold'] >= raffle['minimum_entries']:
                raise RaffleNotEligibleForCancellation(
                    f"Raffle #{raffle_id} reached its minimum entries", raffle_id=raffle_id
                )

            self.transition(conn, raffle, STATUS_CANCELLED)

        logger.info(f"🚫 Raffle #{raffle_id} cancelled with {raffle['entries_sold']} entries sold")
        return True

    def get_raffle(self, raffle_id):
        """
        Get a raffle with its pricing, prizes and winners

        Returns:
            dict: Raffle info (raises RaffleNotFound if missing)
        """
        with self.engine.connect() as conn:
            raffle = self.load_raffle(conn, raffle_id)
            winners = load_winners(conn, raffle_id)

        raffle['pricing_options'] = [asdict(option) for option in raffle['pricing_options']]
        raffle['prize_tiers'] = [
            [dict(asdict(prize), kind=prize.kind.value) for prize in tier]
            for tier in raffle['prize_tiers']
        ]
        raffle['winners'] = winners
        return raffle


def load_winners(conn, raffle_id):
    result = conn.execute(text("""
        SELECT tier_index, participant, entry_index, claimed
        FROM raffle_winners
        WHERE raffle_id = :raffle_id
        ORDER BY tier_index
    """), {'raffle_id': raffle_id})

    return [
        {
            'tier_index': row[0],
            'participant': row[1],
            'entry_index': row[2],
            'claimed': bool(row[3]),
        }
        for row in result
    ]
