"""
Claims and Settlement
Pays winners after a draw; refunds participants and returns prizes after a cancellation
"""

import logging

from sqlalchemy import text

from utils.error_helpers import db_error_handler

from .config import STATUS_CANCELLED, STATUS_COMPLETE, STATUS_DRAWN
from .custodian import NATIVE_ASSET_ADDRESS, release_prizes
from .exceptions import AlreadyClaimed, InvalidTierIndex, NotParticipant, NotWinner
from .lifecycle import load_winners, require_operator, require_status
from .models import PrizeKind

logger = logging.getLogger(__name__)


class ClaimManager:
    """Moves assets out of a raffle once its outcome is settled"""

    def __init__(self, engine, state_machine, custodian):
        self.engine = engine
        self.state_machine = state_machine
        self.custodian = custodian

    def _release_tier(self, raffle, tier_index, recipient):
        release_prizes(self.custodian, raffle['id'], raffle['prize_tiers'][tier_index], recipient)

    @db_error_handler
    def claim_prizes(self, raffle_id, participant, tier_indices):
        """
        Claim the prizes of tiers won by `participant`

        All requested tiers are checked before anything moves; a bad index
        rejects the whole claim.

        Args:
            raffle_id: Drawn or Complete raffle
            participant: Claiming account
            tier_indices: Tier indices to claim

        Returns:
            list: Tier indices claimed
        """
        tier_indices = list(tier_indices)

        with self.engine.begin() as conn:
            raffle = self.state_machine.load_raffle(conn, raffle_id)
            require_status(raffle, STATUS_DRAWN, STATUS_COMPLETE)

            winners = load_winners(conn, raffle_id)
            seen = set()
            for tier_index in tier_indices:
                if not 0 <= tier_index < len(winners):
                    raise InvalidTierIndex(f"Raffle #{raffle_id} has no tier {tier_index}", raffle_id=raffle_id)

                winner = winners[tier_index]
                if winner['participant'] != participant:
                    raise NotWinner(f"{participant} did not win tier {tier_index}", raffle_id=raffle_id)
                if winner['claimed'] or tier_index in seen:
                    raise AlreadyClaimed(f"Tier {tier_index} of raffle #{raffle_id} already claimed", raffle_id=raffle_id)
                seen.add(tier_index)

            for tier_index in tier_indices:
                conn.execute(text("""
                    UPDATE raffle_winners SET claimed = :claimed
                    WHERE raffle_id = :raffle_id AND tier_index = :tier_index
                """), {'raffle_id': raffle_id, 'tier_index': tier_index, 'claimed': True})
                winners[tier_index]['claimed'] = True

            if raffle['status'] == STATUS_DRAWN and all(winner['claimed'] for winner in winners):
                self.state_machine.transition(conn, raffle, STATUS_COMPLETE)

            # Custody moves last; everything before it rolls back with the transaction
            for tier_index in tier_indices:
                self._release_tier(raffle, tier_index, participant)

        logger.info(f"🏆 {participant} claimed tier(s) {tier_indices} of raffle #{raffle_id}")
        return tier_indices

    @db_error_handler
    def withdraw_prizes(self, raffle_id, is_operator=False):
        """
        Return every deposited prize of a cancelled raffle to its owner

        Returns:
            bool: True if prizes moved, False if there was nothing left to move
        """
        require_operator(is_operator, "withdraw prizes")

        with self.engine.begin() as conn:
            raffle = self.state_machine.load_raffle(conn, raffle_id)
            require_status(raffle, STATUS_CANCELLED)

            if not raffle['prizes_deposited'] or raffle['prizes_withdrawn']:
                logger.info(f"Raffle #{raffle_id} has no prizes left to withdraw")
                return False

            conn.execute(text("""
                UPDATE raffles SET prizes_withdrawn = :withdrawn WHERE id = :raffle_id
            """), {'raffle_id': raffle_id, 'withdrawn': True})

            for tier_index in range(len(raffle['prize_tiers'])):
                self._release_tier(raffle, tier_index, raffle['owner'])

        logger.info(f"✅ Prizes of raffle #{raffle_id} returned to {raffle['owner']}")
        return True

    @db_error_handler
    def claim_refund(self, raffle_id, participant):
        """
        Refund everything a participant paid into a cancelled raffle

        Returns:
            int: Amount refunded
        """
        with self.engine.begin() as conn:
            raffle = self.state_machine.load_raffle(conn, raffle_id)
            require_status(raffle, STATUS_CANCELLED)

            row = conn.execute(text("""
                SELECT amount_paid, refunded FROM raffle_participants
                WHERE raffle_id = :raffle_id AND participant = :participant
            """), {'raffle_id': raffle_id, 'participant': participant}).fetchone()

            if not row:
                raise NotParticipant(f"{participant} has no entries in raffle #{raffle_id}", raffle_id=raffle_id)
            amount_paid, refunded = row[0], bool(row[1])
            if refunded:
                raise AlreadyClaimed(f"{participant} was already refunded for raffle #{raffle_id}", raffle_id=raffle_id)

            conn.execute(text("""
                UPDATE raffle_participants SET refunded = :refunded
                WHERE raffle_id = :raffle_id AND participant = :participant
            """), {'raffle_id': raffle_id, 'participant': participant, 'refunded': True})

            self.custodian.release(
                raffle_id, PrizeKind.NATIVE_CURRENCY, NATIVE_ASSET_ADDRESS, 0, amount_paid, participant
            )

        logger.info(f"💸 Refunded {amount_paid} to {participant} from raffle #{raffle_id}")
        return amount_paid

    @db_error_handler
    def claim_proceeds(self, raffle_id, is_operator=False):
        """
        Pay the entry revenue of a drawn raffle to its owner, once

        Returns:
            int: Amount paid out
        """
        require_operator(is_operator, "claim proceeds")

        with self.engine.begin() as conn:
            raffle = self.state_machine.load_raffle(conn, raffle_id)
            require_status(raffle, STATUS_DRAWN, STATUS_COMPLETE)
            if raffle['proceeds_claimed']:
                raise AlreadyClaimed(f"Proceeds of raffle #{raffle_id} already claimed", raffle_id=raffle_id)

            proceeds = conn.execute(text("""
                SELECT COALESCE(SUM(amount_paid), 0) FROM raffle_participants
                WHERE raffle_id = :raffle_id
            """), {'raffle_id': raffle_id}).scalar()

            conn.execute(text("""
                UPDATE raffles SET proceeds_claimed = :claimed WHERE id = :raffle_id
            """), {'raffle_id': raffle_id, 'claimed': True})

            if proceeds:
                self.custodian.release(
                    raffle_id, PrizeKind.NATIVE_CURRENCY, NATIVE_ASSET_ADDRESS, 0, proceeds, raffle['owner']
                )

        logger.info(f"💰 Paid {proceeds} proceeds of raffle #{raffle_id} to {raffle['owner']}")
        return proceeds
