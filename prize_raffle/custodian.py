"""
Asset Custodians
The raffle decides what moves to whom; a custodian performs the movement
"""

import logging
from collections import defaultdict

from .models import PrizeKind

logger = logging.getLogger(__name__)

NATIVE_ASSET_ADDRESS = "0x0000000000000000000000000000000000000000"


class CustodyError(Exception):
    """A custodian could not perform a transfer"""


class AssetCustodian:
    """Interface the raffle core calls at deposit, entry, claim, refund and withdraw time"""

    def lock(self, raffle_id, kind, asset_address, asset_id, amount, owner):
        """Take `amount` of an asset from `owner` into the raffle's custody"""
        raise NotImplementedError

    def release(self, raffle_id, kind, asset_address, asset_id, amount, recipient):
        """Send `amount` of an asset held for the raffle to `recipient`"""
        raise NotImplementedError

    def balance_held(self, raffle_id) -> int:
        """Native currency currently held for the raffle"""
        raise NotImplementedError


class InMemoryCustodian(AssetCustodian):
    """
    Bookkeeping custodian

    Keeps what each raffle holds and what each account has received, plus a
    movement log. Releasing more than a raffle holds raises CustodyError.
    """

    def __init__(self):
        self.held = defaultdict(int)
        self.received = defaultdict(int)
        self.movements = []

    @staticmethod
    def _asset_key(kind, asset_address, asset_id):
        kind = PrizeKind(kind)
        if kind == PrizeKind.NATIVE_CURRENCY:
            return (kind, NATIVE_ASSET_ADDRESS, 0)
        return (kind, asset_address, asset_id)

    def lock(self, raffle_id, kind, asset_address, asset_id, amount, owner):
        if amount <= 0:
            raise CustodyError(f"Cannot lock non-positive amount {amount}")

        asset = self._asset_key(kind, asset_address, asset_id)
        self.held[(raffle_id,) + asset] += amount
        self.movements.append(('lock', raffle_id, asset, amount, owner))
        logger.debug(f"Locked {amount} of {asset} from {owner} for raffle #{raffle_id}")

    def release(self, raffle_id, kind, asset_address, asset_id, amount, recipient):
        asset = self._asset_key(kind, asset_address, asset_id)
        key = (raffle_id,) + asset

        if self.held[key] < amount:
            raise CustodyError(
                f"Raffle #{raffle_id} holds {self.held[key]} of {asset}, cannot release {amount}"
            )

        self.held[key] -= amount
        self.received[(recipient,) + asset] += amount
        self.movements.append(('release', raffle_id, asset, amount, recipient))
        logger.debug(f"Released {amount} of {asset} to {recipient} from raffle #{raffle_id}")

    def balance_held(self, raffle_id):
        return self.held[(raffle_id, PrizeKind.NATIVE_CURRENCY, NATIVE_ASSET_ADDRESS, 0)]

    def asset_held(self, raffle_id, kind, asset_address, asset_id):
        return self.held[(raffle_id,) + self._asset_key(kind, asset_address, asset_id)]

    def received_by(self, recipient, kind, asset_address=NATIVE_ASSET_ADDRESS, asset_id=0):
        return self.received[(recipient,) + self._asset_key(kind, asset_address, asset_id)]


def release_prizes(custodian, raffle_id, prizes, recipient):
    for prize in prizes:
        custodian.release(raffle_id, prize.kind, prize.asset_address, prize.asset_id, prize.amount, recipient)


def lock_prizes(custodian, raffle_id, prizes, owner):
    """
    Lock every prize from `owner`, or none of them

    If one lock fails, the prizes already locked are released back to the
    owner before the error is re-raised.
    """
    locked = []
    try:
        for prize in prizes:
            custodian.lock(raffle_id, prize.kind, prize.asset_address, prize.asset_id, prize.amount, owner)
            locked.append(prize)
    except Exception:
        logger.error(f"❌ Prize lock failed for raffle #{raffle_id}, returning {len(locked)} locked prize(s)")
        release_prizes(custodian, raffle_id, reversed(locked), owner)
        raise
