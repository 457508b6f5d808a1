"""
Randomness Providers
The raffle never generates randomness itself; it asks a provider and waits
"""

import logging

from utils.provably_fair import generate_provably_fair_value, verify_provably_fair_value

from .config import RANDOMNESS_CLIENT_SEED
from .exceptions import InvalidRequestId

logger = logging.getLogger(__name__)


class RandomnessProvider:
    """Outbound side of the oracle: accepts a request, answers later"""

    def request_randomness(self, raffle_id) -> int:
        """Register a request for raffle_id and return its request id"""
        raise NotImplementedError


class ProvablyFairRandomnessProvider(RandomnessProvider):
    """
    Local oracle built on SHA-256 provably fair seeds

    Requests are only recorded on request_randomness(); the value is produced
    when fulfill() is called, so callers can observe the raffle while it waits.
    A fresh server seed is drawn per request and published with the result
    so anyone can recompute the value.
    """

    def __init__(self, client_seed=None, callback=None):
        self.client_seed = client_seed or RANDOMNESS_CLIENT_SEED
        self.callback = callback
        self.requests = {}
        self._next_request_id = 1

    def request_randomness(self, raffle_id):
        request_id = self._next_request_id
        self._next_request_id += 1

        self.requests[request_id] = {
            'raffle_id': raffle_id,
            'fulfilled': False,
            'proof': None,
        }

        logger.info(f"🎲 Randomness requested for raffle #{raffle_id} (request {request_id})")
        return request_id

    def resume_after(self, request_id):
        """Continue numbering past an id issued by an earlier provider"""
        self._next_request_id = max(self._next_request_id, request_id + 1)

    def pending_requests(self):
        return [request_id for request_id, request in self.requests.items() if not request['fulfilled']]

    def fulfill(self, request_id, server_seed=None):
        """
        Produce the random value for a request and hand it to the callback

        Args:
            request_id: Request to fulfil
            server_seed: Optional pre-committed seed (tests use this for replay)

        Returns:
            Whatever the callback returns, or the random value with no callback
        """
        request = self.requests.get(request_id)
        if request is None:
            raise InvalidRequestId(f"Request {request_id} was never issued")
        if request['fulfilled']:
            raise InvalidRequestId(f"Request {request_id} was already fulfilled")

        proof = generate_provably_fair_value(
            client_seed=f"{self.client_seed}:{request['raffle_id']}",
            nonce=str(request_id),
            server_seed=server_seed,
        )

        logger.info(f"   Proof hash: {proof['proof_hash']}")

        result = proof['random_value']
        if self.callback is not None:
            result = self.callback(request_id, proof['random_value'])

        # The published proof is only replaced once the value was accepted
        request['fulfilled'] = True
        request['proof'] = proof
        return result

    def verify(self, request_id):
        """Recompute the published proof for a fulfilled request"""
        proof = self.requests[request_id]['proof']
        if proof is None:
            return False
        return verify_provably_fair_value(
            proof['server_seed'],
            proof['client_seed'],
            proof['nonce'],
            proof['proof_hash'],
            proof['random_value'],
        )
