"""
Provably Fair Utilities for Raffle Draws
Implements SHA-256 based provably fair random value generation
"""

import secrets
import hashlib
from typing import Dict, Any


def generate_server_seed() -> str:
    """Cryptographically secure server seed (64 char hex string)"""
    return secrets.token_hex(32)


def compute_proof_hash(server_seed: str, client_seed: str, nonce: str) -> str:
    """SHA-256 of "server_seed:client_seed:nonce" as hex"""
    combined = f"{server_seed}:{client_seed}:{nonce}"
    return hashlib.sha256(combined.encode()).hexdigest()


def generate_provably_fair_value(client_seed: str, nonce: str, server_seed: str = None) -> Dict[str, Any]:
    """
    Generate a provably fair 256-bit random value.

    Algorithm:
    1. Generate server_seed (64 char hex string using cryptographically secure RNG)
    2. Concatenate: "server_seed:client_seed:nonce"
    3. Compute SHA-256 hash
    4. The full 64 hex chars, read as an integer, are the random value

    Args:
        client_seed: Public seed chosen by the operator
        nonce: Request ID as string
        server_seed: Pre-committed seed (None = generate a fresh one)

    Returns:
        Dictionary containing:
        - server_seed: Server seed used (64 chars)
        - client_seed: Client seed used
        - nonce: Nonce used
        - proof_hash: Full SHA-256 hash
        - random_value: Hash as an integer (0 to 2**256 - 1)
    """
    if server_seed is None:
        server_seed = generate_server_seed()

    proof_hash = compute_proof_hash(server_seed, client_seed, nonce)

    return {
        'server_seed': server_seed,
        'client_seed': client_seed,
        'nonce': nonce,
        'proof_hash': proof_hash,
        'random_value': int(proof_hash, 16),
    }


def verify_provably_fair_value(server_seed: str, client_seed: str, nonce: str,
                               expected_hash: str, expected_random_value: int) -> bool:
    """
    Verify a provably fair value by recomputing the hash.

    Returns:
        True if verification succeeds, False otherwise
    """
    computed_hash = compute_proof_hash(server_seed, client_seed, nonce)

    if computed_hash != expected_hash:
        return False

    return int(computed_hash, 16) == expected_random_value
