"""Commit-reveal primitives for a single round.

The server secret is committed to with a SHA-256 hash before the wager is
placed. The round outcome is HMAC-SHA256(secret, "<client_seed>:<round>"),
reduced to a float in [0, 1) from the first 8 hex characters of the digest.
Anyone holding the revealed secret can recompute both values.
"""

import secrets

from cryptography.hazmat.primitives import constant_time
from cryptography.hazmat.primitives.hashes import Hash, SHA256
from cryptography.hazmat.primitives.hmac import HMAC

OUTCOME_HEX_WIDTH = 8
OUTCOME_SPACE = 16**OUTCOME_HEX_WIDTH  # 2**32
SECRET_BYTES = 32


def generate_server_secret() -> str:
    return secrets.token_hex(SECRET_BYTES)


def hash_server_secret(server_secret: str) -> str:
    h = Hash(SHA256())
    h.update(server_secret.encode())
    return h.finalize().hex()


def verify_commitment(server_secret: str, commitment: str) -> bool:
    return constant_time.bytes_eq(
        hash_server_secret(server_secret).encode(), commitment.lower().encode()
    )


def round_digest(server_secret: str, client_seed: str, round_counter: int) -> str:
    h = HMAC(server_secret.encode(), SHA256())
    h.update(f"{client_seed}:{round_counter}".encode())
    return h.finalize().hex()


def derive_outcome(server_secret: str, client_seed: str, round_counter: int) -> float:
    digest = round_digest(server_secret, client_seed, round_counter)
    return int(digest[:OUTCOME_HEX_WIDTH], 16) / OUTCOME_SPACE
