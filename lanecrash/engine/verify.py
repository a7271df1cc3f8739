from decimal import Decimal

from lanecrash.crypto.outcome import derive_outcome, verify_commitment
from lanecrash.schema.db import Mode, Tier
from .selector import select_crash_lane


def recompute_crash_lane(
    server_secret: str,
    client_seed: str,
    tier: Tier,
    mode: Mode,
    wager: int,
    reserve_snapshot: int,
    round_counter: int = 0,
    risk_cap_fraction: Decimal | None = None,
) -> int:
    outcome = derive_outcome(server_secret, client_seed, round_counter)
    return select_crash_lane(
        outcome, tier, mode, wager, reserve_snapshot, risk_cap_fraction
    )


def verify_round(
    server_secret: str,
    commitment: str,
    client_seed: str,
    tier: Tier,
    mode: Mode,
    wager: int,
    reserve_snapshot: int,
    crash_lane: int,
    round_counter: int = 0,
    risk_cap_fraction: Decimal | None = None,
) -> bool:
    """
    Check a revealed round: the secret must match the commitment issued at
    creation and must reproduce the crash lane that was served.
    """
    if not verify_commitment(server_secret, commitment):
        return False
    expected = recompute_crash_lane(
        server_secret,
        client_seed,
        tier,
        mode,
        wager,
        reserve_snapshot,
        round_counter,
        risk_cap_fraction,
    )
    return expected == crash_lane
