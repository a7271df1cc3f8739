from decimal import Decimal

from lanecrash.crypto.outcome import hash_server_secret
from lanecrash.engine.verify import recompute_crash_lane, verify_round
from lanecrash.schema.db import Mode, Tier

SECRET = "0123456789abcdef" * 4
TEN_PERCENT = Decimal("0.10")


def _served_lane(**overrides):
    args = dict(
        server_secret=SECRET,
        client_seed="player-seed",
        tier=Tier.HARD,
        mode=Mode.STAKE,
        wager=25,
        reserve_snapshot=5_000,
        risk_cap_fraction=TEN_PERCENT,
    )
    args.update(overrides)
    return recompute_crash_lane(**args)


def test_revealed_round_verifies():
    lane = _served_lane()
    assert verify_round(
        SECRET,
        hash_server_secret(SECRET),
        "player-seed",
        Tier.HARD,
        Mode.STAKE,
        25,
        5_000,
        lane,
        risk_cap_fraction=TEN_PERCENT,
    )


def test_wrong_commitment_fails():
    lane = _served_lane()
    assert not verify_round(
        SECRET,
        hash_server_secret("another secret"),
        "player-seed",
        Tier.HARD,
        Mode.STAKE,
        25,
        5_000,
        lane,
        risk_cap_fraction=TEN_PERCENT,
    )


def test_wrong_crash_lane_fails():
    lane = _served_lane()
    wrong = lane + 1 if lane < 6 else lane - 1
    assert not verify_round(
        SECRET,
        hash_server_secret(SECRET),
        "player-seed",
        Tier.HARD,
        Mode.STAKE,
        25,
        5_000,
        wrong,
        risk_cap_fraction=TEN_PERCENT,
    )


def test_reserve_snapshot_feeds_the_cap():
    assert _served_lane(reserve_snapshot=0) == 1
