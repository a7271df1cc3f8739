import logging
from decimal import Decimal
from typing import assert_never

from lanecrash import config
from lanecrash.schema.db import LaneEntry, Mode, Tier
from lanecrash.schema.errors import InvariantViolation
from .tables import get_lane_table

logger = logging.getLogger(__name__)


def naive_crash_lane(outcome: float, lanes: tuple[LaneEntry, ...]) -> int:
    """First lane whose cumulative crash weight reaches ``outcome`` (1-based).

    Falls back to the last lane when float accumulation stops short of 1.0.
    """
    if not 0.0 <= outcome < 1.0:
        raise InvariantViolation(f"Outcome {outcome!r} is outside [0, 1)")
    cumulative = 0.0
    for index, lane in enumerate(lanes, start=1):
        cumulative += lane.weight
        if cumulative >= outcome:
            return index
    return len(lanes)


def apply_risk_cap(
    naive_lane: int,
    lanes: tuple[LaneEntry, ...],
    wager: int,
    reserve: int,
    risk_cap_fraction: Decimal,
) -> int:
    """Lower ``naive_lane`` until its payout fits inside the reserve cap.

    Never returns a lane above ``naive_lane``; lane 1 when nothing fits.
    """
    if wager <= 0:
        raise InvariantViolation("Risk cap applied to a non-positive wager")
    max_payout = risk_cap_fraction * Decimal(reserve)
    stake = Decimal(wager)
    if lanes[naive_lane - 1].multiplier * stake <= max_payout:
        return naive_lane
    for index in range(naive_lane - 1, 0, -1):
        if lanes[index - 1].multiplier * stake <= max_payout:
            return index
    return 1


def select_crash_lane(
    outcome: float,
    tier: Tier,
    mode: Mode,
    wager: int,
    reserve: int,
    risk_cap_fraction: Decimal | None = None,
) -> int:
    lanes = get_lane_table(tier, mode)
    naive = naive_crash_lane(outcome, lanes)
    match mode:
        case Mode.PRACTICE:
            return naive
        case Mode.STAKE:
            fraction = config.RISK_CAP_FRACTION if risk_cap_fraction is None else risk_cap_fraction
            capped = apply_risk_cap(naive, lanes, wager, reserve, fraction)
            if capped != naive:
                logger.info(
                    "Risk cap lowered crash lane %d -> %d (tier=%s wager=%d reserve=%d)",
                    naive,
                    capped,
                    tier,
                    wager,
                    reserve,
                )
            return capped
        case _:
            assert_never(mode)
