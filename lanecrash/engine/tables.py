"""Lane tables per difficulty tier.

Every tier carries two independently tuned tables: ``practice`` for zero-stake
play and ``stake`` for real funds. Lane ``i`` (1-based) pays ``multiplier`` when
the player cashes out on it, and ``weight`` is the probability that lane ``i`` is
the crash lane.
"""

import math
from decimal import Decimal
from typing import assert_never

from lanecrash.schema.db import LaneEntry, Mode, Tier
from lanecrash.schema.errors import InvariantViolation

TABLE_VERSION = "2024.1"

WEIGHT_TOLERANCE = 1e-9


def _lanes(*pairs: tuple[str, float]) -> tuple[LaneEntry, ...]:
    return tuple(LaneEntry(Decimal(m), w) for m, w in pairs)


STAKE_TABLES: dict[Tier, tuple[LaneEntry, ...]] = {
    Tier.EASY: _lanes(
        ("1.00", 0.30),
        ("1.04", 0.25),
        ("1.09", 0.20),
        ("1.14", 0.15),
        ("1.20", 0.05),
        ("1.26", 0.05),
    ),
    Tier.MEDIUM: _lanes(
        ("1.09", 0.35),
        ("1.22", 0.25),
        ("1.41", 0.17),
        ("1.66", 0.12),
        ("1.97", 0.07),
        ("2.32", 0.04),
    ),
    Tier.HARD: _lanes(
        ("1.20", 0.40),
        ("1.45", 0.25),
        ("1.78", 0.15),
        ("2.22", 0.10),
        ("2.82", 0.06),
        ("3.58", 0.04),
    ),
    Tier.DAREDEVIL: _lanes(
        ("1.60", 0.50),
        ("2.30", 0.22),
        ("3.31", 0.13),
        ("4.77", 0.09),
        ("6.86", 0.06),
    ),
}

# Practice play is more forgiving: crash weight is pushed towards later lanes
PRACTICE_TABLES: dict[Tier, tuple[LaneEntry, ...]] = {
    Tier.EASY: _lanes(
        ("1.00", 0.25),
        ("1.05", 0.22),
        ("1.11", 0.18),
        ("1.18", 0.15),
        ("1.26", 0.10),
        ("1.35", 0.10),
    ),
    Tier.MEDIUM: _lanes(
        ("1.09", 0.30),
        ("1.22", 0.22),
        ("1.41", 0.18),
        ("1.66", 0.13),
        ("1.97", 0.10),
        ("2.32", 0.07),
    ),
    Tier.HARD: _lanes(
        ("1.20", 0.33),
        ("1.45", 0.22),
        ("1.78", 0.17),
        ("2.22", 0.12),
        ("2.82", 0.09),
        ("3.58", 0.07),
    ),
    Tier.DAREDEVIL: _lanes(
        ("1.60", 0.45),
        ("2.30", 0.20),
        ("3.31", 0.15),
        ("4.77", 0.11),
        ("6.86", 0.09),
    ),
}


def mode_for_wager(wager: int) -> Mode:
    return Mode.STAKE if wager > 0 else Mode.PRACTICE


def validate_lane_table(lanes: tuple[LaneEntry, ...]) -> None:
    if not lanes:
        raise InvariantViolation("Lane table is empty")
    previous: Decimal | None = None
    for index, lane in enumerate(lanes, start=1):
        if lane.multiplier < 1:
            raise InvariantViolation(f"Lane {index} multiplier {lane.multiplier} < 1.0")
        if previous is not None and lane.multiplier <= previous:
            raise InvariantViolation(f"Lane {index} multiplier is not strictly increasing")
        if lane.weight < 0:
            raise InvariantViolation(f"Lane {index} has a negative crash weight")
        previous = lane.multiplier
    total = math.fsum(lane.weight for lane in lanes)
    if not math.isclose(total, 1.0, rel_tol=0.0, abs_tol=WEIGHT_TOLERANCE):
        raise InvariantViolation(f"Crash weights sum to {total}, expected 1.0")


def get_lane_table(tier: Tier, mode: Mode) -> tuple[LaneEntry, ...]:
    match mode:
        case Mode.PRACTICE:
            lanes = PRACTICE_TABLES[tier]
        case Mode.STAKE:
            lanes = STAKE_TABLES[tier]
        case _:
            assert_never(mode)
    validate_lane_table(lanes)
    return lanes


def lane_table_to_json(lanes: tuple[LaneEntry, ...]) -> list[dict[str, str | float | int]]:
    return [
        {"lane": index, "multiplier": str(lane.multiplier), "weight": lane.weight}
        for index, lane in enumerate(lanes, start=1)
    ]


def lane_table_from_json(data: list[dict[str, str | float | int]]) -> tuple[LaneEntry, ...]:
    return tuple(
        LaneEntry(Decimal(str(item["multiplier"])), float(item["weight"])) for item in data
    )


def all_tables() -> dict[str, dict[str, list[dict[str, str | float | int]]]]:
    return {
        tier.value: {
            mode.value: lane_table_to_json(get_lane_table(tier, mode)) for mode in Mode
        }
        for tier in Tier
    }
