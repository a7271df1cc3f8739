from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum
from typing import Optional


class Tier(StrEnum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    DAREDEVIL = "daredevil"


class Mode(StrEnum):
    PRACTICE = "practice"
    STAKE = "stake"


class Status(StrEnum):
    CREATED = "created"
    ACTIVE = "active"
    RESOLVED = "resolved"


class Resolution(StrEnum):
    CASHED_OUT = "cashed_out"
    CRASHED = "crashed"
    ABANDONED = "abandoned"
    SUPERSEDED = "superseded"


@dataclass(frozen=True)
class LaneEntry:
    multiplier: Decimal
    weight: float


@dataclass(frozen=True)
class SeedPair:
    id: str
    owner: str
    server_secret: str
    server_secret_hash: str
    client_seed: str
    round_counter: int
    tier: Tier
    mode: Mode
    wager: int
    crash_lane: int
    multiplier_table: tuple[LaneEntry, ...]
    reserve_snapshot: int
    status: Status
    resolution: Optional[Resolution]
    reached_lane: Optional[int]
    payout: Optional[int]
    created_at: str
    resolved_at: Optional[str]


@dataclass(frozen=True)
class GameHistoryRecord:
    owner: str
    seed_pair_id: str
    wager: int
    payout: int
    reached_lane: Optional[int]
    crash_lane: int
    tier: Tier
    resolution: Resolution
    id: Optional[int] = None
    created_at: Optional[str] = None


@dataclass(frozen=True)
class Player:
    owner: str
    balance: int
    total_wagered: int
    total_bets: int
