"""Seed pair lifecycle: create (commit), activate (stake), resolve (reveal).

All functions run on the caller's connection and expect to be inside one
transaction (``helper.db_helper.transaction`` or the ``get_tx_conn``
dependency). A raised exception leaves the caller to roll back, so a
transition is applied completely or not at all.
"""

import logging
import secrets
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import assert_never

from lanecrash.crypto.outcome import derive_outcome, generate_server_secret, hash_server_secret
from lanecrash.engine.selector import select_crash_lane
from lanecrash.engine.tables import all_tables, get_lane_table, mode_for_wager
from lanecrash.helper.db_helper import DB
from lanecrash.schema.db import (
    GameHistoryRecord,
    LaneEntry,
    Mode,
    Resolution,
    SeedPair,
    Status,
    Tier,
)
from lanecrash.schema.errors import (
    AlreadyActive,
    AlreadyResolved,
    InvariantViolation,
    SessionNotFound,
    ValidationError,
)
from .ledger import Ledger, SqliteLedger
from .seed_pair import (
    get_open_seed_pairs,
    get_seed_pair,
    insert_seed_pair,
    mark_seed_pair_active,
    mark_seed_pair_resolved,
)

logger = logging.getLogger(__name__)

MAX_CLIENT_SEED_LENGTH = 128
# Largest value an SQLite INTEGER column can hold
MAX_AMOUNT = 2**63 - 1
ZERO = Decimal("0")


@dataclass(frozen=True)
class CreatedSession:
    session_id: str
    commitment: str
    client_seed: str
    tier: Tier
    mode: Mode
    wager: int
    crash_lane: int
    multiplier_table: tuple[LaneEntry, ...]


@dataclass(frozen=True)
class ActivatedSession:
    session_id: str
    new_balance: int


@dataclass(frozen=True)
class ResolvedSession:
    session_id: str
    server_secret: str
    commitment: str
    client_seed: str
    tier: Tier
    mode: Mode
    wager: int
    crash_lane: int
    round_counter: int
    reserve_snapshot: int
    reached_lane: int | None
    resolution: Resolution
    payout_multiplier: Decimal
    payout: int
    new_balance: int


@dataclass(frozen=True)
class SessionView:
    session_id: str
    commitment: str
    client_seed: str
    tier: Tier
    mode: Mode
    wager: int
    status: Status
    round_counter: int
    multiplier_table: tuple[LaneEntry, ...]


def parse_tier(tier: Tier | str) -> Tier:
    try:
        return Tier(tier)
    except ValueError:
        raise ValidationError(f"Unknown difficulty tier {tier!r}") from None


def _validate_owner(owner: str) -> None:
    if not isinstance(owner, str) or not owner:  # pyright: ignore[reportUnnecessaryIsInstance]
        raise ValidationError("Owner is required")


def _validate_client_seed(client_seed: str) -> None:
    if not isinstance(client_seed, str) or not client_seed:  # pyright: ignore[reportUnnecessaryIsInstance]
        raise ValidationError("Client seed is required")
    if len(client_seed) > MAX_CLIENT_SEED_LENGTH:
        raise ValidationError(
            f"Client seed must be at most {MAX_CLIENT_SEED_LENGTH} characters"
        )


def _validate_wager(wager: int) -> None:
    if isinstance(wager, bool) or not isinstance(wager, int):  # pyright: ignore[reportUnnecessaryIsInstance]
        raise ValidationError("Wager must be an integer amount")
    if wager < 0:
        raise ValidationError("Wager cannot be negative")
    if wager > MAX_AMOUNT:
        raise ValidationError(f"Wager cannot exceed {MAX_AMOUNT}")


def payout_multiplier(pair: SeedPair, reached_lane: int | None) -> Decimal:
    """Multiplier earned by cashing out on ``reached_lane``; zero on or past the crash lane."""
    if reached_lane is None or reached_lane > pair.crash_lane - 1:
        return ZERO
    return pair.multiplier_table[reached_lane - 1].multiplier


def compute_payout(wager: int, multiplier: Decimal) -> int:
    return int((Decimal(wager) * multiplier).to_integral_value(rounding=ROUND_DOWN))


def _resolution_for(pair: SeedPair, reached_lane: int | None) -> Resolution:
    if reached_lane is None:
        return Resolution.ABANDONED
    if reached_lane <= pair.crash_lane - 1:
        return Resolution.CASHED_OUT
    return Resolution.CRASHED


async def _owned_open_pair(conn: DB, owner: str, session_id: str) -> SeedPair:
    pair = await get_seed_pair(conn, session_id)
    if pair is None or pair.owner != owner:
        raise SessionNotFound(f"Seed pair {session_id} not found")
    if pair.status is Status.RESOLVED:
        raise AlreadyResolved(f"Seed pair {session_id} is already resolved")
    return pair


async def _settle(
    conn: DB,
    ledger: Ledger,
    pair: SeedPair,
    reached_lane: int | None,
    resolution: Resolution | None = None,
) -> ResolvedSession:
    staked = pair.mode is Mode.STAKE and pair.status is Status.ACTIVE
    if resolution is Resolution.SUPERSEDED or (pair.mode is Mode.STAKE and not staked):
        multiplier = ZERO
    else:
        multiplier = payout_multiplier(pair, reached_lane)
    if resolution is None:
        # an unactivated stake took no wager, so it cannot have cashed out
        resolution = (
            Resolution.ABANDONED
            if pair.mode is Mode.STAKE and not staked
            else _resolution_for(pair, reached_lane)
        )
    payout = compute_payout(pair.wager, multiplier) if staked else 0

    resolved = await mark_seed_pair_resolved(
        conn,
        pair.id,
        resolution=resolution,
        reached_lane=reached_lane,
        payout=payout,
    )

    if staked:
        if payout > 0:
            _ = await ledger.adjust_reserve(-payout)
            new_balance = await ledger.adjust_balance(pair.owner, payout)
        else:
            new_balance = await ledger.get_balance(pair.owner)
        _ = await ledger.append_history(
            GameHistoryRecord(
                owner=pair.owner,
                seed_pair_id=pair.id,
                wager=pair.wager,
                payout=payout,
                reached_lane=reached_lane,
                crash_lane=pair.crash_lane,
                tier=pair.tier,
                resolution=resolution,
            )
        )
    else:
        new_balance = await ledger.get_balance(pair.owner)

    return ResolvedSession(
        session_id=resolved.id,
        server_secret=resolved.server_secret,
        commitment=resolved.server_secret_hash,
        client_seed=resolved.client_seed,
        tier=resolved.tier,
        mode=resolved.mode,
        wager=resolved.wager,
        crash_lane=resolved.crash_lane,
        round_counter=resolved.round_counter,
        reserve_snapshot=resolved.reserve_snapshot,
        reached_lane=reached_lane,
        resolution=resolution,
        payout_multiplier=multiplier,
        payout=payout,
        new_balance=new_balance,
    )


async def create_session(
    conn: DB,
    owner: str,
    client_seed: str,
    tier: Tier | str,
    wager: int,
    *,
    ledger: Ledger | None = None,
    risk_cap_fraction: Decimal | None = None,
) -> CreatedSession:
    _validate_owner(owner)
    _validate_client_seed(client_seed)
    _validate_wager(wager)
    tier = parse_tier(tier)
    ledger = SqliteLedger(conn) if ledger is None else ledger

    for stale in await get_open_seed_pairs(conn, owner):
        _ = await _settle(conn, ledger, stale, None, Resolution.SUPERSEDED)
        logger.warning("Superseded seed pair %s of %s", stale.id, owner)

    mode = mode_for_wager(wager)
    lanes = get_lane_table(tier, mode)
    reserve = await ledger.get_reserve()
    if reserve < 0:
        raise InvariantViolation(f"Reserve balance is negative ({reserve})")

    server_secret = generate_server_secret()
    outcome = derive_outcome(server_secret, client_seed, 0)
    crash_lane = select_crash_lane(outcome, tier, mode, wager, reserve, risk_cap_fraction)

    pair = await insert_seed_pair(
        conn,
        seed_pair_id=secrets.token_hex(16),
        owner=owner,
        server_secret=server_secret,
        server_secret_hash=hash_server_secret(server_secret),
        client_seed=client_seed,
        tier=tier,
        mode=mode,
        wager=wager,
        crash_lane=crash_lane,
        multiplier_table=lanes,
        reserve_snapshot=reserve,
    )
    logger.info(
        "Created seed pair %s for %s (tier=%s mode=%s wager=%d)",
        pair.id,
        owner,
        tier,
        mode,
        wager,
    )
    return CreatedSession(
        session_id=pair.id,
        commitment=pair.server_secret_hash,
        client_seed=pair.client_seed,
        tier=pair.tier,
        mode=pair.mode,
        wager=pair.wager,
        crash_lane=pair.crash_lane,
        multiplier_table=pair.multiplier_table,
    )


async def activate_session(
    conn: DB,
    owner: str,
    session_id: str,
    *,
    ledger: Ledger | None = None,
) -> ActivatedSession:
    ledger = SqliteLedger(conn) if ledger is None else ledger
    pair = await _owned_open_pair(conn, owner, session_id)
    if pair.status is Status.ACTIVE:
        raise AlreadyActive(f"Seed pair {session_id} is already active")

    match pair.mode:
        case Mode.PRACTICE:
            new_balance = await ledger.get_balance(owner)
        case Mode.STAKE:
            new_balance = await ledger.adjust_balance(owner, -pair.wager)
            _ = await ledger.adjust_reserve(pair.wager)
            await ledger.record_wager(owner, pair.wager)
        case _:
            assert_never(pair.mode)

    await mark_seed_pair_active(conn, pair.id)
    logger.info("Activated seed pair %s for %s (wager=%d)", pair.id, owner, pair.wager)
    return ActivatedSession(session_id=pair.id, new_balance=new_balance)


async def resolve_session(
    conn: DB,
    owner: str,
    session_id: str,
    reached_lane: int | None = None,
    *,
    ledger: Ledger | None = None,
) -> ResolvedSession:
    if reached_lane is not None and (
        isinstance(reached_lane, bool) or not isinstance(reached_lane, int) or not 1 <= reached_lane <= MAX_AMOUNT  # pyright: ignore[reportUnnecessaryIsInstance]
    ):
        raise ValidationError("Reached lane must be a positive lane index")
    ledger = SqliteLedger(conn) if ledger is None else ledger
    pair = await _owned_open_pair(conn, owner, session_id)
    result = await _settle(conn, ledger, pair, reached_lane)
    logger.info(
        "Resolved seed pair %s for %s: %s (reached=%s crash=%d payout=%d)",
        pair.id,
        owner,
        result.resolution,
        reached_lane,
        pair.crash_lane,
        result.payout,
    )
    return result


async def get_active_session(conn: DB, owner: str) -> SessionView:
    open_pairs = await get_open_seed_pairs(conn, owner)
    if not open_pairs:
        raise SessionNotFound(f"No active seed pair for {owner}")
    pair = open_pairs[-1]
    return SessionView(
        session_id=pair.id,
        commitment=pair.server_secret_hash,
        client_seed=pair.client_seed,
        tier=pair.tier,
        mode=pair.mode,
        wager=pair.wager,
        status=pair.status,
        round_counter=pair.round_counter,
        multiplier_table=pair.multiplier_table,
    )


def get_multiplier_tables() -> dict[str, dict[str, list[dict[str, str | float | int]]]]:
    return all_tables()
