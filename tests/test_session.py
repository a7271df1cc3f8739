import asyncio
import sqlite3
from decimal import Decimal

import pytest

from lanecrash.crypto.outcome import derive_outcome, hash_server_secret
from lanecrash.database.ledger import SqliteLedger
from lanecrash.database.seed_pair import get_open_seed_pairs, get_seed_pair
from lanecrash.database.session import (
    activate_session,
    create_session,
    get_active_session,
    resolve_session,
)
from lanecrash.engine.selector import select_crash_lane
from lanecrash.engine.verify import verify_round
from lanecrash.helper.db_helper import open_pool, transaction
from lanecrash.schema.db import Mode, Resolution, Status, Tier
from lanecrash.schema.errors import (
    AlreadyActive,
    AlreadyResolved,
    InsufficientFunds,
    SessionNotFound,
    ValidationError,
)

INITIAL_RESERVE = 1_000


async def _balances(pool, owner: str) -> tuple[int, int]:
    async with transaction(pool) as conn:
        ledger = SqliteLedger(conn)
        return await ledger.get_balance(owner), await ledger.get_reserve()


async def _pair(pool, session_id: str):
    async with transaction(pool) as conn:
        return await get_seed_pair(conn, session_id)


async def test_create_practice_session_commits_to_secret(pool):
    async with transaction(pool) as conn:
        created = await create_session(conn, "alice", "my-seed", "easy", 0)
    assert created.mode is Mode.PRACTICE
    assert created.tier is Tier.EASY
    assert 1 <= created.crash_lane <= len(created.multiplier_table)

    pair = await _pair(pool, created.session_id)
    assert pair.status is Status.CREATED
    assert pair.round_counter == 0
    assert hash_server_secret(pair.server_secret) == created.commitment
    outcome = derive_outcome(pair.server_secret, "my-seed", 0)
    assert select_crash_lane(outcome, Tier.EASY, Mode.PRACTICE, 0, pair.reserve_snapshot) == created.crash_lane


async def test_create_stake_session_leaves_balances_alone(pool, fund):
    await fund("alice", 500)
    async with transaction(pool) as conn:
        created = await create_session(conn, "alice", "seed", Tier.MEDIUM, 100)
    assert created.mode is Mode.STAKE
    assert await _balances(pool, "alice") == (500, INITIAL_RESERVE)
    pair = await _pair(pool, created.session_id)
    assert pair.reserve_snapshot == INITIAL_RESERVE


@pytest.mark.parametrize(
    "tier, client_seed, wager",
    [("impossible", "seed", 0), ("easy", "", 0), ("easy", "x" * 129, 0), ("easy", "seed", -1), ("easy", "seed", 2**63)],
)
async def test_create_rejects_malformed_input(pool, tier, client_seed, wager):
    with pytest.raises(ValidationError):
        async with transaction(pool) as conn:
            await create_session(conn, "alice", client_seed, tier, wager)


async def test_second_create_supersedes_first(pool):
    async with transaction(pool) as conn:
        first = await create_session(conn, "alice", "one", "easy", 0)
    async with transaction(pool) as conn:
        second = await create_session(conn, "alice", "two", "hard", 0)

    old = await _pair(pool, first.session_id)
    assert old.status is Status.RESOLVED
    assert old.resolution is Resolution.SUPERSEDED
    assert old.payout == 0
    assert old.round_counter == 1

    async with transaction(pool) as conn:
        active = await get_active_session(conn, "alice")
    assert active.session_id == second.session_id
    assert active.status is Status.CREATED


async def test_superseding_an_activated_stake_forfeits_wager(pool, fund):
    await fund("alice", 500)
    async with transaction(pool) as conn:
        first = await create_session(conn, "alice", "one", "easy", 100)
    async with transaction(pool) as conn:
        await activate_session(conn, "alice", first.session_id)
    async with transaction(pool) as conn:
        await create_session(conn, "alice", "two", "easy", 0)
        history = await SqliteLedger(conn).list_history("alice")

    assert await _balances(pool, "alice") == (400, INITIAL_RESERVE + 100)
    assert len(history) == 1
    assert history[0].resolution is Resolution.SUPERSEDED
    assert history[0].payout == 0


async def test_open_seed_pairs_are_unique_per_owner(pool):
    async with transaction(pool) as conn:
        await create_session(conn, "alice", "one", "easy", 0)
    with pytest.raises(sqlite3.IntegrityError):
        async with transaction(pool) as conn:
            _ = await conn.execute(
                "INSERT INTO seed_pair(id, owner, server_secret, server_secret_hash, client_seed,"
                " tier, mode, wager, crash_lane, multiplier_table, reserve_snapshot)"
                " VALUES ('dup', 'alice', 'x', 'y', 'seed', 'easy', 'practice', 0, 1, '[]', 0)"
            )


async def test_activate_moves_wager_into_reserve(pool, fund):
    await fund("alice", 500)
    async with transaction(pool) as conn:
        created = await create_session(conn, "alice", "seed", "easy", 100)
    async with transaction(pool) as conn:
        activated = await activate_session(conn, "alice", created.session_id)
        player = await SqliteLedger(conn).get_player("alice")

    assert activated.new_balance == 400
    assert await _balances(pool, "alice") == (400, INITIAL_RESERVE + 100)
    assert (player.total_wagered, player.total_bets) == (100, 1)
    assert (await _pair(pool, created.session_id)).status is Status.ACTIVE


async def test_activate_without_funds_keeps_session_created(pool, fund):
    await fund("alice", 50)
    async with transaction(pool) as conn:
        created = await create_session(conn, "alice", "seed", "easy", 100)
    with pytest.raises(InsufficientFunds):
        async with transaction(pool) as conn:
            await activate_session(conn, "alice", created.session_id)

    assert await _balances(pool, "alice") == (50, INITIAL_RESERVE)
    assert (await _pair(pool, created.session_id)).status is Status.CREATED


async def test_activate_practice_touches_no_balance(pool, fund):
    await fund("alice", 70)
    async with transaction(pool) as conn:
        created = await create_session(conn, "alice", "seed", "easy", 0)
    async with transaction(pool) as conn:
        activated = await activate_session(conn, "alice", created.session_id)
    assert activated.new_balance == 70
    assert await _balances(pool, "alice") == (70, INITIAL_RESERVE)


async def test_activate_twice_is_rejected(pool):
    async with transaction(pool) as conn:
        created = await create_session(conn, "alice", "seed", "easy", 0)
    async with transaction(pool) as conn:
        await activate_session(conn, "alice", created.session_id)
    with pytest.raises(AlreadyActive):
        async with transaction(pool) as conn:
            await activate_session(conn, "alice", created.session_id)


async def test_cash_out_before_crash_lane_pays(pool, fund, fixed_crash_lane):
    fixed_crash_lane(4)
    await fund("alice", 500)
    async with transaction(pool) as conn:
        created = await create_session(conn, "alice", "seed", "easy", 100)
    async with transaction(pool) as conn:
        await activate_session(conn, "alice", created.session_id)
    async with transaction(pool) as conn:
        resolved = await resolve_session(conn, "alice", created.session_id, 2)
        history = await SqliteLedger(conn).list_history("alice")

    assert resolved.resolution is Resolution.CASHED_OUT
    assert resolved.payout_multiplier == Decimal("1.04")
    assert resolved.payout == 104
    assert resolved.new_balance == 504
    assert await _balances(pool, "alice") == (504, INITIAL_RESERVE + 100 - 104)
    assert hash_server_secret(resolved.server_secret) == resolved.commitment
    assert resolved.round_counter == 1
    assert history[0].payout == 104
    assert history[0].reached_lane == 2
    assert history[0].crash_lane == 4


async def test_easy_example_lane_one_returns_the_wager(pool, fund, fixed_crash_lane):
    fixed_crash_lane(2)
    await fund("alice", 100)
    async with transaction(pool) as conn:
        created = await create_session(conn, "alice", "seed", "easy", 100)
    async with transaction(pool) as conn:
        await activate_session(conn, "alice", created.session_id)
    async with transaction(pool) as conn:
        resolved = await resolve_session(conn, "alice", created.session_id, 1)
    assert resolved.payout_multiplier == Decimal("1.00")
    assert resolved.payout == 100


@pytest.mark.parametrize(
    "reached, resolution", [(2, Resolution.CRASHED), (5, Resolution.CRASHED), (None, Resolution.ABANDONED)]
)
async def test_reaching_crash_lane_or_abandoning_pays_nothing(
    pool, fund, fixed_crash_lane, reached, resolution
):
    fixed_crash_lane(2)
    await fund("alice", 100)
    async with transaction(pool) as conn:
        created = await create_session(conn, "alice", "seed", "easy", 100)
    async with transaction(pool) as conn:
        await activate_session(conn, "alice", created.session_id)
    async with transaction(pool) as conn:
        resolved = await resolve_session(conn, "alice", created.session_id, reached)

    assert resolved.resolution is resolution
    assert resolved.payout == 0
    assert await _balances(pool, "alice") == (0, INITIAL_RESERVE + 100)


async def test_resolve_without_activation_pays_nothing(pool, fund, fixed_crash_lane):
    fixed_crash_lane(6)
    await fund("alice", 100)
    async with transaction(pool) as conn:
        created = await create_session(conn, "alice", "seed", "easy", 100)
    async with transaction(pool) as conn:
        resolved = await resolve_session(conn, "alice", created.session_id, 3)
        history = await SqliteLedger(conn).list_history("alice")

    assert resolved.payout == 0
    assert resolved.resolution is Resolution.ABANDONED
    assert history == []
    assert await _balances(pool, "alice") == (100, INITIAL_RESERVE)


async def test_practice_resolution_reports_multiplier_without_payout(pool, fixed_crash_lane):
    fixed_crash_lane(5)
    async with transaction(pool) as conn:
        created = await create_session(conn, "alice", "seed", "easy", 0)
    async with transaction(pool) as conn:
        resolved = await resolve_session(conn, "alice", created.session_id, 3)
    assert resolved.resolution is Resolution.CASHED_OUT
    assert resolved.payout_multiplier == Decimal("1.11")
    assert resolved.payout == 0


async def test_reserve_shortfall_aborts_resolution(tmp_path, fixed_crash_lane):
    fixed_crash_lane(6)
    empty_pool = await open_pool(tmp_path / "empty.db", size=2, initial_reserve=0)
    try:
        async with transaction(empty_pool) as conn:
            await SqliteLedger(conn).adjust_balance("alice", 100)
            created = await create_session(conn, "alice", "seed", "easy", 100)
        async with transaction(empty_pool) as conn:
            await activate_session(conn, "alice", created.session_id)
        # lane 5 pays 120 but the reserve only holds the 100 wager
        with pytest.raises(InsufficientFunds):
            async with transaction(empty_pool) as conn:
                await resolve_session(conn, "alice", created.session_id, 5)

        assert await _balances(empty_pool, "alice") == (0, 100)
        assert (await _pair(empty_pool, created.session_id)).status is Status.ACTIVE
    finally:
        await empty_pool.close()


async def test_resolve_guards(pool):
    async with transaction(pool) as conn:
        created = await create_session(conn, "alice", "seed", "easy", 0)

    with pytest.raises(ValidationError):
        async with transaction(pool) as conn:
            await resolve_session(conn, "alice", created.session_id, 0)
    with pytest.raises(SessionNotFound):
        async with transaction(pool) as conn:
            await resolve_session(conn, "mallory", created.session_id, 1)
    with pytest.raises(SessionNotFound):
        async with transaction(pool) as conn:
            await resolve_session(conn, "alice", "does-not-exist", 1)

    async with transaction(pool) as conn:
        await resolve_session(conn, "alice", created.session_id, None)
    with pytest.raises(AlreadyResolved):
        async with transaction(pool) as conn:
            await resolve_session(conn, "alice", created.session_id, 1)
    with pytest.raises(AlreadyResolved):
        async with transaction(pool) as conn:
            await activate_session(conn, "alice", created.session_id)


async def test_no_active_session(pool):
    with pytest.raises(SessionNotFound):
        async with transaction(pool) as conn:
            await get_active_session(conn, "alice")


async def test_secret_is_hidden_until_resolved(pool):
    async with transaction(pool) as conn:
        created = await create_session(conn, "alice", "seed", "easy", 0)
        active = await get_active_session(conn, "alice")
    assert not hasattr(created, "server_secret")
    assert not hasattr(active, "server_secret")


async def test_concurrent_creates_leave_one_open_pair(pool):
    async def _create(client_seed: str):
        async with transaction(pool) as conn:
            return await create_session(conn, "alice", client_seed, "easy", 0)

    first, second = await asyncio.gather(_create("one"), _create("two"))
    async with transaction(pool) as conn:
        open_pairs = await get_open_seed_pairs(conn, "alice")
    assert len(open_pairs) == 1
    assert open_pairs[0].id in (first.session_id, second.session_id)


async def test_small_reserve_caps_stake_lane_at_creation(tmp_path):
    small_pool = await open_pool(tmp_path / "small.db", size=2, initial_reserve=10)
    try:
        async with transaction(small_pool) as conn:
            created = await create_session(conn, "alice", "capped", "daredevil", 100)
        pair = await _pair(small_pool, created.session_id)
    finally:
        await small_pool.close()

    assert created.crash_lane == 1
    assert pair.reserve_snapshot == 10
    assert verify_round(
        pair.server_secret,
        created.commitment,
        "capped",
        Tier.DAREDEVIL,
        Mode.STAKE,
        100,
        pair.reserve_snapshot,
        created.crash_lane,
    )


async def test_oversized_reached_lane_is_rejected(pool):
    async with transaction(pool) as conn:
        created = await create_session(conn, "alice", "seed", "easy", 0)
    with pytest.raises(ValidationError):
        async with transaction(pool) as conn:
            await resolve_session(conn, "alice", created.session_id, 2**63)
    assert (await _pair(pool, created.session_id)).status is Status.CREATED
