import json
from typing import Any

from lanecrash.engine.tables import lane_table_from_json, lane_table_to_json
from lanecrash.helper.db_helper import DB
from lanecrash.schema.db import LaneEntry, Mode, Resolution, SeedPair, Status, Tier
from lanecrash.schema.errors import AlreadyResolved

_COLUMNS = """
    id, owner, server_secret, server_secret_hash, client_seed, round_counter,
    tier, mode, wager, crash_lane, multiplier_table, reserve_snapshot,
    status, resolution, reached_lane, payout, created_at, resolved_at
"""


def _row_to_seed_pair(row: Any) -> SeedPair:
    (
        sid,
        owner,
        server_secret,
        server_secret_hash,
        client_seed,
        round_counter,
        tier,
        mode,
        wager,
        crash_lane,
        multiplier_table,
        reserve_snapshot,
        status,
        resolution,
        reached_lane,
        payout,
        created_at,
        resolved_at,
    ) = row
    return SeedPair(
        id=str(sid),
        owner=str(owner),
        server_secret=str(server_secret),
        server_secret_hash=str(server_secret_hash),
        client_seed=str(client_seed),
        round_counter=int(round_counter),
        tier=Tier(tier),
        mode=Mode(mode),
        wager=int(wager),
        crash_lane=int(crash_lane),
        multiplier_table=lane_table_from_json(json.loads(multiplier_table)),
        reserve_snapshot=int(reserve_snapshot),
        status=Status(status),
        resolution=None if resolution is None else Resolution(resolution),
        reached_lane=None if reached_lane is None else int(reached_lane),
        payout=None if payout is None else int(payout),
        created_at=str(created_at),
        resolved_at=None if resolved_at is None else str(resolved_at),
    )


async def insert_seed_pair(
    conn: DB,
    *,
    seed_pair_id: str,
    owner: str,
    server_secret: str,
    server_secret_hash: str,
    client_seed: str,
    tier: Tier,
    mode: Mode,
    wager: int,
    crash_lane: int,
    multiplier_table: tuple[LaneEntry, ...],
    reserve_snapshot: int,
) -> SeedPair:
    row = await (
        await conn.execute(
            f"""
            INSERT INTO seed_pair(
                id, owner, server_secret, server_secret_hash, client_seed,
                tier, mode, wager, crash_lane, multiplier_table, reserve_snapshot
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING {_COLUMNS}
            """,
            (
                seed_pair_id,
                owner,
                server_secret,
                server_secret_hash,
                client_seed,
                tier.value,
                mode.value,
                wager,
                crash_lane,
                json.dumps(lane_table_to_json(multiplier_table)),
                reserve_snapshot,
            ),
        )
    ).fetchone()
    return _row_to_seed_pair(row)


async def get_seed_pair(conn: DB, seed_pair_id: str) -> SeedPair | None:
    row = await (
        await conn.execute(
            f"SELECT {_COLUMNS} FROM seed_pair WHERE id = ?", (seed_pair_id,)
        )
    ).fetchone()
    if row is None:
        return None
    return _row_to_seed_pair(row)


async def get_open_seed_pairs(conn: DB, owner: str) -> list[SeedPair]:
    cur = await conn.execute(
        f"""
        SELECT {_COLUMNS} FROM seed_pair
        WHERE owner = ? AND status != 'resolved'
        ORDER BY rowid ASC
        """,
        (owner,),
    )
    return [_row_to_seed_pair(row) for row in await cur.fetchall()]


async def mark_seed_pair_active(conn: DB, seed_pair_id: str) -> None:
    _ = await conn.execute(
        "UPDATE seed_pair SET status = 'active' WHERE id = ? AND status = 'created'",
        (seed_pair_id,),
    )


async def mark_seed_pair_resolved(
    conn: DB,
    seed_pair_id: str,
    *,
    resolution: Resolution,
    reached_lane: int | None,
    payout: int,
) -> SeedPair:
    row = await (
        await conn.execute(
            f"""
            UPDATE seed_pair
            SET status = 'resolved',
                resolution = ?,
                reached_lane = ?,
                payout = ?,
                round_counter = round_counter + 1,
                resolved_at = CURRENT_TIMESTAMP
            WHERE id = ? AND status != 'resolved'
            RETURNING {_COLUMNS}
            """,
            (resolution.value, reached_lane, payout, seed_pair_id),
        )
    ).fetchone()
    if row is None:
        raise AlreadyResolved(f"Seed pair {seed_pair_id} is already resolved")
    return _row_to_seed_pair(row)
