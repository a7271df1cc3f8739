from typing import Protocol

from lanecrash.helper.db_helper import DB
from lanecrash.schema.db import GameHistoryRecord, Player, Resolution, Tier
from lanecrash.schema.errors import InsufficientFunds


class Ledger(Protocol):
    """Player and reserve accounts the session lifecycle reads and mutates."""

    async def get_balance(self, owner: str) -> int: ...

    async def adjust_balance(self, owner: str, delta: int) -> int: ...

    async def get_reserve(self) -> int: ...

    async def adjust_reserve(self, delta: int) -> int: ...

    async def record_wager(self, owner: str, amount: int) -> None: ...

    async def append_history(self, record: GameHistoryRecord) -> int: ...

    async def list_history(
        self, owner: str, limit: int = 100, offset: int = 0
    ) -> list[GameHistoryRecord]: ...


class SqliteLedger:
    """
    Ledger on top of one asqlite connection.

    Every method runs on the caller's connection, so all mutations of one
    lifecycle transition share its transaction and roll back together.
    """

    def __init__(self, conn: DB):
        self.conn = conn

    async def _ensure_player(self, owner: str) -> None:
        _ = await self.conn.execute(
            "INSERT OR IGNORE INTO player(owner) VALUES (?)", (owner,)
        )

    async def get_player(self, owner: str) -> Player:
        row = await (
            await self.conn.execute(
                "SELECT owner, balance, total_wagered, total_bets FROM player WHERE owner = ?",
                (owner,),
            )
        ).fetchone()
        if row is None:
            return Player(owner=owner, balance=0, total_wagered=0, total_bets=0)
        return Player(
            owner=str(row[0]),
            balance=int(row[1]),
            total_wagered=int(row[2]),
            total_bets=int(row[3]),
        )

    async def get_balance(self, owner: str) -> int:
        row = await (
            await self.conn.execute(
                "SELECT COALESCE((SELECT balance FROM player WHERE owner = ?), 0)",
                (owner,),
            )
        ).fetchone()
        return int(row[0]) if row else 0

    async def adjust_balance(self, owner: str, delta: int) -> int:
        await self._ensure_player(owner)
        row = await (
            await self.conn.execute(
                "UPDATE player SET balance = balance + ? "
                "WHERE owner = ? AND balance + ? >= 0 RETURNING balance",
                (delta, owner, delta),
            )
        ).fetchone()
        if row is None:
            balance = await self.get_balance(owner)
            raise InsufficientFunds(
                f"Insufficient balance for {owner}: have {balance}, need {-delta}"
            )
        return int(row[0])

    async def get_reserve(self) -> int:
        row = await (
            await self.conn.execute("SELECT balance FROM reserve WHERE id = 1")
        ).fetchone()
        return int(row[0]) if row else 0

    async def adjust_reserve(self, delta: int) -> int:
        row = await (
            await self.conn.execute(
                "UPDATE reserve SET balance = balance + ? "
                "WHERE id = 1 AND balance + ? >= 0 RETURNING balance",
                (delta, delta),
            )
        ).fetchone()
        if row is None:
            reserve = await self.get_reserve()
            raise InsufficientFunds(
                f"Insufficient reserve: have {reserve}, need {-delta}"
            )
        return int(row[0])

    async def record_wager(self, owner: str, amount: int) -> None:
        await self._ensure_player(owner)
        _ = await self.conn.execute(
            "UPDATE player SET total_wagered = total_wagered + ?, total_bets = total_bets + 1 "
            "WHERE owner = ?",
            (amount, owner),
        )

    async def append_history(self, record: GameHistoryRecord) -> int:
        cur = await self.conn.execute(
            """
            INSERT INTO game_history(
                owner, seed_pair_id, wager, payout, reached_lane, crash_lane, tier, resolution
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                record.owner,
                record.seed_pair_id,
                record.wager,
                record.payout,
                record.reached_lane,
                record.crash_lane,
                record.tier.value,
                record.resolution.value,
            ),
        )
        row = await cur.fetchone()
        return int(row[0])

    async def list_history(
        self, owner: str, limit: int = 100, offset: int = 0
    ) -> list[GameHistoryRecord]:
        cur = await self.conn.execute(
            """
            SELECT id, owner, seed_pair_id, wager, payout, reached_lane,
                   crash_lane, tier, resolution, created_at
            FROM game_history
            WHERE owner = ?
            ORDER BY id DESC
            LIMIT ? OFFSET ?
            """,
            (owner, limit, offset),
        )
        results: list[GameHistoryRecord] = []
        for (
            hid,
            h_owner,
            seed_pair_id,
            wager,
            payout,
            reached_lane,
            crash_lane,
            tier,
            resolution,
            created_at,
        ) in await cur.fetchall():
            results.append(
                GameHistoryRecord(
                    id=int(hid),
                    owner=str(h_owner),
                    seed_pair_id=str(seed_pair_id),
                    wager=int(wager),
                    payout=int(payout),
                    reached_lane=None if reached_lane is None else int(reached_lane),
                    crash_lane=int(crash_lane),
                    tier=Tier(tier),
                    resolution=Resolution(resolution),
                    created_at=str(created_at),
                )
            )
        return results
