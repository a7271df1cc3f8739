import logging
from typing import TypeAlias
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import asqlite
from fastapi import Request
from fastapi.applications import FastAPI

from lanecrash import config

SCHEMA_PATH = Path(__file__).parents[1] / "sql" / "schema.sql"

PRAGMAS = [
    "PRAGMA journal_mode=WAL;",
    "PRAGMA synchronous=NORMAL;",
    "PRAGMA foreign_keys=ON;",
    "PRAGMA temp_store=MEMORY;",
    "PRAGMA cache_size=-2000;",  # ~2MB
]

DB: TypeAlias = asqlite.ProxiedConnection

logger = logging.getLogger(__name__)


async def create_database(db_path: Path, initial_reserve: int) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    db_path.touch()
    async with asqlite.connect(db_path.absolute().as_posix()) as conn:
        _ = await conn.executescript(SCHEMA_PATH.read_text())
        _ = await conn.execute(
            "UPDATE reserve SET balance = ? WHERE id = 1", (initial_reserve,)
        )
        await conn.commit()
    logger.info("Created database at %s (reserve=%d)", db_path, initial_reserve)


async def open_pool(
    db_path: Path | None = None,
    size: int | None = None,
    initial_reserve: int | None = None,
) -> asqlite.Pool:
    db_path = config.DB_PATH if db_path is None else db_path
    size = config.DB_POOL_SIZE if size is None else size
    if not db_path.exists():
        await create_database(
            db_path, config.INITIAL_RESERVE if initial_reserve is None else initial_reserve
        )
    pool = await asqlite.create_pool(db_path.absolute().as_posix(), size=size)
    # Only the connections created up front get the PRAGMAs here.
    for _ in range(size):
        async with pool.acquire() as conn:
            for pragma in PRAGMAS:
                _ = await conn.execute(pragma)
            await conn.commit()
    return pool


async def init_pool(app: FastAPI) -> None:
    app.state.db_pool = await open_pool()


async def close_pool(app: FastAPI) -> None:
    pool: asqlite.Pool | None = getattr(app.state, "db_pool", None)
    if pool:
        await pool.close()


@asynccontextmanager
async def transaction(pool: asqlite.Pool, immediate: bool = True) -> AsyncIterator[DB]:
    """
    Run a block inside one SQLite transaction.

    ``BEGIN IMMEDIATE`` takes the write lock up front, so concurrent transitions
    touching the same player or the reserve are serialized instead of
    interleaving their reads and writes. Any exception rolls everything back.
    """
    async with pool.acquire() as conn:
        if immediate:
            _ = await conn.execute("BEGIN IMMEDIATE;")
        else:
            _ = await conn.execute("BEGIN;")
        try:
            yield conn
        except Exception:
            _ = await conn.execute("ROLLBACK;")
            raise
        else:
            _ = await conn.execute("COMMIT;")


async def get_tx_conn(request: Request):
    pool: asqlite.Pool = request.state.parent.state.db_pool  # pyright: ignore[reportAny]
    async with transaction(pool) as conn:
        yield conn


async def get_read_conn(request: Request):
    pool: asqlite.Pool = request.state.parent.state.db_pool  # pyright: ignore[reportAny]
    async with transaction(pool, immediate=False) as conn:
        yield conn
