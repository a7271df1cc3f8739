import os

os.environ.setdefault("JWT_SECRET", "test-secret-key-for-lanecrash-tests-only")
os.environ.setdefault("RISK_CAP_FRACTION", "0.10")

import pytest

from lanecrash.database.ledger import SqliteLedger
from lanecrash.helper.db_helper import open_pool, transaction

INITIAL_RESERVE = 1_000


@pytest.fixture
async def pool(tmp_path):
    db_pool = await open_pool(tmp_path / "lanecrash.db", size=2, initial_reserve=INITIAL_RESERVE)
    yield db_pool
    await db_pool.close()


@pytest.fixture
def fund(pool):
    async def _fund(owner: str, amount: int) -> int:
        async with transaction(pool) as conn:
            return await SqliteLedger(conn).adjust_balance(owner, amount)

    return _fund


@pytest.fixture
def fixed_crash_lane(monkeypatch):
    """Pin the crash lane chosen at creation so payouts are predictable."""

    def _pin(lane: int) -> None:
        monkeypatch.setattr(
            "lanecrash.database.session.select_crash_lane",
            lambda *args, **kwargs: lane,
        )

    return _pin
