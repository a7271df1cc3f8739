from typing import Annotated

from fastapi import FastAPI, APIRouter, Depends, Query

from lanecrash.database.ledger import SqliteLedger
from lanecrash.helper.db_helper import DB, get_read_conn
from lanecrash.helper.jwt_helper import get_owner
from lanecrash.schema.db import GameHistoryRecord, Player

acc_app = FastAPI()

protected_router = APIRouter(dependencies=[Depends(get_owner)])


@protected_router.get("/balance")
async def get_balance(
    conn: Annotated[DB, Depends(get_read_conn)],
    owner: Annotated[str, Depends(get_owner)],
) -> Player:
    return await SqliteLedger(conn).get_player(owner)


@protected_router.get("/history")
async def list_history(
    conn: Annotated[DB, Depends(get_read_conn)],
    owner: Annotated[str, Depends(get_owner)],
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[GameHistoryRecord]:
    return await SqliteLedger(conn).list_history(owner, limit=limit, offset=offset)


acc_app.include_router(protected_router)
