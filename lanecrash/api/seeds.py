import logging
from dataclasses import dataclass
from typing import Annotated, Optional

from fastapi import FastAPI, APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from lanecrash.database.session import (
    ActivatedSession,
    CreatedSession,
    ResolvedSession,
    SessionView,
    activate_session,
    create_session,
    get_active_session,
    get_multiplier_tables,
    resolve_session,
)
from lanecrash.engine.verify import recompute_crash_lane, verify_round
from lanecrash.helper.db_helper import DB, get_read_conn, get_tx_conn
from lanecrash.helper.jwt_helper import get_owner
from lanecrash.schema.db import Mode, Tier
from lanecrash.schema.errors import (
    AlreadyActive,
    AlreadyResolved,
    InsufficientFunds,
    InvariantViolation,
    SessionNotFound,
    ValidationError,
)

seed_app = FastAPI()

logger = logging.getLogger(__name__)

public_router = APIRouter()
protected_router = APIRouter(dependencies=[Depends(get_owner)])


@seed_app.exception_handler(InvariantViolation)
async def invariant_violation_handler(request: Request, exc: InvariantViolation):
    logger.error("Refusing to serve round: %s", exc, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Round cannot be served"})


@dataclass
class CreateReq:
    client_seed: str
    tier: str
    wager: int = 0


@dataclass
class ResolveReq:
    reached_lane: Optional[int] = None


@dataclass
class VerifyReq:
    server_secret: str
    commitment: str
    client_seed: str
    tier: Tier
    mode: Mode
    wager: int
    reserve_snapshot: int
    crash_lane: int
    round_counter: int = 0


@dataclass
class VerifyResp:
    valid: bool
    expected_crash_lane: int


@public_router.get("/multipliers")
async def list_multipliers() -> dict[str, dict[str, list[dict[str, str | float | int]]]]:
    return get_multiplier_tables()


@public_router.post("/verify")
async def verify_seed_pair(req: VerifyReq) -> VerifyResp:
    if req.mode is Mode.STAKE and req.wager <= 0:
        raise HTTPException(400, "A stake round needs a positive wager")
    expected = recompute_crash_lane(
        req.server_secret,
        req.client_seed,
        req.tier,
        req.mode,
        req.wager,
        req.reserve_snapshot,
        req.round_counter,
    )
    valid = verify_round(
        req.server_secret,
        req.commitment,
        req.client_seed,
        req.tier,
        req.mode,
        req.wager,
        req.reserve_snapshot,
        req.crash_lane,
        req.round_counter,
    )
    return VerifyResp(valid, expected)


@protected_router.post("/create", status_code=status.HTTP_201_CREATED)
async def handle_create(
    conn: Annotated[DB, Depends(get_tx_conn)],
    owner: Annotated[str, Depends(get_owner)],
    req: CreateReq,
) -> CreatedSession:
    try:
        return await create_session(conn, owner, req.client_seed, req.tier, req.wager)
    except ValidationError as e:
        raise HTTPException(400, str(e))


@protected_router.get("/active")
async def handle_active(
    conn: Annotated[DB, Depends(get_read_conn)],
    owner: Annotated[str, Depends(get_owner)],
) -> SessionView:
    try:
        return await get_active_session(conn, owner)
    except SessionNotFound:
        raise HTTPException(404, "No active seed pair found")


@protected_router.post("/{session_id}/activate")
async def handle_activate(
    conn: Annotated[DB, Depends(get_tx_conn)],
    owner: Annotated[str, Depends(get_owner)],
    session_id: str,
) -> ActivatedSession:
    try:
        return await activate_session(conn, owner, session_id)
    except InsufficientFunds:
        logger.warning("%s cannot cover the wager of %s", owner, session_id)
        raise HTTPException(422, "Insufficient Balance")
    except AlreadyResolved:
        raise HTTPException(409, "Seed pair is already resolved")
    except AlreadyActive:
        raise HTTPException(409, "Seed pair is already active")
    except SessionNotFound:
        raise HTTPException(404, "Seed pair not found")


@protected_router.post("/{session_id}/resolve")
async def handle_resolve(
    conn: Annotated[DB, Depends(get_tx_conn)],
    owner: Annotated[str, Depends(get_owner)],
    session_id: str,
    req: ResolveReq,
) -> ResolvedSession:
    try:
        return await resolve_session(conn, owner, session_id, req.reached_lane)
    except ValidationError as e:
        raise HTTPException(400, str(e))
    except InsufficientFunds:
        logger.warning("Reserve cannot cover the payout of %s", session_id)
        raise HTTPException(422, "Reserve cannot cover this payout")
    except AlreadyResolved:
        raise HTTPException(409, "Seed pair is already resolved")
    except SessionNotFound:
        raise HTTPException(404, "Seed pair not found")


seed_app.include_router(public_router)
seed_app.include_router(protected_router)
