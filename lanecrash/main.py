import logging
from contextlib import asynccontextmanager
from collections.abc import Callable, Awaitable

from fastapi import FastAPI, Request, Response

from lanecrash import config
from lanecrash.api.account import acc_app
from lanecrash.api.seeds import seed_app
from lanecrash.engine.tables import TABLE_VERSION
from lanecrash.helper.db_helper import init_pool, close_pool

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_pool(app)
    logger.info("Pool ready (db=%s, tables=%s)", config.DB_PATH, TABLE_VERSION)
    yield
    await close_pool(app)
    logger.info("Stop Server")


app = FastAPI(lifespan=lifespan)
app.mount("/seeds", seed_app)
app.mount("/account", acc_app)

@app.middleware("http")
async def attach_parent(request: Request, call_next: Callable[[Request], Awaitable[Response]]):
    request.state.parent = app
    response = await call_next(request)
    return response


@app.get("/health")
async def health():
    return {"status": "ok", "tables": TABLE_VERSION}
