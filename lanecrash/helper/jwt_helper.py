import logging

from fastapi import Request, HTTPException

from lanecrash import config
from lanecrash.crypto.jwt_handler import JWTHandler

jwt_handler = JWTHandler(config.JWT_SECRET)

logger = logging.getLogger(__name__)


class AuthError(HTTPException):
    def __init__(self, detail: str = "Unauthorized", status_code: int = 401):
        super().__init__(status_code=status_code, detail=detail)


async def get_owner(
    request: Request,
) -> str:
    if not request.cookies.get("login"):
        if request.headers.get("X-API-KEY"):
            jwt_value = request.headers["X-API-KEY"]
        else:
            raise AuthError("Not logged in")
    else:
        jwt_value = request.cookies["login"]
    try:
        jwt_inner = jwt_handler.decode(jwt_value)
    except Exception:
        logger.warning("Failed to decode JWT", exc_info=True)
        raise AuthError("Invalid token")
    owner = jwt_inner.get("owner")
    if not isinstance(owner, str) or not owner:
        raise AuthError("Invalid token")
    return owner
