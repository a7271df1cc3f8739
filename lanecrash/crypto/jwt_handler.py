from typing import Final, TypeAlias
from collections.abc import Mapping, Sequence
import jwt
import time

JSON: TypeAlias = Mapping[str, "JSON"] | Sequence["JSON"] | str | None | bool | float | int

ISSUER = "lanecrash"
AUDIENCE = "player"


class JWTHandler:
    def __init__(self, secret_key: str):
        self._key: Final[str] = secret_key
        self._algo: Final[str] = "HS256"

    def encode(self, payload: Mapping[str, JSON]) -> str:
        return jwt.encode(dict(payload), self._key, algorithm=self._algo)

    def decode(self, token: str) -> Mapping[str, JSON]:
        return jwt.decode(token, self._key, algorithms=[self._algo], audience=AUDIENCE, issuer=ISSUER)  # pyright: ignore[reportAny]

    def create_owner(self, owner: str, ttl: float = 86400) -> str:
        now = time.time()
        payload = {
            "nbf": now,
            "iat": now,
            "exp": now + ttl,
            "iss": ISSUER,
            "aud": [AUDIENCE],
            "owner": owner,
        }
        return self.encode(payload)
