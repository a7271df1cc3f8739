import os
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()  # pyright: ignore[reportUnusedCallResult]

JWT_SECRET = os.environ["JWT_SECRET"]

DB_PATH = Path(os.getenv("LANECRASH_DB_PATH", str(Path() / "data" / "lanecrash.db")))
DB_POOL_SIZE = int(os.getenv("LANECRASH_DB_POOL_SIZE", "8"))

# Fraction of the reserve a single round is allowed to pay out
RISK_CAP_FRACTION = Decimal(os.getenv("RISK_CAP_FRACTION", "0.10"))
INITIAL_RESERVE = int(os.getenv("INITIAL_RESERVE", "0"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
