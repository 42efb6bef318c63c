"""
backend/wicketbook/config.py

Purpose:
    Central settings loading for the ledger API, settlement engine and
    background workers.

Dependencies:
    - pydantic-settings
    - pathlib
"""

from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    # Transactions need a replica set, even a single-node one.
    MONGO_URI: str = "mongodb://localhost:27017/?replicaSet=rs0"
    MONGO_DB: str = "wicketbook"
    BACKEND_CORS_ORIGINS: str = "http://localhost:5173"
    LOG_LEVEL: str = "INFO"

    # Identity provider tokens (HS256)
    JWT_SECRET: str = ""
    JWT_SECRET_OLD: str = ""  # Set during rotation

    # Wallet
    STARTING_BALANCE: float = 1000.0
    MIN_STAKE: float = 100.0
    MAX_STAKE: Optional[float] = None  # None = only capped by balance
    MIN_WITHDRAWAL: float = 500.0

    # Settlement
    BONUS_MULTIPLIER: int = 2
    BONUS_POLICY: Literal["settlement", "placement"] = "settlement"
    PAYOUT_DECIMALS: int = 0

    # Seed admin (leave empty to skip seeding)
    SEED_ADMIN_UID: str = ""
    SEED_ADMIN_EMAIL: str = ""

    # Ledger reconciliation worker
    LEDGER_RECONCILE_ENABLED: bool = True
    LEDGER_RECONCILE_HOURS: int = 6

    # WebSocket realtime stream
    WS_EVENTS_ENABLED: bool = True
    WS_HEARTBEAT_SECONDS: int = 30
    WS_MAX_CONNECTIONS: int = 500

    LEADERBOARD_SIZE: int = 10

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }


settings = Settings()
