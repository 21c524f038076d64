import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    """
    Process-wide configuration, read once at startup and passed explicitly
    to everything that needs it.
    """

    jwt_secret: str
    database_url: Optional[str] = None
    db_path: str = "bingo.db"
    token_ttl: timedelta = timedelta(days=7)
    allowed_origin: str = "*"
    port: int = 10000
    db_pool_min: int = 1
    db_pool_max: int = 10
    bcrypt_rounds: int = 10


def load_settings() -> Settings:
    load_dotenv()

    jwt_secret = os.environ.get("JWT_SECRET")
    if not jwt_secret:
        raise RuntimeError("JWT_SECRET environment variable is not set.")

    return Settings(
        jwt_secret=jwt_secret,
        database_url=os.environ.get("DATABASE_URL") or None,
        db_path=os.environ.get("DB_PATH", "bingo.db"),
        token_ttl=timedelta(hours=int(os.environ.get("TOKEN_TTL_HOURS", "168"))),
        allowed_origin=os.environ.get("ALLOWED_ORIGIN", "*"),
        port=int(os.environ.get("PORT", "10000")),
        db_pool_min=int(os.environ.get("DB_POOL_MIN", "1")),
        db_pool_max=int(os.environ.get("DB_POOL_MAX", "10")),
        bcrypt_rounds=int(os.environ.get("BCRYPT_ROUNDS", "10")),
    )
