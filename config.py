"""
Configuration

Settings are read from the environment (a local .env file is loaded first)
and passed explicitly to the components that need them.
"""

import os
import logging
from dotenv import load_dotenv
from pydantic import BaseModel, Field

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"


class Settings(BaseModel):
    database_url: str
    database_name: str
    jwt_secret: str
    jwt_expires_in: int = Field(86400, gt=0, description="Token lifetime in seconds")
    bcrypt_rounds: int = Field(10, ge=4, le=31)
    min_password_length: int = Field(6, ge=1)
    use_transactions: bool = Field(True, description="False for a standalone mongod")
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-2.0-flash"
    log_level: str = "INFO"
    port: int = 8000


def _flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    """Build Settings from environment variables. Required values have no default."""
    load_dotenv()

    missing = [name for name in ("DATABASE_URL", "DATABASE_NAME", "JWT_SECRET") if not os.getenv(name)]
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    return Settings(
        database_url=os.environ["DATABASE_URL"],
        database_name=os.environ["DATABASE_NAME"],
        jwt_secret=os.environ["JWT_SECRET"],
        jwt_expires_in=int(os.getenv("JWT_EXPIRES_IN", 86400)),
        bcrypt_rounds=int(os.getenv("BCRYPT_SALT_ROUNDS", 10)),
        min_password_length=int(os.getenv("MIN_PASSWORD_LENGTH", 6)),
        use_transactions=_flag(os.getenv("MONGO_TRANSACTIONS", "true")),
        gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.0-flash"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        port=int(os.getenv("PORT", 8000)),
    )


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        format=LOG_FORMAT,
        level=getattr(logging, level.upper(), logging.INFO),
    )
