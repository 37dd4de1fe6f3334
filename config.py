"""Environment-driven settings for the offers API."""
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv


def _str_to_bool(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"true", "1", "yes", "y"}


def _split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    database_url: str
    database_name: str
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    token_expire_days: int = 30
    google_client_ids: List[str] = field(default_factory=list)
    allow_unverified_id_tokens: bool = False
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load environment variables once and expose typed settings."""
    load_dotenv()

    client_ids = [
        os.getenv("GOOGLE_CLIENT_ID"),
        os.getenv("GOOGLE_ANDROID_CLIENT_ID"),
    ]

    return Settings(
        database_url=os.getenv("DATABASE_URL", "mongodb://localhost:27017"),
        database_name=os.getenv("DATABASE_NAME", "offbytes"),
        jwt_secret=os.getenv("JWT_SECRET", "dev_secret_key_123"),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        token_expire_days=int(os.getenv("TOKEN_EXPIRE_DAYS", "30")),
        google_client_ids=[cid for cid in client_ids if cid],
        allow_unverified_id_tokens=_str_to_bool(os.getenv("ALLOW_UNVERIFIED_ID_TOKENS")),
        cors_origins=_split_csv(os.getenv("CORS_ORIGINS")) or ["*"],
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
