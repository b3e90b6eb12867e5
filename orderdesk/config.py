from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

# Load .env locally (safe in prod too)
load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _path_env(name: str) -> Optional[Path]:
    raw = os.getenv(name, "").strip()
    return Path(raw) if raw else None


# -------------------
# Config (env-driven)
# -------------------
class Settings(BaseModel):
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./orderdesk.db")

    catalog_dir: Optional[Path] = _path_env("CATALOG_DIR")
    match_weights_path: Optional[Path] = _path_env("MATCH_WEIGHTS_PATH")

    session_idle_seconds: int = _int_env("SESSION_IDLE_SECONDS", 30 * 60)
    sweep_interval_seconds: int = _int_env("SWEEP_INTERVAL_SECONDS", 15 * 60)
    max_message_length: int = _int_env("MAX_MESSAGE_LENGTH", 4000)

    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret-change-me")
    jwt_alg: str = os.getenv("JWT_ALG", "HS256")
    jwt_expire_min: int = _int_env("JWT_EXPIRE_MIN", 1440)

    # empty disables POST /auth/token
    api_key: str = os.getenv("API_KEY", "").strip()

    log_level: str = os.getenv("LOG_LEVEL", "INFO").strip().upper()


settings = Settings()
