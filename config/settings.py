from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv


load_dotenv()

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _optional_float(name: str) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else None


class Settings:
    """Relay configuration: Gemini credentials and model ids, session history
    limits and backend, and the HTTP server.

    Values are read once from the environment (and .env) at import time.
    """

    app_env: str = os.getenv("APP_ENV", "development")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "3000"))

    gemini_api_key: Optional[str] = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
    default_model: str = os.getenv("DEFAULT_MODEL", "gemini-2.5-flash")
    video_model: str = os.getenv("VIDEO_MODEL", "gemini-2.0-flash")
    temperature: Optional[float] = _optional_float("MODEL_TEMPERATURE")
    top_p: Optional[float] = _optional_float("MODEL_TOP_P")
    model_timeout: Optional[float] = _optional_float("MODEL_TIMEOUT_SECONDS")

    max_history_turns: int = int(os.getenv("MAX_HISTORY_TURNS", "40"))
    max_sessions: int = int(os.getenv("MAX_SESSIONS", "1000"))
    session_backend: str = os.getenv("SESSION_BACKEND", "memory").lower()
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    session_ttl_seconds: int = int(os.getenv("SESSION_TTL_SECONDS", "0"))

    cors_origins: List[str] = [
        origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()
    ]
    static_dir: Path = Path(os.getenv("STATIC_DIR", str(PROJECT_ROOT / "public")))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
