from __future__ import annotations
from functools import lru_cache
from pathlib import Path
from typing import List
from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── App ──────────────────────────────────────────────────────────────────
    APP_NAME: str = "Vertretungsplan Tracker"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "production"

    # ── Manual trigger / alerts ──────────────────────────────────────────────
    ALERT_TOKEN: str = ""            # empty disables POST /api/scrape
    DISCORD_WEBHOOK_URL: str = ""    # empty disables alerts

    # ── CORS ─────────────────────────────────────────────────────────────────
    CORS_ORIGINS: List[str] = ["http://localhost:5173"]

    # ── Source plan ──────────────────────────────────────────────────────────
    PLAN_BASE_URL: str = "https://arg-heusenstamm.de/vertretungsplan/allgemein/35/w/"
    PLAN_MAX_PAGES: int = 99
    PLAN_USER_AGENT: str = "VertretungsplanTrackerBot/1.0 (+https://example.local)"
    PLAN_PAGE_ENCODING: str = "iso-8859-1"
    PLAN_STALE_AFTER_HOURS: int = 24

    # ── HTTP fetcher ─────────────────────────────────────────────────────────
    HTTP_TIMEOUT: float = 10.0
    MAX_RETRIES: int = 2
    CONCURRENCY_LIMIT: int = 8
    # whole-page deadline, retries included
    PAGE_DEADLINE: float = 30.0

    # ── Scheduler ────────────────────────────────────────────────────────────
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_CHECK_MINUTES: int = 30
    SCRAPE_INTERVAL_HOURS: int = 6

    # ── Storage ──────────────────────────────────────────────────────────────
    # DATABASE_URL set → networked PostgreSQL store, otherwise embedded SQLite
    DATABASE_URL: str = ""
    SQLITE_PATH: Path = Path("data-store") / "entries.sqlite"
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    FETCH_LOG_RETENTION: int = 500

    # ── Redis read cache (optional) ──────────────────────────────────────────
    REDIS_URL: str = ""
    REDIS_POOL_SIZE: int = 10
    REDIS_SOCKET_TIMEOUT: float = 2.0
    CACHE_TTL_WARM: int = 300
    CACHE_STALE_GRACE: int = 60

    @property
    def ASYNC_DATABASE_URL(self) -> str:
        url = self.DATABASE_URL
        for prefix in ("postgres://", "postgresql://"):
            if url.startswith(prefix):
                return "postgresql+asyncpg://" + url[len(prefix):]
        return url

    @property
    def CACHE_ENABLED(self) -> bool:
        return bool(self.REDIS_URL)

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_env(cls, v: str) -> str:
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"ENVIRONMENT must be one of {allowed}")
        return v

    @field_validator("PLAN_MAX_PAGES")
    @classmethod
    def validate_max_pages(cls, v: int) -> int:
        if v < 1:
            raise ValueError("PLAN_MAX_PAGES must be at least 1")
        return v

    model_config = {"env_file": ".env", "extra": "ignore"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
