from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── App ─────────────────────────────────────
    APP_NAME: str = "Web Analyzer"
    ENVIRONMENT: Literal["local", "test", "staging", "production"] = "local"
    DEBUG: bool = True
    LOG_DIR: str = "logs"
    LOG_FILE: str = "webanalyzer.log"
    LOG_LEVEL: str = "INFO"

    # ── Database ────────────────────────────────
    DATABASE_URL: str = "sqlite+aiosqlite:///./webanalyzer.db"

    # Swap the SQL store for an in-memory stub (smoke testing only)
    SKIP_DB: bool = False
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 30

    # ── Redis / Celery ──────────────────────────
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"
    CELERY_TASK_TIME_LIMIT: int = 600

    # ── Job queue ───────────────────────────────
    QUEUE_BACKEND: Literal["memory", "redis"] = "memory"
    QUEUE_NAME: str = "analysis"
    QUEUE_MAX_ATTEMPTS: int = 3
    QUEUE_BACKOFF_BASE_SECONDS: float = 5.0
    # A claimed job is handed out again only after sitting unacked this long
    QUEUE_VISIBILITY_TIMEOUT_SECONDS: float = 900.0
    QUEUE_RECOVER_INTERVAL: float = 60.0

    # ── Worker ──────────────────────────────────
    WORKER_POLL_INTERVAL: float = 5.0
    WORKER_BATCH_SIZE: int = 1
    WORKER_CONCURRENT_BATCH: bool = False
    RUN_EMBEDDED_WORKER: bool = False

    # ── Browser / capabilities ──────────────────
    BROWSER_POOL_SIZE: int = 1
    CHROMEDRIVER_PATH: Optional[str] = None
    PAGE_LOAD_TIMEOUT: int = 30
    CAPABILITY_TIMEOUT: float = 60.0
    ROBOTS_TXT_TIMEOUT: float = 5.0
    USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    # ── Host validation ─────────────────────────
    HOST_VALIDATION_ENABLED: bool = True
    DNS_TIMEOUT: float = 5.0
    MAX_URL_LENGTH: int = 2000

    # ── Notifications ───────────────────────────
    NOTIFICATIONS_ENABLED: bool = True
    NOTIFICATION_CHANNEL: str = "analysis-events"

    # ── Retention ───────────────────────────────
    RECENT_RESULT_RETENTION_DAYS: int = 30
    ANALYSIS_RETENTION_DAYS: int = 30

    # Divisor for the headline SEO score in recent results. 0 means "number of
    # checks present"; a fixed value below that count is raised to it.
    SEO_SCORE_CHECK_COUNT: int = 0

    class Config:
        env_file = str(Path(__file__).parent.parent.parent / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
