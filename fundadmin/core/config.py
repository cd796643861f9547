from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # App
    app_name: str = "AIFM Approvals"
    debug: bool = False

    # Persistence
    store_backend: str = "memory"  # memory | sql
    database_url: str = "sqlite:///./fundadmin.db"

    # Audit
    audit_backend: str = "log"  # log | database

    # Logging
    log_level: str = "INFO"
    log_dir: str = "./logs"
    file_logging: bool = False
    log_max_bytes: int = 10 * 1024 * 1024
    log_backup_count: int = 5

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Celery
    celery_broker_url: Optional[str] = None
    celery_result_backend: Optional[str] = None

    @property
    def celery_broker(self) -> str:
        return self.celery_broker_url or self.redis_url

    @property
    def celery_backend(self) -> str:
        return self.celery_result_backend or self.redis_url

    # Escalation sweep
    escalation_interval_minutes: int = 15
    escalation_tenants: str = ""

    @property
    def escalation_tenants_list(self) -> list[str]:
        return [t.strip() for t in self.escalation_tenants.split(",") if t.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"  # Allow extra env vars without raising validation errors
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
