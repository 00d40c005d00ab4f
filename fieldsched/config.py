# fieldsched/config.py
from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ---- App ----
    app_env: str = "local"  # local|dev|prod
    database_url: str = "sqlite:///./fieldsched.db"

    # ---- CORS (used by main.py) ----
    cors_allow_origins: list[str] | str = ["*"]

    # ---- Calendar ----
    timezone: str = "America/New_York"

    # ---- Projection ----
    projection_horizon_days: int = 45

    # ---- Batch processing ----
    lock_wait_seconds: float = 15.0
    lock_ttl_seconds: int = 300
    lock_poll_seconds: float = 0.1

    default_performed_by: str = "Service Manager"
    system_actor: str = "System (auto-reset)"

    large_reschedule_days: int = 90
    # reschedules further than this from the original date are rejected
    max_reschedule_days: int = 730

    # ---- Operator identity ----
    auth_mode: str = "dev"  # dev|header; sessions are handled upstream
    dev_header_user_email: str = "X-User-Email"
    dev_header_user_name: str = "X-User-Name"

    # ---- Celery ----
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/1"
    daily_projection_hour: int = 5

    def model_post_init(self, __context) -> None:
        env = (self.app_env or "local").strip().lower()
        if env in ("prod", "production"):
            origins = self.cors_allow_origins
            if origins == "*" or origins == ["*"] or (isinstance(origins, str) and "*" in origins):
                raise ValueError("SECURITY: cors_allow_origins wildcard is not allowed in prod")
            if (self.auth_mode or "").strip().lower() == "dev":
                raise ValueError("SECURITY: auth_mode=dev is not allowed in prod")

        if self.lock_wait_seconds < 0:
            raise ValueError("lock_wait_seconds must be >= 0")
        if self.projection_horizon_days < 1:
            raise ValueError("projection_horizon_days must be >= 1")


settings = Settings()
