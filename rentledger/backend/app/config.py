from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ---- App ----
    app_env: str = "local"  # local|dev|prod
    app_version: str = "2026-10.v1"
    database_url: str = "sqlite:///./rentledger.db"

    # ---- Logging ----
    log_level: str = "INFO"
    sql_log_level: str = "WARNING"
    request_id_header: str = "X-Request-ID"

    # ---- CORS (used by main.py) ----
    cors_allow_origins: list[str] | str = ["*"]

    # ---- Actor headers (auth itself lives outside this service) ----
    auth_mode: str = "dev"  # dev|gateway
    dev_header_actor_id: str = "X-Actor-Id"
    dev_header_actor_role: str = "X-Actor-Role"

    # ---- Billing defaults ----
    currency_code: str = "KES"
    default_grace_period_days: int = 5
    default_rent_due_day: int = 1

    # ---- Settlement ----
    settlement_audit_retries: int = 3

    # ---- Scheduled jobs ----
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/1"
    job_lock_ttl_seconds: int = 15 * 60

    generation_day_of_month: int = 1
    generation_hour: int = 2
    overdue_hour: int = 1
    utility_merge_hour: int = 4
    lease_activation_hour: int = 0

    def model_post_init(self, __context) -> None:
        env = (self.app_env or "local").strip().lower()
        is_prod = env in ("prod", "production")

        if is_prod:
            if (self.auth_mode or "").strip().lower() == "dev":
                raise ValueError("SECURITY: auth_mode=dev is not allowed in prod")

            origins = self.cors_allow_origins
            if origins == "*" or origins == ["*"] or (isinstance(origins, str) and "*" in origins):
                raise ValueError("SECURITY: cors_allow_origins wildcard is not allowed in prod")


settings = Settings()
