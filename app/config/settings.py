from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Required for admin operations like creating auth users
    store_timeout_seconds: int = 10  # PostgREST client timeout for every store call

    # Credits
    default_monthly_credits: int = 200
    credit_cas_max_retries: int = 10
    credit_cas_backoff_seconds: float = 0.01
    auto_allocate_new_users: bool = True
    credit_reset_scheduler_enabled: bool = False
    credit_reset_interval_seconds: int = 3600

    # Bootstrap identifiers that are treated as admin before any role is seeded
    legacy_admin_ids: str = "admin,superadmin"
    legacy_superadmin_id: str = "superadmin"

    # App
    app_name: str = "docchat-gateway"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def get_legacy_admin_ids(self) -> List[str]:
        return [i.strip() for i in self.legacy_admin_ids.split(",") if i.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore"
    )


settings = Settings()
