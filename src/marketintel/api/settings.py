from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = "sqlite:///./marketintel.db"
    market_intel_enabled: bool = True
    # Empty secret/token disables the corresponding bearer check (non-production only)
    cron_secret: str = ""
    admin_token: str = ""
    scrape_budget_seconds: float = 55.0
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
