"""Application configuration managed via environment variables."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "GoalCal Scheduling Engine"
    debug: bool = False
    log_level: str = "INFO"
    database_url: str = "postgresql+psycopg2://goalcal@localhost:5432/goalcal"
    opik_enabled: bool = False
    opik_api_key: str | None = None
    opik_project: str = "goalcal"
    scheduler_enabled: bool = False
    scheduler_timezone: str = "UTC"
    cadence_check_hour: int = 3
    cadence_check_minute: int = 15
    jobs_run_on_startup: bool = False
    insert_chunk_size: int = 500


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


settings = get_settings()
