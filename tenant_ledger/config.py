"""Configuration management using Pydantic Settings"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Remote store (PostgREST-compatible REST endpoint)
    store_api_base: str = "http://localhost:54321/rest/v1"
    store_api_key: str = ""

    # Service
    service_name: str = "tenant-ledger"
    log_level: str = "INFO"

    # HTTP Client
    http_timeout_seconds: float = 5.0
    commit_timeout_seconds: float = 10.0  # Budget for one settlement commit, also applied per request


settings = Settings()
