"""Configuration management using Pydantic Settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="BOUNCER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"
    max_logs: int = 5_000

    # Policy catalog
    policies_path: str = "policies.yaml"

    # Controller
    viewer_id: str = "active-tabs"


settings = Settings()
