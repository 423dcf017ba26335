"""
Configuration management using pydantic-settings.
Reads from .env file and environment variables.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration"""

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    # Sessions: idle conversations are dropped after the timeout
    session_timeout_minutes: int = 30
    session_sweep_interval_minutes: int = 5

    # Artifact staging area
    # Retention must exceed the slowest expected conversion.
    staging_dir: str = "temp"
    artifact_retention_minutes: int = 60
    artifact_sweep_interval_minutes: int = 30

    # File Upload Limits
    max_file_size_mb: int = 100

    # External tools (resolved from PATH when unset)
    ghostscript_path: str | None = None
    soffice_path: str | None = None
    ocrmypdf_path: str | None = None
    tool_timeout_seconds: int = 180

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False
    )


# Global settings instance
settings = Settings()
