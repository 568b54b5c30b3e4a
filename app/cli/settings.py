"""Process settings for the backup runner, read from the environment."""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runner settings.

    Attributes:
        BACKUP_CONFIG: Path of the TOML job configuration.
        LOG_DIR: Directory for log files; empty logs to the console only.
        LOG_LEVEL: Root log level name.
        LOG_FILENAME: Log file name within LOG_DIR.
        DEBUG: Default to DEBUG logging when LOG_LEVEL is empty.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    BACKUP_CONFIG: str = "config.toml"
    LOG_DIR: str = ""
    LOG_LEVEL: str = "INFO"
    LOG_FILENAME: str = "backup-runner.log"
    DEBUG: bool = False


settings = Settings()
