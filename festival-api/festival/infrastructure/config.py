"""Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API
    api_version: str = "0.1.0"
    debug: bool = False

    # Storage
    storage_backend: str = "memory"
    database_url: str = "postgresql+asyncpg://festival:festival_dev_password@db:5432/festival"

    # Authentication
    api_key: str = "dev-api-key-change-in-production"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Tickets
    ticket_prefix: str = "FEL"
    ticket_id_length: int = 10
    ticket_id_max_attempts: int = 5
    qr_box_size: int = 10
    qr_border: int = 2

    # Teams
    invite_code_max_attempts: int = 5

    # Notifications
    notification_url: str | None = None
    notification_timeout: float = 10.0
    notification_max_attempts: int = 3
    notification_dispatch_interval: float = 5.0
    notification_dead_letter_limit: int = 1000

    class Config:
        """Pydantic configuration."""

        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "FESTIVAL_"


settings = Settings()
