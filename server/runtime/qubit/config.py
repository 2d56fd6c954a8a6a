"""
Qubit Message Service - Configuration Management

Loads configuration from environment variables with sensible defaults.
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "Qubit Message Service"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8080

    # Database (MySQL by default; DATABASE_URL overrides the DB_* parts)
    DATABASE_URL: str = ""
    DB_HOST: str = "127.0.0.1"
    DB_PORT: int = 3306
    DB_NAME: str = "qubit"
    DB_USER: str = "qubit"
    DB_PASSWORD: str = "qubit"

    # Delivery
    DELIVERY_MODE: str = "simulated"
    WEBHOOK_URL: str = ""
    WEBHOOK_AUTH_KEY: str = ""
    WEBHOOK_TIMEOUT_SECONDS: float = 10.0
    SIMULATED_MAX_DELAY_SECONDS: float = 5.0
    SIMULATED_FAILURE_RATE: float = 0.2

    # Scheduler
    SCHEDULER_INTERVAL_MINUTES: int = 2
    MESSAGE_BATCH_SIZE: int = 2
    TASK_TIMEOUT_SECONDS: float = 300.0
    SCHEDULER_AUTOSTART: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # Security
    ALLOWED_HOSTS: List[str] = ["*"]
    CORS_ORIGINS: List[str] = ["*"]

    class Config:
        env_file = ".env"
        case_sensitive = True

    @field_validator("SCHEDULER_INTERVAL_MINUTES", "MESSAGE_BATCH_SIZE")
    @classmethod
    def must_be_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be greater than 0")
        return value

    @field_validator("DELIVERY_MODE")
    @classmethod
    def known_delivery_mode(cls, value: str) -> str:
        value = value.lower()
        if value not in ("simulated", "webhook"):
            raise ValueError("must be 'simulated' or 'webhook'")
        return value

    @property
    def database_url(self) -> str:
        """Connection URL, assembled from the DB_* settings unless given."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"mysql+pymysql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
            f"?charset=utf8mb4"
        )


settings = Settings()
