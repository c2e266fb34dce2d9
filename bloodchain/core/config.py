from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List
from pydantic import field_validator


class Settings(BaseSettings):
    # Application
    DEBUG: bool = False
    ENVIRONMENT: str = "production"
    APP_NAME: str = "BloodChain API"
    APP_VERSION: str = "1.0.0"
    CORS_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    # Server Configuration
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 4

    # Ledger storage (empty -> in-memory ledger)
    DATABASE_URL: str = ""

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"
    LOG_FILE: str = "logs/app.log"
    LOG_EVENTS: bool = True  # one line per published domain event on "bloodchain.events"

    # Donation policy
    MINIMUM_DONATION_INTERVAL_DAYS: int = 90
    REWARD_POINTS_PER_DONATION: int = 10
    UNITS_PER_DONATION: int = 1

    # Request lifecycle
    ALLOW_DIRECT_FULFILLMENT: bool = False  # pending -> fulfilled shortcut

    @field_validator('DEBUG', 'ALLOW_DIRECT_FULFILLMENT', 'LOG_EVENTS', mode='before')
    @classmethod
    def parse_bool(cls, v):
        """Parse boolean from string."""
        if isinstance(v, str):
            return v.lower() in ("true", "1", "yes")
        return bool(v)

    @field_validator('MINIMUM_DONATION_INTERVAL_DAYS', 'REWARD_POINTS_PER_DONATION')
    @classmethod
    def positive(cls, v):
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator('UNITS_PER_DONATION')
    @classmethod
    def non_negative(cls, v):
        if v < 0:
            raise ValueError("must not be negative")
        return v

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._cors_origins_list = [item.strip() for item in self.CORS_ORIGINS.split(',') if item.strip()]

    @property
    def cors_origins_list(self) -> List[str]:
        """Get CORS_ORIGINS as a list."""
        return self._cors_origins_list

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
