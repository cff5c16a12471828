from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pydantic import field_validator


def _parse_bool(v):
    if isinstance(v, str):
        return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
    return bool(v)


class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'mostrador_user'
    POSTGRES_PASSWORD: str = 'mostrador_pass'
    POSTGRES_DB: str = 'mostrador_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = None  # Sobrescribe la URL armada con POSTGRES_*

    # Redis settings (broker de Celery y canal de notificaciones)
    REDIS_HOST: str = 'redis'
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None

    # Notificaciones a otros locales
    NOTIFICATIONS_ENABLED: bool = True
    LOW_STOCK_ALERTS_ENABLED: bool = True
    NOTIFICATION_CHANNEL_PREFIX: str = 'location'

    # Reglas de cobro
    ALLOW_NON_CASH_OVERPAYMENT: bool = True

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        return _parse_bool(v)

    @field_validator(
        "NOTIFICATIONS_ENABLED", "LOW_STOCK_ALERTS_ENABLED", "ALLOW_NON_CASH_OVERPAYMENT",
        mode="before"
    )
    @classmethod
    def parse_flags(cls, v):
        return _parse_bool(v)

settings = Settings()
