"""Application configuration via environment variables."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings loaded from .env or environment."""

    DATABASE_URL: str = "sqlite:///./fomo.db"
    CORS_ORIGINS: str = "http://localhost:5173"
    DEFAULT_TIMEZONE: str = "Europe/Brussels"  # IANA tz
    VISITOR_ID_KEY: str = "fomo-visit-user-id"
    REMOTE_API_URL: str = "http://localhost:8000"
    REMOTE_TIMEOUT_SECONDS: float = 10.0

    class Config:
        env_file = ".env"


settings = Settings()
