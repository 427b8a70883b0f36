from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # App Config
    APP_NAME: str = "Meal Planner Subscription Service"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DB_URL: Optional[str] = None

    # Redirect origin for hosted checkout / portal pages
    APP_BASE_URL: str = "http://localhost:5173"
    CORS_ORIGINS: list[str] = ["*"]

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_PUBLISHABLE_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None

    # Security
    JWT_SECRET_KEY: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_MINUTES: int = 60 * 24

    # Subscription lifecycle
    PAUSE_MAX_DAYS: int = 90

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


@lru_cache()
def get_settings():
    return Settings()
