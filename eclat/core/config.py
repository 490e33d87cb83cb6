from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent.parent  # project root
ENV_PATH = BASE_DIR / ".env"

# Load .env into the environment first so BaaS / Stripe keys shared with the
# frontend are visible under their usual names.
load_dotenv(dotenv_path=ENV_PATH)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="ignore",
        case_sensitive=False,
    )

    DATABASE_URL: str

    # Tokens are issued by the BaaS auth service; we only verify them.
    JWT_SECRET: str
    JWT_ALG: str = "HS256"
    JWT_AUDIENCE: str = "authenticated"

    INTERNAL_API_KEY: str = "change-me"

    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    PUBLIC_SITE_URL: str = "http://localhost:4321"
    CURRENCY: str = "eur"

    CORS_ORIGINS: list[str] = [
        "http://localhost:4321",
        "http://127.0.0.1:4321",
    ]

    LOG_LEVEL: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
