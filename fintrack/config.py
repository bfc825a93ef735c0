from pathlib import Path
from typing import Literal
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent

class Settings(BaseSettings):
    PROJECT_NAME: str = "Fintrack Ledger API"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"

    DATABASE_URL: str = f"sqlite+aiosqlite:///{BASE_DIR}/data/fintrack.db"
    DB_TIMEOUT: float = 10.0
    DB_ECHO: bool = False

    BACKEND_CORS_ORIGINS: list[str] = ["*"]

    # Header carrying the identity provider's opaque user id
    IDENTITY_HEADER: str = "X-User-Id"
    DEFAULT_CURRENCY: str = "INR"

    # "all" counts Cleared and Pending, "cleared" counts Cleared only
    SUMMARY_STATUS_POLICY: Literal["all", "cleared"] = "all"

    LOG_LEVEL: str = "INFO"

    GEMINI_API_KEY: str | None = None
    GEMINI_MODEL: str = "models/gemini-2.5-flash"
    MAX_RECEIPT_BYTES: int = 10 * 1024 * 1024

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

settings = Settings()


def get_settings() -> Settings:
    return settings
