from __future__ import annotations

from pathlib import Path
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# 1. load .env from the project root
ENV_PATH = Path(__file__).resolve().parent.parent.parent / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH)

class Settings(BaseSettings):
    # --- App ---
    APP_NAME: str = "Credit Ledger"
    LOG_LEVEL: str = "INFO"

    # --- Database ---
    DATABASE_URL: str = "sqlite+aiosqlite:///./credits.db"

    # --- Credits ---
    CREDITS_ENABLED: bool = True
    REGISTER_GIFT_ENABLED: bool = True
    REGISTER_GIFT_CREDITS: int = 50
    REGISTER_GIFT_EXPIRE_DAYS: int | None = 30

    # ================= Distribution job =================
    DISTRIBUTE_BATCH_SIZE: int = 100
    DISTRIBUTE_CONCURRENCY: int = 1
    # ====================================================

    # JSON file with {"plans": [...], "packages": [...]}; built-in plans when empty
    PLAN_CATALOG_FILE: str = ""

    model_config = SettingsConfigDict(
        env_file=ENV_PATH,
        env_file_encoding="utf-8",
        extra="ignore"
    )

settings = Settings()
