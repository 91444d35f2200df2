# app/config.py
from __future__ import annotations

from pathlib import Path
from typing import List

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Backend/app/config.py -> parent = Backend
ENV_FILE = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(ENV_FILE, override=False)  # pre-load into the process environment


class Settings(BaseSettings):
    # ---- App / Infra ----
    APP_NAME: str = "Wishlist Preview API"
    APP_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"
    ALLOWED_ORIGINS: List[str] = Field(default_factory=lambda: ["*"])

    # ---- Fetcher retry policy ----
    PREVIEW_MAX_ATTEMPTS: int = 3
    PREVIEW_BASE_TIMEOUT_S: float = 10.0
    PREVIEW_TIMEOUT_STEP_S: float = 2.0
    PREVIEW_BACKOFF_BASE_S: float = 1.0
    PREVIEW_BACKOFF_CAP_S: float = 5.0
    PREVIEW_FALLBACK_TIMEOUT_S: float = 15.0
    PREVIEW_BOT_USER_AGENT: str = (
        "Mozilla/5.0 (compatible; WishlistPreviewBot/1.0; +https://wishlist-preview.example)"
    )

    # ---- Extraction / guard ----
    PREVIEW_OEMBED_TIMEOUT_S: float = 3.0
    PREVIEW_DNS_TIMEOUT_S: float = 5.0
    # End-to-end budget; must exceed the worst-case fetch schedule (~54s).
    PREVIEW_DEADLINE_S: float = 75.0

    # ---- Inbound rate limiting ----
    PREVIEW_RATE_LIMIT: int = 10
    PREVIEW_RATE_WINDOW_S: int = 60

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # ignore unrelated .env keys
    )


settings = Settings()
