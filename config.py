from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv


load_dotenv()


class Settings:
    """Application settings loaded from environment variables.

    Values are read once per process; call ``get_settings.cache_clear()`` in
    tests that patch the environment.
    """

    def __init__(self) -> None:
        self.app_env: str = os.getenv("APP_ENV", "development")
        self.database_url: Optional[str] = os.getenv("DATABASE_URL")
        self.gemini_api_key: Optional[str] = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
        self.gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
        self.gemini_pro_model: str = os.getenv("GEMINI_PRO_MODEL", "gemini-1.5-pro")
        self.planning_base_year: int = int(os.getenv("PLANNING_BASE_YEAR", "2024"))
        self.default_language: str = os.getenv("DEFAULT_LANGUAGE", "en")
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
        self.log_file: Optional[str] = os.getenv("LOG_FILE") or None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
