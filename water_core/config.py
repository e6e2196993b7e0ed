from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


PACKAGE_DIR = Path(__file__).resolve().parent
BASE_DIR = PACKAGE_DIR.parent
ENV_PATH = BASE_DIR / ".env"
SAMPLE_DATA_PATH = PACKAGE_DIR / "sample_data" / "water_meters.csv"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=str(ENV_PATH), extra="ignore")

    # Hosted backend (Supabase / PostgREST)
    SUPABASE_URL: Optional[str] = None
    SUPABASE_ANON_KEY: Optional[str] = None
    WATER_METERS_TABLE: str = Field(default="water_meters")
    SUPABASE_PAGE_SIZE: int = Field(default=1000, ge=1)
    SUPABASE_TIMEOUT: float = Field(default=10.0, gt=0)

    # Canonical month calendar
    FIRST_MONTH: str = Field(default="Jan-25")
    LAST_MONTH: str = Field(default="Oct-25")

    SAMPLE_DATA_PATH: Path = Field(default=SAMPLE_DATA_PATH)

    CORS_ORIGINS: str = Field(default="http://localhost:3000,http://127.0.0.1:3000,http://localhost:8501")
    LOG_LEVEL: str = Field(default="INFO")

    @property
    def backend_configured(self) -> bool:
        return bool((self.SUPABASE_URL or "").strip() and (self.SUPABASE_ANON_KEY or "").strip())

    def get_cors_origins(self) -> List[str]:
        return [x.strip().rstrip("/") for x in (self.CORS_ORIGINS or "").split(",") if x.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(level=(level or get_settings().LOG_LEVEL).upper(), format=LOG_FORMAT)
