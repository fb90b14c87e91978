"""
Configuration settings for the CVE sync service

Values come from environment variables or a `.env` file in the working
directory. Every component receives the Settings object (or the plain dicts
built from it) through its constructor.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cve_db.sources.cisa.fetcher import CISA_KEV_URL
from cve_db.sources.nvd.fetcher import MAX_RESULTS_PER_PAGE, NVD_API_BASE_URL


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Upstream APIs
    NVD_API_URL: str = NVD_API_BASE_URL
    CISA_KEV_URL: str = CISA_KEV_URL
    NVD_API_KEY: Optional[str] = None
    USER_AGENT: str = "cve-sync/1.0"
    REQUEST_TIMEOUT: int = 30
    RESULTS_PER_PAGE: int = Field(default=MAX_RESULTS_PER_PAGE, ge=1)

    # Retry / rate limiting
    REQUEST_DELAY_SECONDS: float = Field(default=6.0, ge=0)  # NVD public limit without API key
    MAX_RETRIES: int = Field(default=3, ge=1)
    RETRY_DELAY_SECONDS: float = Field(default=2.0, ge=0)
    RATE_LIMIT_RETRIES: int = Field(default=3, ge=1)
    RATE_LIMIT_DELAY_SECONDS: float = Field(default=60.0, ge=0)

    # Sync behaviour
    MAX_REQUESTS_PER_RUN: int = Field(default=50, ge=1)
    RECENT_WINDOW_DAYS: int = Field(default=30, ge=1, le=120)
    FLOOR_YEAR: int = 1999
    CISA_ENRICH_WITH_NVD: bool = True

    # Storage
    DATABASE_PATH: Path = Path("./cve_data/cve_sync.sqlite")

    # Continuous runner
    TICK_INTERVAL_SECONDS: float = 300
    RECENT_SYNC_INTERVAL_SECONDS: float = 3600
    CISA_SYNC_INTERVAL_SECONDS: float = 86400
    ERROR_BACKOFF_SECONDS: float = 60

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    # Debug web surface
    HOST: str = "127.0.0.1"
    PORT: int = 8000
    DEBUG: bool = False

    @field_validator("RESULTS_PER_PAGE")
    @classmethod
    def _cap_page_size(cls, value: int) -> int:
        return min(value, MAX_RESULTS_PER_PAGE)

    @field_validator("LOG_LEVEL")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        return value.upper()

    def source_config(self, source_name: str) -> Dict[str, Any]:
        """Fetcher configuration dict for `nvd` or `cisa`"""
        common = {
            'timeout': self.REQUEST_TIMEOUT,
            'max_retries': self.MAX_RETRIES,
            'retry_delay': self.RETRY_DELAY_SECONDS,
            'rate_limit_retries': self.RATE_LIMIT_RETRIES,
            'rate_limit_delay': self.RATE_LIMIT_DELAY_SECONDS,
            'user_agent': self.USER_AGENT,
        }
        if source_name == 'nvd':
            return {**common, 'base_url': self.NVD_API_URL, 'api_key': self.NVD_API_KEY,
                    'results_per_page': self.RESULTS_PER_PAGE}
        if source_name == 'cisa':
            return {**common, 'base_url': self.CISA_KEV_URL}
        raise KeyError(source_name)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
