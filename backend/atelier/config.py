"""
Configuration settings for the Maison Cléo production backend.
Loads from environment variables with validation.
"""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Maison Cléo Production"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    FRONTEND_URL: str = "http://localhost:5173"

    # Database
    DATABASE_URL: str

    # WooCommerce REST API
    WOOCOMMERCE_URL: str = "https://maisoncleo.com"
    WOOCOMMERCE_CONSUMER_KEY: str | None = None
    WOOCOMMERCE_CONSUMER_SECRET: str | None = None

    # Sync tuning (seconds unless stated)
    SYNC_PAGE_SIZE: int = 100
    SYNC_PAGE_DELAY: float = 0.2
    SYNC_PROBE_TIMEOUT: float = 8.0
    SYNC_PAGE_TIMEOUT: float = 30.0
    PRODUCT_FETCH_TIMEOUT: float = 3.0
    IMAGE_FETCH_TIMEOUT: float = 10.0

    # Read-path enrichment
    ENRICH_BATCH_SIZE: int = 50
    ENRICH_BATCH_DELAY: float = 0.1

    # Deadline calculator
    HOLIDAYS_URL: str = "https://etalab.github.io/jours-feries-france-data/json/metropole.json"
    HOLIDAYS_CACHE_TTL: int = 86400
    HOLIDAYS_RETRY_SECONDS: int = 300
    DEFAULT_JOURS_DELAI: int = 21

    # Self-healing sweeps, 0 disables the background loop
    MAINTENANCE_INTERVAL_SECONDS: int = 0

    @property
    def woocommerce_configured(self) -> bool:
        return bool(
            self.WOOCOMMERCE_URL
            and self.WOOCOMMERCE_CONSUMER_KEY
            and self.WOOCOMMERCE_CONSUMER_SECRET
        )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings loader."""
    return Settings()
