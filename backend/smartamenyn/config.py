"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class ConfigurationError(RuntimeError):
    """A required setting is missing or unusable."""


class Settings(BaseSettings):
    # App
    app_name: str = "SmartaMenyn Scraper API"
    debug: bool = False
    log_level: str = "INFO"

    # Database (Supabase PostgreSQL in production)
    database_url: str = ""

    # Scraping
    scraping_headless: bool = True
    scraping_timeout: int = 30000  # ms, per navigation
    scraping_wait_timeout: int = 5000  # ms, per selector wait
    scraping_settle_ms: int = 1200
    scraping_max_scrolls: int = 20
    scraping_max_cards: int = 300  # scrolling stops once this many cards exist
    lidl_max_category_pages: int = 5
    ica_store_page_size: int = 20

    # Sync
    sync_cooldown_hours: int = 20
    sync_api_key: str = ""

    # Scheduler
    scheduler_enabled: bool = False
    scheduler_hour: int = 3
    scheduler_minute: int = 0
    scheduler_timezone: str = "Europe/Stockholm"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    return Settings()


def require_database_url(settings: Settings | None = None) -> str:
    """Return the configured database URL or fail fast."""
    settings = settings or get_settings()
    if not settings.database_url:
        raise ConfigurationError(
            "DATABASE_URL is not set; the offer sync and the API server need a database."
        )
    return settings.database_url
