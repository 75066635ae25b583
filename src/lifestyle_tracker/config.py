"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    admin_token: str
    local_db_path: str = "food_cache.db"
    local_food_cache_size: int = 50
    nutrition_cache_days: int = 30
    prefetch_popular_count: int = 20
    max_search_results: int = 50
    min_query_length: int = 2
    external_search_timeout_seconds: float = 10.0
    off_base_url: str = "https://world.openfoodfacts.org"
    off_search_url: str = "https://world.openfoodfacts.org/cgi/search.pl"
    off_user_agent: str = "LifestyleTracker/1.0 (contact@lifestyle-tracker.app)"
    off_requests_per_minute: int = 100
    off_timeout_seconds: float = 10.0
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )
