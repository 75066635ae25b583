"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from lifestyle_tracker.adapters.openfoodfacts_client import OpenFoodFactsClient
from lifestyle_tracker.adapters.sqlite_db import connect
from lifestyle_tracker.adapters.sqlite_food_cache import SqliteFoodCache
from lifestyle_tracker.adapters.sqlite_nutrition_cache import SqliteNutritionCache
from lifestyle_tracker.adapters.sqlite_profile_cache import SqliteProfileCache
from lifestyle_tracker.adapters.supabase_daily_summary_repository import (
    SupabaseDailySummaryRepository,
)
from lifestyle_tracker.adapters.supabase_food_cache import SupabaseFoodCache
from lifestyle_tracker.adapters.supabase_plan_template_repository import (
    SupabasePlanTemplateRepository,
)
from lifestyle_tracker.adapters.supabase_profile_repository import (
    SupabaseProfileRepository,
)
from lifestyle_tracker.config import Settings
from lifestyle_tracker.services.background import BackgroundTasks
from lifestyle_tracker.services.events import ProfileEventBus
from lifestyle_tracker.services.foods import FoodService
from lifestyle_tracker.services.nutrition import NutritionSyncService
from lifestyle_tracker.services.profiles import ProfileSyncService
from lifestyle_tracker.services.recommendations import RecommendationService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    background: BackgroundTasks
    profile_events: ProfileEventBus
    food_service: FoodService
    profile_service: ProfileSyncService
    nutrition_service: NutritionSyncService
    recommendation_service: RecommendationService
    close_resources: Callable[[], Awaitable[None]]

    async def initialize(self) -> None:
        """Initialize every service; safe to call more than once."""
        await self.food_service.initialize()


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    # One connection shared by all on-device caches.
    connection = connect(resolved_settings.local_db_path)
    background = BackgroundTasks()
    profile_events = ProfileEventBus()

    off_client = OpenFoodFactsClient.create(
        base_url=resolved_settings.off_base_url,
        search_url=resolved_settings.off_search_url,
        user_agent=resolved_settings.off_user_agent,
        requests_per_minute=resolved_settings.off_requests_per_minute,
        timeout_seconds=resolved_settings.off_timeout_seconds,
    )
    profile_service = ProfileSyncService(
        repository=SupabaseProfileRepository(supabase_client),
        cache=SqliteProfileCache(connection=connection),
        events=profile_events,
    )
    nutrition_service = NutritionSyncService(
        repository=SupabaseDailySummaryRepository(supabase_client),
        cache=SqliteNutritionCache(
            connection=connection,
            window_days=resolved_settings.nutrition_cache_days,
        ),
        background=background,
    )
    recommendation_service = RecommendationService(
        profiles=profile_service,
        templates=SupabasePlanTemplateRepository(supabase_client),
        events=profile_events,
    )
    food_service = FoodService(
        local=SqliteFoodCache(
            connection=connection,
            capacity=resolved_settings.local_food_cache_size,
        ),
        cloud=SupabaseFoodCache(client=supabase_client, background=background),
        external=off_client,
        background=background,
        max_results=resolved_settings.max_search_results,
        min_query_length=resolved_settings.min_query_length,
        external_timeout_seconds=resolved_settings.external_search_timeout_seconds,
        prefetch_count=resolved_settings.prefetch_popular_count,
        startup_hooks=[
            profile_service.initialize,
            nutrition_service.initialize,
            recommendation_service.initialize,
        ],
    )

    async def close_resources() -> None:
        await background.drain()
        profile_service.shutdown()
        await off_client.close()
        connection.close()

    return AppContainer(
        settings=resolved_settings,
        background=background,
        profile_events=profile_events,
        food_service=food_service,
        profile_service=profile_service,
        nutrition_service=nutrition_service,
        recommendation_service=recommendation_service,
        close_resources=close_resources,
    )
