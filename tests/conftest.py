"""Shared test fixtures."""

from dataclasses import dataclass, field, replace
from datetime import date

import pytest

from lifestyle_tracker.adapters.sqlite_db import connect
from lifestyle_tracker.adapters.sqlite_food_cache import SqliteFoodCache
from lifestyle_tracker.adapters.sqlite_nutrition_cache import SqliteNutritionCache
from lifestyle_tracker.adapters.sqlite_profile_cache import SqliteProfileCache
from lifestyle_tracker.config import Settings
from lifestyle_tracker.containers import AppContainer
from lifestyle_tracker.domain.foods import CloudCacheStats, FoodItem
from lifestyle_tracker.domain.nutrition import DailyNutritionSummary
from lifestyle_tracker.domain.profiles import UserProfile
from lifestyle_tracker.domain.training import PlanTemplate
from lifestyle_tracker.services.background import BackgroundTasks
from lifestyle_tracker.services.events import ProfileEventBus
from lifestyle_tracker.services.foods import (
    ExternalFoodSource,
    FoodService,
    SharedFoodStore,
)
from lifestyle_tracker.services.nutrition import (
    DailySummaryRepository,
    NutritionSyncService,
)
from lifestyle_tracker.services.profiles import ProfileRepository, ProfileSyncService
from lifestyle_tracker.services.recommendations import (
    PlanTemplateRepository,
    RecommendationService,
)


def make_food(key: str, name: str, **overrides: object) -> FoodItem:
    return FoodItem(key=key, name=name, calories=100.0, **overrides)


@dataclass
class FakeSharedFoodStore(SharedFoodStore):
    """In-memory shared cache that records every call."""

    foods: dict[str, FoodItem] = field(default_factory=dict)
    search_results: list[FoodItem] | None = None
    fail_search: bool = False
    fail_get: bool = False
    calls: list[tuple[str, str]] = field(default_factory=list)

    async def get_by_key(self, key: str) -> FoodItem | None:
        self.calls.append(("get_by_key", key))
        if self.fail_get:
            raise RuntimeError("cloud unavailable")
        return self.foods.get(key)

    async def put(self, food: FoodItem) -> None:
        self.calls.append(("put", food.key))
        self.foods[food.key] = food

    async def search(self, query: str, limit: int = 20) -> list[FoodItem]:
        self.calls.append(("search", query))
        if self.fail_search:
            raise RuntimeError("cloud search unavailable")
        if self.search_results is not None:
            return self.search_results[:limit]
        return [
            food for food in self.foods.values() if query.lower() in food.name.lower()
        ][:limit]

    async def get_most_used(self, limit: int = 20) -> list[FoodItem]:
        self.calls.append(("get_most_used", str(limit)))
        ranked = sorted(self.foods.values(), key=lambda f: f.usage_count, reverse=True)
        return ranked[:limit]

    async def get_stats(self) -> CloudCacheStats:
        return CloudCacheStats(
            total_items=len(self.foods),
            total_usage=sum(food.usage_count for food in self.foods.values()),
        )

    def count(self, action: str) -> int:
        return sum(1 for name, _ in self.calls if name == action)


@dataclass
class FakeExternalFoodSource(ExternalFoodSource):
    """In-memory product database that records every call."""

    products: dict[str, FoodItem] = field(default_factory=dict)
    search_results: list[FoodItem] = field(default_factory=list)
    search_error: Exception | None = None
    calls: list[tuple[str, str]] = field(default_factory=list)

    async def get_product(self, barcode: str) -> FoodItem | None:
        self.calls.append(("get_product", barcode))
        return self.products.get(barcode)

    async def search_products(self, query: str, limit: int = 20) -> list[FoodItem]:
        self.calls.append(("search_products", query))
        if self.search_error is not None:
            raise self.search_error
        return self.search_results[:limit]

    def count(self, action: str) -> int:
        return sum(1 for name, _ in self.calls if name == action)


@dataclass
class InMemoryProfileRepository(ProfileRepository):
    """In-memory remote profile store."""

    profiles: dict[str, UserProfile] = field(default_factory=dict)
    fetches: int = 0

    def get_profile(self, user_id: str) -> UserProfile | None:
        self.fetches += 1
        return self.profiles.get(user_id)

    def update_profile(self, user_id: str, fields: dict[str, object]) -> UserProfile:
        current = self.profiles.get(user_id)
        if current is None:
            raise RuntimeError(f"Failed to update profile {user_id}")
        updated = replace(current, **fields)
        self.profiles[user_id] = updated
        return updated

    def delete_profile(self, user_id: str) -> None:
        self.profiles.pop(user_id, None)


@dataclass
class InMemoryDailySummaryRepository(DailySummaryRepository):
    """In-memory per-user, per-day nutrition totals."""

    summaries: dict[tuple[str, date], DailyNutritionSummary] = field(
        default_factory=dict
    )
    failing_days: set[date] = field(default_factory=set)
    fetches: list[date] = field(default_factory=list)

    def add(self, user_id: str, summary: DailyNutritionSummary) -> None:
        self.summaries[(user_id, summary.day)] = summary

    def get_daily_summary(
        self, user_id: str, day: date
    ) -> DailyNutritionSummary | None:
        self.fetches.append(day)
        if day in self.failing_days:
            raise RuntimeError(f"summary for {day} unavailable")
        return self.summaries.get((user_id, day))


@dataclass
class InMemoryPlanTemplateRepository(PlanTemplateRepository):
    """In-memory plan catalog."""

    templates: list[PlanTemplate] = field(default_factory=list)
    calls: int = 0

    def list_active(self) -> list[PlanTemplate]:
        self.calls += 1
        return [template for template in self.templates if template.is_active]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-key",
        admin_token="admin-token",
        local_db_path=":memory:",
    )


@pytest.fixture
def background() -> BackgroundTasks:
    return BackgroundTasks()


@pytest.fixture
def cloud_store() -> FakeSharedFoodStore:
    return FakeSharedFoodStore()


@pytest.fixture
def external_source() -> FakeExternalFoodSource:
    return FakeExternalFoodSource()


@pytest.fixture
def local_store() -> SqliteFoodCache:
    return SqliteFoodCache.create(":memory:")


@pytest.fixture
def food_service(
    local_store: SqliteFoodCache,
    cloud_store: FakeSharedFoodStore,
    external_source: FakeExternalFoodSource,
    background: BackgroundTasks,
) -> FoodService:
    return FoodService(
        local=local_store,
        cloud=cloud_store,
        external=external_source,
        background=background,
    )


@pytest.fixture
def profile_repository() -> InMemoryProfileRepository:
    return InMemoryProfileRepository()


@pytest.fixture
def template_repository() -> InMemoryPlanTemplateRepository:
    return InMemoryPlanTemplateRepository()


@pytest.fixture
def summary_repository() -> InMemoryDailySummaryRepository:
    return InMemoryDailySummaryRepository()


@pytest.fixture
def container(
    settings: Settings,
    background: BackgroundTasks,
    cloud_store: FakeSharedFoodStore,
    external_source: FakeExternalFoodSource,
    profile_repository: InMemoryProfileRepository,
    template_repository: InMemoryPlanTemplateRepository,
    summary_repository: InMemoryDailySummaryRepository,
) -> AppContainer:
    connection = connect(":memory:")
    events = ProfileEventBus()
    profile_service = ProfileSyncService(
        repository=profile_repository,
        cache=SqliteProfileCache(connection=connection),
        events=events,
    )
    nutrition_service = NutritionSyncService(
        repository=summary_repository,
        cache=SqliteNutritionCache(connection=connection),
        background=background,
    )
    recommendation_service = RecommendationService(
        profiles=profile_service,
        templates=template_repository,
        events=events,
    )
    food_service = FoodService(
        local=SqliteFoodCache(connection=connection),
        cloud=cloud_store,
        external=external_source,
        background=background,
        startup_hooks=[
            profile_service.initialize,
            nutrition_service.initialize,
            recommendation_service.initialize,
        ],
    )

    async def close_resources() -> None:
        await background.drain()
        profile_service.shutdown()

    return AppContainer(
        settings=settings,
        background=background,
        profile_events=events,
        food_service=food_service,
        profile_service=profile_service,
        nutrition_service=nutrition_service,
        recommendation_service=recommendation_service,
        close_resources=close_resources,
    )
