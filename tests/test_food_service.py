"""Tests for tiered food lookup and search."""

import asyncio

import pytest

from lifestyle_tracker.adapters.sqlite_food_cache import SqliteFoodCache
from lifestyle_tracker.domain.errors import (
    CacheError,
    ExternalSourceError,
    NotFoundError,
    NotInitializedError,
    Tier,
    TierError,
    ValidationError,
)
from lifestyle_tracker.domain.foods import SearchSource
from lifestyle_tracker.services.foods import FoodService
from tests.conftest import FakeExternalFoodSource, FakeSharedFoodStore, make_food


def test_service_requires_initialize(food_service: FoodService) -> None:
    with pytest.raises(NotInitializedError):
        asyncio.run(food_service.get_by_key("4000417025005"))


def test_external_hit_is_written_back_to_faster_tiers(
    food_service: FoodService,
    cloud_store: FakeSharedFoodStore,
    external_source: FakeExternalFoodSource,
) -> None:
    external_source.products["4000417025005"] = make_food(
        "4000417025005", "Haferflocken"
    )

    async def scenario():  # type: ignore[no-untyped-def]
        await food_service.initialize()
        first = await food_service.get_by_key("4000417025005")
        await food_service.background.drain()
        second = await food_service.get_by_key("4000417025005")
        return first, second

    first, second = asyncio.run(scenario())

    assert first.name == second.name == "Haferflocken"
    assert external_source.count("get_product") == 1
    assert cloud_store.count("put") == 1
    assert cloud_store.count("get_by_key") == 1
    assert "4000417025005" in cloud_store.foods


def test_cloud_hit_is_written_back_locally(
    food_service: FoodService,
    cloud_store: FakeSharedFoodStore,
    external_source: FakeExternalFoodSource,
) -> None:
    cloud_store.foods["4006040000000"] = make_food("4006040000000", "Vollmilch")

    async def scenario() -> None:
        await food_service.initialize()
        await food_service.get_by_key("4006040000000")
        await food_service.background.drain()
        await food_service.get_by_key("4006040000000")

    asyncio.run(scenario())

    assert cloud_store.count("get_by_key") == 1
    assert external_source.count("get_product") == 0


def test_missing_key_raises_not_found(food_service: FoodService) -> None:
    async def scenario() -> None:
        await food_service.initialize()
        await food_service.get_by_key("4000000000000")

    with pytest.raises(NotFoundError) as excinfo:
        asyncio.run(scenario())

    assert excinfo.value.key == "4000000000000"


def test_non_barcode_key_misses_without_external_lookup(
    food_service: FoodService,
    cloud_store: FakeSharedFoodStore,
    external_source: FakeExternalFoodSource,
) -> None:
    async def scenario() -> None:
        await food_service.initialize()
        await food_service.get_by_key("abc")

    with pytest.raises(NotFoundError) as excinfo:
        asyncio.run(scenario())

    assert excinfo.value.key == "abc"
    assert cloud_store.count("get_by_key") == 1
    assert external_source.count("get_product") == 0


def test_empty_key_is_rejected(food_service: FoodService) -> None:
    async def scenario() -> None:
        await food_service.initialize()
        await food_service.get_by_key("  ")

    with pytest.raises(ValidationError):
        asyncio.run(scenario())


def test_cloud_failure_on_lookup_is_wrapped_with_tier(
    food_service: FoodService,
    cloud_store: FakeSharedFoodStore,
    external_source: FakeExternalFoodSource,
) -> None:
    cloud_store.fail_get = True

    async def scenario() -> None:
        await food_service.initialize()
        await food_service.get_by_key("4000417025005")

    with pytest.raises(TierError) as excinfo:
        asyncio.run(scenario())

    assert excinfo.value.tier is Tier.CLOUD
    assert excinfo.value.subject == "4000417025005"
    assert external_source.count("get_product") == 0


def test_search_returns_tiers_in_priority_order(
    food_service: FoodService,
    cloud_store: FakeSharedFoodStore,
    external_source: FakeExternalFoodSource,
) -> None:
    cloud_store.search_results = [
        make_food("eier-local", "Eier"),
        make_food("eier-cloud", "Eiersalat"),
    ]
    external_source.search_results = [
        make_food("eier-cloud", "Eiersalat"),
        make_food("eier-off", "Eier"),
        make_food("shake", "Protein Shake"),
    ]

    async def scenario():  # type: ignore[no-untyped-def]
        await food_service.initialize()
        await food_service.local.put(make_food("eier-local", "Eier Bio"))
        result = await food_service.search("eier")
        await food_service.background.drain()
        return result

    result = asyncio.run(scenario())

    keys = [item.key for item in result.items]
    assert keys == ["eier-local", "eier-cloud", "eier-off"]
    assert (result.local_count, result.cloud_count, result.external_count) == (1, 1, 1)
    assert result.total_count == 3
    assert result.source is SearchSource.LOCAL
    assert "eier-off" in cloud_store.foods
    assert "shake" not in cloud_store.foods


def test_search_caches_cloud_results_locally(
    food_service: FoodService, cloud_store: FakeSharedFoodStore
) -> None:
    cloud_store.search_results = [make_food("1", "Eiersalat"), make_food("2", "Eier")]

    async def scenario():  # type: ignore[no-untyped-def]
        await food_service.initialize()
        first = await food_service.search("eier")
        await food_service.background.drain()
        second = await food_service.search("eier")
        return first, second

    first, second = asyncio.run(scenario())

    assert first.source is SearchSource.CLOUD
    assert [item.name for item in first.items] == ["Eier", "Eiersalat"]
    assert second.source is SearchSource.LOCAL
    assert second.local_count == 2


def test_short_query_does_no_io(
    food_service: FoodService,
    cloud_store: FakeSharedFoodStore,
    external_source: FakeExternalFoodSource,
) -> None:
    async def scenario():  # type: ignore[no-untyped-def]
        await food_service.initialize()
        await food_service.background.drain()
        cloud_store.calls.clear()
        return await food_service.search("e")

    result = asyncio.run(scenario())

    assert result.items == []
    assert result.total_count == 0
    assert cloud_store.calls == []
    assert external_source.calls == []


def test_external_search_failure_is_absorbed(
    food_service: FoodService,
    cloud_store: FakeSharedFoodStore,
    external_source: FakeExternalFoodSource,
) -> None:
    cloud_store.fail_search = True
    external_source.search_error = ExternalSourceError("offline")

    async def scenario():  # type: ignore[no-untyped-def]
        await food_service.initialize()
        await food_service.local.put(make_food("1", "Eier"))
        return await food_service.search("eier")

    result = asyncio.run(scenario())

    assert [item.key for item in result.items] == ["1"]
    assert result.source is SearchSource.LOCAL


def test_slow_external_search_times_out(
    cloud_store: FakeSharedFoodStore,
    local_store,
    background,
) -> None:
    class _SlowSource(FakeExternalFoodSource):
        async def search_products(  # type: ignore[no-untyped-def]
            self, query: str, limit: int = 20
        ):
            await asyncio.sleep(5)
            return [make_food("late", "Eier")]

    service = FoodService(
        local=local_store,
        cloud=cloud_store,
        external=_SlowSource(),
        background=background,
        external_timeout_seconds=0.01,
    )

    async def scenario():  # type: ignore[no-untyped-def]
        await service.initialize()
        return await service.search("eier")

    result = asyncio.run(scenario())

    assert result.items == []


def test_local_search_failure_propagates(
    food_service: FoodService, local_store
) -> None:
    async def scenario() -> None:
        await food_service.initialize()
        local_store.connection.execute("DROP TABLE user_foods")
        await food_service.search("eier")

    with pytest.raises(TierError) as excinfo:
        asyncio.run(scenario())

    assert excinfo.value.tier is Tier.LOCAL
    assert isinstance(excinfo.value.__cause__, CacheError)


def test_results_are_capped(
    local_store,
    cloud_store: FakeSharedFoodStore,
    external_source: FakeExternalFoodSource,
    background,
) -> None:
    cloud_store.search_results = [make_food(f"c{i}", f"Eier {i}") for i in range(5)]
    service = FoodService(
        local=local_store,
        cloud=cloud_store,
        external=external_source,
        background=background,
        max_results=3,
    )

    async def scenario():  # type: ignore[no-untyped-def]
        await service.initialize()
        result = await service.search("eier")
        await background.drain()
        return result

    result = asyncio.run(scenario())

    assert result.total_count == 3
    assert result.cloud_count == 3


def test_prefetch_copies_popular_cloud_foods(
    food_service: FoodService, cloud_store: FakeSharedFoodStore
) -> None:
    for index in range(3):
        cloud_store.foods[f"p{index}"] = make_food(
            f"p{index}", f"Popular {index}", usage_count=10 - index
        )

    async def scenario():  # type: ignore[no-untyped-def]
        await food_service.initialize()
        await food_service.background.drain()
        return await food_service.get_user_top_foods(10)

    top = asyncio.run(scenario())

    assert {food.key for food in top} == {"p0", "p1", "p2"}


def test_prefetch_never_raises(food_service: FoodService) -> None:
    class _BrokenCloud(FakeSharedFoodStore):
        async def get_most_used(self, limit: int = 20):  # type: ignore[no-untyped-def]
            raise RuntimeError("cloud down")

    food_service.cloud = _BrokenCloud()

    assert asyncio.run(food_service.prefetch_popular()) == 0


def test_cache_stats_and_clear(
    food_service: FoodService, cloud_store: FakeSharedFoodStore
) -> None:
    cloud_store.foods["1"] = make_food("1", "Eier", usage_count=4)

    async def scenario():  # type: ignore[no-untyped-def]
        await food_service.initialize()
        await food_service.background.drain()
        before = await food_service.get_cache_stats()
        await food_service.clear_local_cache()
        after = await food_service.get_cache_stats()
        return before, after

    before, after = asyncio.run(scenario())

    assert before.local_count == 1
    assert before.cloud.total_items == 1
    assert before.cloud.total_usage == 4
    assert after.local_count == 0


def test_initialize_runs_startup_hooks_once(
    food_service: FoodService,
) -> None:
    calls: list[str] = []

    async def hook() -> None:
        calls.append("hook")

    food_service.startup_hooks.append(hook)

    async def scenario() -> None:
        await food_service.initialize()
        await food_service.initialize()
        await food_service.close()

    asyncio.run(scenario())

    assert calls == ["hook"]
    assert food_service.initialized


def test_evicted_food_is_served_again_by_deeper_tiers(
    cloud_store: FakeSharedFoodStore,
    external_source: FakeExternalFoodSource,
    background,
) -> None:
    keys = ["4000000000001", "4000000000002", "4000000000003"]
    for index, key in enumerate(keys):
        external_source.products[key] = make_food(key, f"Produkt {index}")
    local = SqliteFoodCache.create(":memory:", capacity=2)
    service = FoodService(
        local=local, cloud=cloud_store, external=external_source, background=background
    )

    async def scenario():  # type: ignore[no-untyped-def]
        await service.initialize()
        for key in keys:
            await service.get_by_key(key)
            await background.drain()
        evicted_first = await local.get_by_key(keys[0]) is None
        from_cloud = await service.get_by_key(keys[0])
        await background.drain()
        del cloud_store.foods[keys[1]]
        from_external = await service.get_by_key(keys[1])
        return evicted_first, from_cloud, from_external

    evicted_first, from_cloud, from_external = asyncio.run(scenario())

    assert evicted_first
    assert from_cloud.name == "Produkt 0"
    assert from_external.name == "Produkt 1"
    assert external_source.count("get_product") == 4
    assert cloud_store.count("get_by_key") == 5
