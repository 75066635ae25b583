"""Tests for admin endpoints."""

from fastapi.testclient import TestClient

from lifestyle_tracker.api.app import create_app
from tests.conftest import make_food

_HEADERS = {"X-Admin-Token": "admin-token"}


def test_admin_requires_token(container) -> None:
    with TestClient(create_app(container)) as client:
        missing = client.get("/admin/health")
        wrong = client.get("/admin/health", headers={"X-Admin-Token": "nope"})
        ok = client.get("/admin/health", headers=_HEADERS)

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert ok.json() == {"status": "ok"}


def test_admin_cache_stats(container, cloud_store) -> None:
    cloud_store.foods["1"] = make_food("1", "Eier", usage_count=5)
    cloud_store.foods["2"] = make_food("2", "Milch", usage_count=2)

    with TestClient(create_app(container)) as client:
        client.post("/admin/cache/prefetch", headers=_HEADERS)
        response = client.get("/admin/cache/stats", headers=_HEADERS)

    assert response.status_code == 200
    data = response.json()
    assert data["foods"]["local_count"] == 2
    assert data["foods"]["cloud"] == {"total_items": 2, "total_usage": 7}
    assert data["nutrition"]["total_days"] == 0


def test_admin_prefetch_and_clear(container, cloud_store) -> None:
    cloud_store.foods["1"] = make_food("1", "Eier")

    with TestClient(create_app(container)) as client:
        prefetched = client.post("/admin/cache/prefetch", headers=_HEADERS)
        cleared = client.post("/admin/cache/clear", headers=_HEADERS)
        top = client.get("/foods/top")

    assert prefetched.json() == {"status": "ok", "cached": 1}
    assert cleared.json() == {"status": "ok"}
    assert top.json() == {"items": []}
