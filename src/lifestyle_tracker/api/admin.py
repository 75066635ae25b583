"""Admin API endpoints with simple token auth."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

if TYPE_CHECKING:
    from lifestyle_tracker.containers import AppContainer

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/health", dependencies=[Depends(require_admin)])
async def admin_health() -> dict[str, str]:
    """Admin health check endpoint."""
    return {"status": "ok"}


@router.get("/cache/stats", dependencies=[Depends(require_admin)])
async def cache_stats(request: Request) -> dict[str, object]:
    """Return food and nutrition cache sizes."""
    container: AppContainer = request.app.state.container
    return {
        "foods": await container.food_service.get_cache_stats(),
        "nutrition": container.nutrition_service.cache_stats(),
        "background_tasks": container.background.pending,
    }


@router.post("/cache/clear", dependencies=[Depends(require_admin)])
async def clear_cache(request: Request) -> dict[str, str]:
    """Drop every food from the local cache."""
    container: AppContainer = request.app.state.container
    await container.food_service.clear_local_cache()
    return {"status": "ok"}


@router.post("/cache/prefetch", dependencies=[Depends(require_admin)])
async def prefetch(request: Request) -> dict[str, object]:
    """Warm the local cache with the most used shared foods."""
    container: AppContainer = request.app.state.container
    cached = await container.food_service.prefetch_popular()
    return {"status": "ok", "cached": cached}
