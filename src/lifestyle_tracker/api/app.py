"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from lifestyle_tracker.api.admin import router as admin_router
from lifestyle_tracker.api.models import (
    NutritionSyncRequest,
    ProfileImageRequest,
    ProfileUpdateRequest,
)
from lifestyle_tracker.app_logging import configure_logging
from lifestyle_tracker.containers import AppContainer
from lifestyle_tracker.domain.errors import (
    FoodServiceError,
    NotFoundError,
    NotInitializedError,
    RateLimitedError,
    ValidationError,
)

_ERROR_STATUS: tuple[tuple[type[FoodServiceError], int], ...] = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (RateLimitedError, status.HTTP_429_TOO_MANY_REQUESTS),
    (NotInitializedError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def _status_for(exc: FoodServiceError) -> int:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    cause = exc.__cause__
    if isinstance(cause, RateLimitedError):
        return status.HTTP_429_TOO_MANY_REQUESTS
    return status.HTTP_502_BAD_GATEWAY


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            await app.state.container.initialize()
        except Exception:
            logger.exception("Failed to initialize services")
            raise
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(admin_router)

    @app.exception_handler(FoodServiceError)
    async def food_service_error(
        request: Request, exc: FoodServiceError
    ) -> JSONResponse:
        status_code = _status_for(exc)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status_code,
            content={"error": {"code": str(exc.code), "message": exc.message}},
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/foods/search")
    async def search_foods(q: str, request: Request) -> dict[str, object]:
        """Search foods across every cache tier."""
        state_container: AppContainer = request.app.state.container
        result = await state_container.food_service.search(q)
        return {
            "items": result.items,
            "source": result.source,
            "query_time_ms": result.query_time_ms,
            "total_count": result.total_count,
            "local_count": result.local_count,
            "cloud_count": result.cloud_count,
            "external_count": result.external_count,
        }

    @app.get("/foods/top")
    async def top_foods(request: Request, limit: int = 10) -> dict[str, object]:
        """Return the most used foods on this device."""
        state_container: AppContainer = request.app.state.container
        return {"items": await state_container.food_service.get_user_top_foods(limit)}

    @app.get("/foods/{barcode}")
    async def get_food(barcode: str, request: Request) -> dict[str, object]:
        """Look up one food by barcode."""
        state_container: AppContainer = request.app.state.container
        return {"item": await state_container.food_service.get_by_key(barcode)}

    @app.get("/users/{user_id}/recommendations")
    async def recommendations(
        user_id: str, request: Request, limit: int = 3
    ) -> dict[str, object]:
        """Return the best training plans for a user."""
        state_container: AppContainer = request.app.state.container
        recommended = await state_container.recommendation_service.recommend(
            user_id, limit
        )
        return {"recommendations": recommended}

    @app.get("/users/{user_id}/nutrition/{day}")
    async def nutrition_day(
        user_id: str, day: date, request: Request, force: bool = False
    ) -> dict[str, object]:
        """Return the nutrition summary for one day."""
        state_container: AppContainer = request.app.state.container
        summary = await state_container.nutrition_service.get_daily_summary(
            user_id, day, force=force
        )
        if summary is None:
            raise NotFoundError(
                f"{user_id}/{day.isoformat()}", kind="Nutrition summary"
            )
        return {"summary": summary}

    @app.post("/users/{user_id}/nutrition/sync")
    async def nutrition_sync(
        user_id: str, body: NutritionSyncRequest, request: Request
    ) -> dict[str, object]:
        """Pull recent diary days into the local cache."""
        state_container: AppContainer = request.app.state.container
        result = await state_container.nutrition_service.sync_recent_days(
            user_id, days=body.days, force=body.force
        )
        return {"result": result}

    @app.get("/users/{user_id}/profile")
    async def get_profile(user_id: str, request: Request) -> dict[str, object]:
        """Return the cached profile, fetching it on a miss."""
        state_container: AppContainer = request.app.state.container
        profile = await state_container.profile_service.get_profile(user_id)
        if profile is None:
            raise NotFoundError(user_id, kind="Profile")
        return {"profile": profile}

    @app.patch("/users/{user_id}/profile")
    async def update_profile(
        user_id: str, body: ProfileUpdateRequest, request: Request
    ) -> dict[str, object]:
        """Apply a partial profile update."""
        state_container: AppContainer = request.app.state.container
        profile = await state_container.profile_service.update_profile(
            user_id, body.model_dump(mode="json", exclude_unset=True)
        )
        return {"profile": profile}

    @app.put("/users/{user_id}/profile/image")
    async def update_profile_image(
        user_id: str, body: ProfileImageRequest, request: Request
    ) -> dict[str, str]:
        """Replace the profile image reference."""
        state_container: AppContainer = request.app.state.container
        await state_container.profile_service.update_profile_image(
            user_id, body.image_url
        )
        return {"status": "ok"}

    return app
