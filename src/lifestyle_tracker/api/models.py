"""Pydantic request bodies for the user endpoints."""

from pydantic import BaseModel, ConfigDict, Field

from lifestyle_tracker.domain.training import FitnessLevel, TrainingGoal


class ProfileUpdateRequest(BaseModel):
    """Partial profile update; identity and timestamps cannot be sent."""

    model_config = ConfigDict(extra="forbid")

    username: str | None = None
    age: int | None = Field(default=None, ge=0, le=130)
    weight: float | None = Field(default=None, gt=0)
    height: float | None = Field(default=None, gt=0)
    gender: str | None = None
    fitness_level: FitnessLevel | None = None
    training_experience_months: int | None = Field(default=None, ge=0)
    available_training_days: int | None = Field(default=None, ge=1, le=7)
    primary_goal: TrainingGoal | None = None
    onboarding_completed: bool | None = None


class ProfileImageRequest(BaseModel):
    """New profile image reference."""

    image_url: str = Field(min_length=1)


class NutritionSyncRequest(BaseModel):
    """How many recent diary days to pull into the local cache."""

    days: int = Field(default=1, ge=1, le=30)
    force: bool = False
