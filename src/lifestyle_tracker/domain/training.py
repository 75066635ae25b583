"""Training plan domain models used by the recommendation scorer."""

from dataclasses import dataclass
from enum import StrEnum

from lifestyle_tracker.domain.errors import ValidationError
from lifestyle_tracker.domain.profiles import UserProfile


class FitnessLevel(StrEnum):
    """Training experience bands, ordered from least to most experienced."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)


_LEVEL_ORDER = (FitnessLevel.BEGINNER, FitnessLevel.INTERMEDIATE, FitnessLevel.ADVANCED)


class TrainingGoal(StrEnum):
    """Primary focus of a user or a plan."""

    STRENGTH = "strength"
    HYPERTROPHY = "hypertrophy"
    BOTH = "both"
    GENERAL_FITNESS = "general_fitness"
    POWERLIFTING = "powerlifting"


class Completeness(StrEnum):
    """Whether a plan template is fully authored with exercises."""

    COMPLETE = "complete"
    INCOMPLETE = "incomplete"


class RecommendationTier(StrEnum):
    """Bucket derived from the total recommendation score."""

    OPTIMAL = "optimal"
    GOOD = "good"
    ACCEPTABLE = "acceptable"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class TrainingProfile:
    """The four profile facts the scorer needs."""

    fitness_level: FitnessLevel
    training_experience_months: int
    available_training_days: int
    primary_goal: TrainingGoal

    @classmethod
    def from_user_profile(cls, profile: UserProfile) -> "TrainingProfile":
        """Build a scoring profile, rejecting incomplete onboarding data."""
        missing = [
            name
            for name in (
                "fitness_level",
                "training_experience_months",
                "available_training_days",
                "primary_goal",
            )
            if getattr(profile, name) is None
        ]
        if missing:
            raise ValidationError(
                f"Profile {profile.id} is missing {', '.join(missing)}",
                user_id=profile.id,
                missing=missing,
            )
        try:
            level = FitnessLevel(profile.fitness_level)
            goal = TrainingGoal(profile.primary_goal)
        except ValueError as exc:
            raise ValidationError(str(exc), user_id=profile.id) from exc
        months = int(profile.training_experience_months)
        days = int(profile.available_training_days)
        if months < 0:
            raise ValidationError("training_experience_months must be >= 0")
        if not 1 <= days <= 7:
            raise ValidationError("available_training_days must be between 1 and 7")
        return cls(
            fitness_level=level,
            training_experience_months=months,
            available_training_days=days,
            primary_goal=goal,
        )


@dataclass(frozen=True)
class PlanTemplate:
    """A plan from the catalog.

    Level and goal keep the raw catalog string when it is not a known value so
    scoring can fall back to its lowest compatibility instead of failing.
    ``exercises_per_workout`` is pre-computed by the catalog; ``None`` means the
    scorer uses its neutral volume score.
    """

    id: str
    name: str
    fitness_level: FitnessLevel | str
    days_per_week: int
    primary_goal: TrainingGoal | str | None = None
    plan_type: str = ""
    min_training_experience_months: int = 0
    exercises_per_workout: int | None = None
    estimated_sets_per_week: int | None = None
    completion_status: Completeness = Completeness.INCOMPLETE
    is_active: bool = True


@dataclass(frozen=True)
class ScoreBreakdown:
    """Sub-scores (0-100) that make up a recommendation."""

    experience: float
    frequency: float
    goal: float
    volume: float


@dataclass(frozen=True)
class VolumeModification:
    """Suggested tweak when an experienced user runs an easier plan."""

    sets_increase: str
    advanced_techniques: tuple[str, ...]


@dataclass(frozen=True)
class PlanRecommendation:
    """A scored plan template with its justification."""

    template: PlanTemplate
    total_score: float
    breakdown: ScoreBreakdown
    completeness: Completeness
    tier: RecommendationTier
    reasoning: tuple[str, ...]
    volume_modification: VolumeModification | None = None
