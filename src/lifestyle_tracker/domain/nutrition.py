"""Nutrition diary domain models."""

from dataclasses import dataclass, field
from datetime import date, datetime


@dataclass(frozen=True)
class DailyNutritionSummary:
    """Totals and goals for one diary day."""

    day: date
    calorie_goal: int
    calories_consumed: int = 0
    calories_burned: int = 0
    net_calories: int = 0
    protein_consumed: float = 0.0
    protein_goal: float = 0.0
    carbs_consumed: float = 0.0
    carbs_goal: float = 0.0
    fat_consumed: float = 0.0
    fat_goal: float = 0.0
    fiber_consumed: float = 0.0
    sugar_consumed: float = 0.0
    sodium_consumed: float = 0.0
    water_consumed_ml: int = 0
    water_goal_ml: int = 2000
    last_synced: datetime | None = None


@dataclass(frozen=True)
class NutritionCacheStats:
    """Coverage of the local nutrition window."""

    total_days: int
    oldest_day: date | None
    newest_day: date | None
    last_sync: datetime | None


@dataclass(frozen=True)
class SyncResult:
    """Outcome of pulling recent diary days into the local cache."""

    success: bool
    days_synced: int
    errors: list[str] = field(default_factory=list)
    last_sync: datetime | None = None
