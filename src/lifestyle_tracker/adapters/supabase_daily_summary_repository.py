"""Supabase repository for per-day nutrition totals."""

from dataclasses import dataclass
from datetime import date

from supabase import Client

from lifestyle_tracker.domain.nutrition import DailyNutritionSummary
from lifestyle_tracker.services.nutrition import DailySummaryRepository

_INT_COLUMNS = (
    "calories_consumed",
    "calories_burned",
    "net_calories",
    "water_consumed_ml",
)
_FLOAT_COLUMNS = (
    "protein_consumed",
    "protein_goal",
    "carbs_consumed",
    "carbs_goal",
    "fat_consumed",
    "fat_goal",
    "fiber_consumed",
    "sugar_consumed",
    "sodium_consumed",
)


@dataclass
class SupabaseDailySummaryRepository(DailySummaryRepository):
    """Reads the daily_nutrition_summaries view."""

    client: Client

    def get_daily_summary(
        self, user_id: str, day: date
    ) -> DailyNutritionSummary | None:
        """Return the totals for one day, if the user has any."""
        response = (
            self.client.table("daily_nutrition_summaries")
            .select("*")
            .eq("user_id", user_id)
            .eq("date", day.isoformat())
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_summary(day, response.data[0])


def _parse_summary(day: date, row: dict[str, object]) -> DailyNutritionSummary:
    return DailyNutritionSummary(
        day=day,
        calorie_goal=int(row.get("calorie_goal") or 0),
        water_goal_ml=int(row.get("water_goal_ml") or 2000),
        **{column: int(row.get(column) or 0) for column in _INT_COLUMNS},
        **{column: float(row.get(column) or 0.0) for column in _FLOAT_COLUMNS},
    )
