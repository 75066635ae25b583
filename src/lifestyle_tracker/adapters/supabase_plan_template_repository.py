"""Supabase repository for the training plan catalog."""

from dataclasses import dataclass

from supabase import Client

from lifestyle_tracker.domain.training import (
    Completeness,
    FitnessLevel,
    PlanTemplate,
    TrainingGoal,
)
from lifestyle_tracker.services.recommendations import PlanTemplateRepository


@dataclass
class SupabasePlanTemplateRepository(PlanTemplateRepository):
    """Reads active plan templates with their pre-computed volume columns."""

    client: Client

    def list_active(self) -> list[PlanTemplate]:
        """Return every active template."""
        response = (
            self.client.table("plan_templates")
            .select(
                "id, name, plan_type, fitness_level, days_per_week, primary_goal, "
                "min_training_experience_months, exercises_per_workout, "
                "estimated_sets_per_week, completion_status, is_active"
            )
            .eq("is_active", True)
            .order("name", desc=False)
            .execute()
        )
        return [_parse_template(row) for row in response.data or []]


def _enum_or_raw(enum_type, value: object):  # type: ignore[no-untyped-def]
    """Keep unknown catalog strings so scoring can treat them as incompatible."""
    if value is None:
        return None
    try:
        return enum_type(value)
    except ValueError:
        return str(value)


def _parse_template(row: dict[str, object]) -> PlanTemplate:
    exercises = row.get("exercises_per_workout")
    sets = row.get("estimated_sets_per_week")
    status = row.get("completion_status")
    return PlanTemplate(
        id=str(row["id"]),
        name=str(row.get("name") or ""),
        plan_type=str(row.get("plan_type") or ""),
        fitness_level=_enum_or_raw(FitnessLevel, row.get("fitness_level")) or "",
        days_per_week=int(row.get("days_per_week") or 0),
        primary_goal=_enum_or_raw(TrainingGoal, row.get("primary_goal")),
        min_training_experience_months=int(
            row.get("min_training_experience_months") or 0
        ),
        exercises_per_workout=int(exercises) if exercises is not None else None,
        estimated_sets_per_week=int(sets) if sets is not None else None,
        completion_status=(
            Completeness.COMPLETE
            if status == Completeness.COMPLETE
            else Completeness.INCOMPLETE
        ),
        is_active=bool(row.get("is_active", True)),
    )
