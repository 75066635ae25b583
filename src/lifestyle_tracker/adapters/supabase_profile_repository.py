"""Supabase repository for user profiles."""

from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from lifestyle_tracker.domain.profiles import UserProfile
from lifestyle_tracker.services.profiles import ProfileRepository


@dataclass
class SupabaseProfileRepository(ProfileRepository):
    """Supabase-backed profile store."""

    client: Client

    def get_profile(self, user_id: str) -> UserProfile | None:
        """Return the profile for a user, if present."""
        response = (
            self.client.table("profiles")
            .select("*")
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_profile(response.data[0])

    def update_profile(self, user_id: str, fields: dict[str, object]) -> UserProfile:
        """Apply a partial update and return the stored profile."""
        payload = {
            name: value.isoformat() if isinstance(value, datetime) else value
            for name, value in fields.items()
        }
        payload["updated_at"] = datetime.now(tz=UTC).isoformat()
        response = (
            self.client.table("profiles").update(payload).eq("id", user_id).execute()
        )
        if not response.data:
            raise RuntimeError(f"Failed to update profile {user_id}")
        return _parse_profile(response.data[0])

    def delete_profile(self, user_id: str) -> None:
        """Delete a profile."""
        self.client.table("profiles").delete().eq("id", user_id).execute()


def _parse_time(value: object) -> datetime | None:
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return None


def _optional_int(value: object) -> int | None:
    return int(value) if value is not None else None


def _optional_float(value: object) -> float | None:
    return float(value) if value is not None else None


def _parse_profile(row: dict[str, object]) -> UserProfile:
    return UserProfile(
        id=str(row["id"]),
        username=row.get("username") or None,
        profile_image_url=row.get("profile_image_url") or None,
        age=_optional_int(row.get("age")),
        weight=_optional_float(row.get("weight")),
        height=_optional_float(row.get("height")),
        gender=row.get("gender") or None,
        fitness_level=row.get("fitness_level") or None,
        training_experience_months=_optional_int(row.get("training_experience_months")),
        available_training_days=_optional_int(row.get("available_training_days")),
        primary_goal=row.get("primary_goal") or None,
        onboarding_completed=bool(row.get("onboarding_completed") or False),
        created_at=_parse_time(row.get("created_at")),
        updated_at=_parse_time(row.get("updated_at")),
    )
