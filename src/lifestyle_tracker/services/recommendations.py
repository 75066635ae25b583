"""Training plan recommendation scoring.

Every template is scored against the user's training profile on four
weighted sub-scores (experience, frequency, goal and volume). The weighted
score gets a bonus when the user is about to reach the template's level, and a
penalty when the template is not fully authored yet. Scoring is pure and
deterministic; unknown catalog values fall back to the lowest compatibility
instead of raising.
"""

import logging
from collections import OrderedDict
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol

from lifestyle_tracker.domain.errors import ValidationError
from lifestyle_tracker.domain.profiles import ProfileEvent, ProfileEventKind
from lifestyle_tracker.domain.training import (
    Completeness,
    FitnessLevel,
    PlanRecommendation,
    PlanTemplate,
    RecommendationTier,
    ScoreBreakdown,
    TrainingGoal,
    TrainingProfile,
    VolumeModification,
)
from lifestyle_tracker.services.events import ProfileEventBus
from lifestyle_tracker.services.profiles import ProfileSyncService

_logger = logging.getLogger(__name__)

EXPERIENCE_WEIGHT = 0.40
FREQUENCY_WEIGHT = 0.30
GOAL_WEIGHT = 0.20
VOLUME_WEIGHT = 0.10

PROXIMITY_BONUS = 1.1
COMPLETE_MULTIPLIER = 1.0
INCOMPLETE_MULTIPLIER = 0.7

LOWEST_COMPATIBILITY = 20.0
NEUTRAL_VOLUME_SCORE = 75.0
UNKNOWN_LEVEL_VOLUME_SCORE = 50.0

# Catalog programs known to be fully authored even if the status column lags.
COMPLETE_PROGRAMS = frozenset(
    {
        "starting_strength",
        "stronglifts_5x5",
        "full_body_3x",
        "phul",
        "upper_lower_hypertrophy",
        "531_intermediate",
        "ppl_6x_intermediate",
    }
)

GOAL_COMPATIBILITY: dict[TrainingGoal, dict[TrainingGoal, float]] = {
    TrainingGoal.STRENGTH: {
        TrainingGoal.STRENGTH: 100,
        TrainingGoal.POWERLIFTING: 90,
        TrainingGoal.BOTH: 80,
        TrainingGoal.GENERAL_FITNESS: 50,
        TrainingGoal.HYPERTROPHY: 40,
    },
    TrainingGoal.HYPERTROPHY: {
        TrainingGoal.HYPERTROPHY: 100,
        TrainingGoal.BOTH: 80,
        TrainingGoal.GENERAL_FITNESS: 60,
        TrainingGoal.STRENGTH: 40,
        TrainingGoal.POWERLIFTING: 30,
    },
    TrainingGoal.BOTH: {
        TrainingGoal.BOTH: 100,
        TrainingGoal.STRENGTH: 80,
        TrainingGoal.HYPERTROPHY: 80,
        TrainingGoal.POWERLIFTING: 70,
        TrainingGoal.GENERAL_FITNESS: 60,
    },
    TrainingGoal.GENERAL_FITNESS: {
        TrainingGoal.GENERAL_FITNESS: 100,
        TrainingGoal.BOTH: 70,
        TrainingGoal.HYPERTROPHY: 60,
        TrainingGoal.STRENGTH: 50,
        TrainingGoal.POWERLIFTING: 30,
    },
    TrainingGoal.POWERLIFTING: {
        TrainingGoal.POWERLIFTING: 100,
        TrainingGoal.STRENGTH: 90,
        TrainingGoal.BOTH: 70,
        TrainingGoal.GENERAL_FITNESS: 40,
        TrainingGoal.HYPERTROPHY: 30,
    },
}

# Exercises per workout that suit each level, inclusive.
IDEAL_EXERCISES_PER_WORKOUT: dict[FitnessLevel, tuple[int, int]] = {
    FitnessLevel.BEGINNER: (4, 6),
    FitnessLevel.INTERMEDIATE: (5, 7),
    FitnessLevel.ADVANCED: (6, 9),
}

ADVANCED_TECHNIQUES = ("Drop Sets", "Rest-Pause Sets", "Cluster Sets")


def _as_level(value: object) -> FitnessLevel | None:
    try:
        return FitnessLevel(value)
    except ValueError:
        return None


def _as_goal(value: object) -> TrainingGoal | None:
    try:
        return TrainingGoal(value)
    except ValueError:
        return None


def experience_match(
    user_level: FitnessLevel | str,
    user_months: int,
    template_level: FitnessLevel | str,
    template_min_months: int = 0,
) -> float:
    """Score how well the template's level suits the user (0-100)."""
    user = _as_level(user_level)
    template = _as_level(template_level)
    if user is None or template is None:
        return LOWEST_COMPATIBILITY
    if user is template:
        return 100.0
    if abs(user.rank - template.rank) != 1:
        return LOWEST_COMPATIBILITY
    if template.rank < user.rank:
        # Easier program, still useful as a deload or back to basics.
        return 60.0
    if (
        user is FitnessLevel.BEGINNER
        and user_months >= 10
        and template_min_months <= 12
    ):
        return 80.0
    if (
        user is FitnessLevel.INTERMEDIATE
        and user_months >= 30
        and template_min_months <= 36
    ):
        return 80.0
    return 50.0


def frequency_match(user_days: int, template_days: int) -> float:
    """Score the gap between available and required training days (0-100)."""
    return float(max(20, 100 - 20 * abs(user_days - template_days)))


def goal_match(
    user_goal: TrainingGoal | str, template_goal: TrainingGoal | str | None
) -> float:
    """Look up goal compatibility; a goalless template counts as general fitness."""
    user = _as_goal(user_goal)
    template = _as_goal(template_goal or TrainingGoal.GENERAL_FITNESS)
    if user is None or template is None:
        return LOWEST_COMPATIBILITY
    if user is template:
        return 100.0
    return float(GOAL_COMPATIBILITY[user].get(template, LOWEST_COMPATIBILITY))


def volume_match(
    user_level: FitnessLevel | str, exercises_per_workout: int | None
) -> float:
    """Score the template's exercises per workout against the user's ideal range."""
    if not exercises_per_workout:
        return NEUTRAL_VOLUME_SCORE
    level = _as_level(user_level)
    if level is None:
        return UNKNOWN_LEVEL_VOLUME_SCORE
    low, high = IDEAL_EXERCISES_PER_WORKOUT[level]
    if low <= exercises_per_workout <= high:
        return 100.0
    if low - 1 <= exercises_per_workout <= high + 1:
        return 80.0
    if low - 2 <= exercises_per_workout <= high + 2:
        return 60.0
    return 40.0


def adjust_score_by_months(
    score: float, user_months: int, template_level: FitnessLevel | str
) -> float:
    """Reward templates one step ahead of a user who is about to level up."""
    level = _as_level(template_level)
    if level is FitnessLevel.INTERMEDIATE and 10 <= user_months < 12:
        return min(100.0, score * PROXIMITY_BONUS)
    if level is FitnessLevel.ADVANCED and 30 <= user_months < 36:
        return min(100.0, score * PROXIMITY_BONUS)
    return score


def is_complete(template: PlanTemplate) -> bool:
    return (
        template.completion_status == Completeness.COMPLETE
        or template.plan_type in COMPLETE_PROGRAMS
    )


def recommendation_tier(total_score: float) -> RecommendationTier:
    if total_score >= 90:
        return RecommendationTier.OPTIMAL
    if total_score >= 75:
        return RecommendationTier.GOOD
    if total_score >= 60:
        return RecommendationTier.ACCEPTABLE
    return RecommendationTier.FALLBACK


def score_plan_template(
    user: TrainingProfile, template: PlanTemplate
) -> PlanRecommendation:
    """Score one template for one user."""
    breakdown = ScoreBreakdown(
        experience=experience_match(
            user.fitness_level,
            user.training_experience_months,
            template.fitness_level,
            template.min_training_experience_months or 0,
        ),
        frequency=frequency_match(user.available_training_days, template.days_per_week),
        goal=goal_match(user.primary_goal, template.primary_goal),
        volume=volume_match(user.fitness_level, template.exercises_per_workout),
    )
    weighted = (
        breakdown.experience * EXPERIENCE_WEIGHT
        + breakdown.frequency * FREQUENCY_WEIGHT
        + breakdown.goal * GOAL_WEIGHT
        + breakdown.volume * VOLUME_WEIGHT
    )
    weighted = adjust_score_by_months(
        weighted, user.training_experience_months, template.fitness_level
    )

    complete = is_complete(template)
    multiplier = COMPLETE_MULTIPLIER if complete else INCOMPLETE_MULTIPLIER
    total_score = min(100.0, weighted * multiplier)

    reasoning = _reasoning(user, template, breakdown, complete)
    volume_modification = None
    if (
        user.fitness_level is FitnessLevel.ADVANCED
        and _as_level(template.fitness_level) is FitnessLevel.INTERMEDIATE
        and total_score >= 80
    ):
        volume_modification = VolumeModification(
            sets_increase="+20%", advanced_techniques=ADVANCED_TECHNIQUES
        )
        reasoning.append("Tip: increase the volume by 20% for the best results")

    return PlanRecommendation(
        template=template,
        total_score=total_score,
        breakdown=breakdown,
        completeness=Completeness.COMPLETE if complete else Completeness.INCOMPLETE,
        tier=recommendation_tier(total_score),
        reasoning=tuple(reasoning),
        volume_modification=volume_modification,
    )


def _reasoning(
    user: TrainingProfile,
    template: PlanTemplate,
    breakdown: ScoreBreakdown,
    complete: bool,
) -> list[str]:
    reasons: list[str] = []
    if breakdown.experience >= 90:
        reasons.append("Perfect fit for your training level")
    elif breakdown.experience >= 70:
        reasons.append("Well suited to your level")
    elif breakdown.experience < 50:
        if (
            _as_level(template.fitness_level) is FitnessLevel.ADVANCED
            and user.fitness_level is FitnessLevel.INTERMEDIATE
        ):
            reasons.append("Advanced program - ready for the challenge?")
        else:
            reasons.append("Not ideal for your current level")

    days = user.available_training_days
    if breakdown.frequency == 100:
        reasons.append(f"Matches your {days} training days perfectly")
    elif breakdown.frequency >= 70:
        reasons.append(f"Compatible with your {days} training days")
    else:
        reasons.append(
            f"Requires {template.days_per_week} training days (you have {days})"
        )

    if breakdown.goal == 100:
        reasons.append("Perfect for your training goal")
    elif breakdown.goal >= 70:
        reasons.append("Well suited to your goal")

    if not complete:
        reasons.append("Still in development, available soon")
    return reasons


def prioritize_recommendations(
    recommendations: Iterable[PlanRecommendation], limit: int = 3
) -> list[PlanRecommendation]:
    """Best complete plans first; incomplete ones only fill empty slots."""
    if limit < 1:
        return []
    ranked = sorted(recommendations, key=lambda rec: rec.total_score, reverse=True)
    complete = [rec for rec in ranked if rec.completeness is Completeness.COMPLETE]
    incomplete = [rec for rec in ranked if rec.completeness is Completeness.INCOMPLETE]
    top = complete[:limit]
    if len(top) < limit:
        top.extend(incomplete[: limit - len(top)])
    return top


def get_top_recommendations(
    user: TrainingProfile, templates: Iterable[PlanTemplate], limit: int = 3
) -> list[PlanRecommendation]:
    """Score every template and return the best ``limit`` recommendations."""
    return prioritize_recommendations(
        (score_plan_template(user, template) for template in templates), limit
    )


def get_best_recommendation(
    user: TrainingProfile, templates: Iterable[PlanTemplate]
) -> PlanRecommendation | None:
    recommendations = get_top_recommendations(user, templates, limit=1)
    return recommendations[0] if recommendations else None


def format_score_breakdown(breakdown: ScoreBreakdown) -> str:
    """Render sub-scores as whole percentages, one per line."""
    return "\n".join(
        [
            f"Training level: {breakdown.experience:.0f}%",
            f"Training frequency: {breakdown.frequency:.0f}%",
            f"Training goal: {breakdown.goal:.0f}%",
            f"Training volume: {breakdown.volume:.0f}%",
        ]
    )


class PlanTemplateRepository(Protocol):
    """Catalog of plan templates."""

    def list_active(self) -> list[PlanTemplate]:
        """Return every active template."""


@dataclass
class RecommendationService:
    """Recommends plans for a user and forgets them when the profile changes.

    Results are memoised per user and limit, keeping at most ``memo_size``
    entries; the least recently used entry is dropped first.
    """

    profiles: ProfileSyncService
    templates: PlanTemplateRepository
    events: ProfileEventBus
    default_limit: int = 3
    memo_size: int = 256
    _memo: OrderedDict[tuple[str, int], list[PlanRecommendation]] = field(
        default_factory=OrderedDict, init=False
    )
    _subscribed: bool = field(default=False, init=False)

    async def initialize(self) -> None:
        if self._subscribed:
            return
        for kind in ProfileEventKind:
            self.events.on(kind, self._on_profile_event)
        self._subscribed = True

    async def recommend(
        self, user_id: str, limit: int | None = None
    ) -> list[PlanRecommendation]:
        """Return the top plans for ``user_id``.

        Raises ``ValidationError`` for a limit below 1 or a profile without
        training data, and returns an empty list when the user has no profile.
        """
        resolved_limit = self.default_limit if limit is None else limit
        if resolved_limit < 1:
            raise ValidationError(
                f"limit must be at least 1, got {resolved_limit}", user_id=user_id
            )
        memo_key = (user_id, resolved_limit)
        if memo_key in self._memo:
            self._memo.move_to_end(memo_key)
            return list(self._memo[memo_key])

        profile = await self.profiles.get_profile(user_id)
        if profile is None:
            return []
        training_profile = TrainingProfile.from_user_profile(profile)
        templates = [t for t in self.templates.list_active() if t.is_active]
        recommendations = get_top_recommendations(
            training_profile, templates, resolved_limit
        )
        _logger.info(
            "Scored %s templates for user %s, returning %s",
            len(templates),
            user_id,
            len(recommendations),
        )
        self._memo[memo_key] = recommendations
        while len(self._memo) > self.memo_size:
            self._memo.popitem(last=False)
        return list(recommendations)

    def forget(self, user_id: str) -> None:
        for memo_key in [key for key in self._memo if key[0] == user_id]:
            del self._memo[memo_key]

    def _on_profile_event(self, event: ProfileEvent) -> None:
        self.forget(event.user_id)
