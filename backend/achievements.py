"""
Growth Journal - Achievement System
Static achievement catalog evaluated against current activity aggregates.

Unlock state is derived, never stored: evaluating twice with no new activity
gives the same result. Detecting "new" unlocks is left to the caller, who
diffs against an earlier evaluation with newly_unlocked().
"""

from datetime import date, timedelta
from typing import Annotated, Optional, List, Dict, Union, Literal, Callable, Iterable, Tuple
from pydantic import BaseModel, Field, computed_field
from enum import Enum

from activity_log import ActivityLog
from config import GamificationConfig, get_gamification_config
from gamification import StreakCalculator, clamp_score, clamp_count, utc_today


# ============================================
# ENUMS
# ============================================

class AchievementCategory(str, Enum):
    STREAK = "streak"
    RECORDS = "records"
    MOOD = "mood"
    GOAL = "goal"
    SPECIAL = "special"


# ============================================
# REQUIREMENTS
# ============================================

class StreakRequirement(BaseModel):
    kind: Literal["streak"] = "streak"
    days: int = Field(ge=1)


class TotalRecordsRequirement(BaseModel):
    kind: Literal["total_records"] = "total_records"
    count: int = Field(ge=1)


class MoodAverageRequirement(BaseModel):
    kind: Literal["mood_average"] = "mood_average"
    threshold: float = Field(gt=0, le=10)
    window_days: int = Field(ge=1)


class GoalsCompletedRequirement(BaseModel):
    kind: Literal["goals_completed"] = "goals_completed"
    count: int = Field(ge=1)


class SpecialRequirement(BaseModel):
    kind: Literal["special"] = "special"
    code: str
    count: int = Field(default=1, ge=1)


Requirement = Annotated[
    Union[
        StreakRequirement,
        TotalRecordsRequirement,
        MoodAverageRequirement,
        GoalsCompletedRequirement,
        SpecialRequirement,
    ],
    Field(discriminator="kind"),
]


# ============================================
# PYDANTIC MODELS
# ============================================

class Achievement(BaseModel):
    id: str
    title: str
    description: str
    icon: str
    category: AchievementCategory
    points: int
    requirement: Requirement


class AchievementStatus(BaseModel):
    achievement: Achievement
    unlocked: bool
    current_value: float
    target_value: float

    @computed_field
    @property
    def percentage(self) -> float:
        if self.target_value <= 0:
            return 0.0
        return round(min(self.current_value / self.target_value, 1.0) * 100, 1)


class AchievementStats(BaseModel):
    """Aggregates the catalog is evaluated against."""
    today: date
    total_records: int = 0
    streak: int = 0
    goals_completed_total: int = 0
    balanced_days: int = 0
    mood_by_date: Dict[date, int] = Field(default_factory=dict)

    def mood_average(self, window_days: int) -> float:
        """Average mood over records in the last window_days days.

        Uses however many records fall inside the window; none gives 0.
        """
        start = self.today - timedelta(days=window_days - 1)
        scores = [m for d, m in self.mood_by_date.items() if start <= d <= self.today]
        if not scores:
            return 0.0
        return sum(scores) / len(scores)


# ============================================
# ACHIEVEMENT CATALOG
# ============================================

ACHIEVEMENTS: List[Achievement] = [
    Achievement(
        id="first_record",
        title="First Entry",
        description="File your first daily record",
        icon="🌱",
        category=AchievementCategory.RECORDS,
        points=10,
        requirement=TotalRecordsRequirement(count=1),
    ),
    Achievement(
        id="streak_7",
        title="One Week Strong",
        description="Stay active 7 days in a row",
        icon="📅",
        category=AchievementCategory.STREAK,
        points=50,
        requirement=StreakRequirement(days=7),
    ),
    Achievement(
        id="streak_15",
        title="Half a Month",
        description="Stay active 15 days in a row",
        icon="🔥",
        category=AchievementCategory.STREAK,
        points=100,
        requirement=StreakRequirement(days=15),
    ),
    Achievement(
        id="streak_30",
        title="Month Master",
        description="Stay active 30 days in a row",
        icon="💎",
        category=AchievementCategory.STREAK,
        points=200,
        requirement=StreakRequirement(days=30),
    ),
    Achievement(
        id="streak_100",
        title="Hundred Days of Growth",
        description="Stay active 100 days in a row",
        icon="🏆",
        category=AchievementCategory.STREAK,
        points=500,
        requirement=StreakRequirement(days=100),
    ),
    Achievement(
        id="positive_week",
        title="Positive Mindset",
        description="Average mood of 7 or more over the last 7 days",
        icon="😊",
        category=AchievementCategory.MOOD,
        points=30,
        requirement=MoodAverageRequirement(threshold=7, window_days=7),
    ),
    Achievement(
        id="goals_100",
        title="Goal Getter",
        description="Complete 100 goals",
        icon="🎯",
        category=AchievementCategory.GOAL,
        points=150,
        requirement=GoalsCompletedRequirement(count=100),
    ),
    Achievement(
        id="records_50",
        title="Dedicated Journaler",
        description="File 50 daily records",
        icon="📝",
        category=AchievementCategory.RECORDS,
        points=100,
        requirement=TotalRecordsRequirement(count=50),
    ),
    Achievement(
        id="calm_month",
        title="Emotional Balance",
        description="Average mood of 8 or more over the last 30 days",
        icon="🧘",
        category=AchievementCategory.MOOD,
        points=100,
        requirement=MoodAverageRequirement(threshold=8, window_days=30),
    ),
    Achievement(
        id="well_rounded",
        title="Well Rounded",
        description="Score high on mood, energy and productivity on the same day",
        icon="🌈",
        category=AchievementCategory.SPECIAL,
        points=20,
        requirement=SpecialRequirement(code="balanced_days", count=1),
    ),
]


# Special predicates: code -> stat value they measure
SPECIAL_METRICS: Dict[str, Callable[[AchievementStats], float]] = {
    "balanced_days": lambda stats: stats.balanced_days,
}


def requirement_progress(requirement: Requirement, stats: AchievementStats) -> Tuple[float, float]:
    """Return (current, target) for a requirement. Unlocked when current >= target."""
    if isinstance(requirement, StreakRequirement):
        return stats.streak, requirement.days
    if isinstance(requirement, TotalRecordsRequirement):
        return stats.total_records, requirement.count
    if isinstance(requirement, MoodAverageRequirement):
        return stats.mood_average(requirement.window_days), requirement.threshold
    if isinstance(requirement, GoalsCompletedRequirement):
        return stats.goals_completed_total, requirement.count
    if isinstance(requirement, SpecialRequirement):
        metric = SPECIAL_METRICS.get(requirement.code)
        if metric is None:
            raise ValueError(f"Unknown special requirement: {requirement.code}")
        return metric(stats), requirement.count
    raise TypeError(f"Unhandled requirement type: {type(requirement).__name__}")


def evaluate_catalog(
    stats: AchievementStats,
    catalog: Optional[List[Achievement]] = None
) -> List[AchievementStatus]:
    """Pure evaluation of every catalog entry against the given aggregates."""
    results = []
    for achievement in catalog or ACHIEVEMENTS:
        current, target = requirement_progress(achievement.requirement, stats)
        results.append(AchievementStatus(
            achievement=achievement,
            unlocked=current >= target,
            current_value=current,
            target_value=target,
        ))
    return results


def unlocked_ids(statuses: Iterable[AchievementStatus]) -> List[str]:
    return sorted(s.achievement.id for s in statuses if s.unlocked)


def newly_unlocked(previous_ids: Iterable[str], statuses: Iterable[AchievementStatus]) -> List[AchievementStatus]:
    """Achievements unlocked now that were not in the previous snapshot."""
    known = set(previous_ids)
    return [s for s in statuses if s.unlocked and s.achievement.id not in known]


# ============================================
# ACHIEVEMENT EVALUATOR
# ============================================

class AchievementEvaluator:
    """Gathers aggregates from the activity log and evaluates the catalog."""

    def __init__(
        self,
        activity_log: ActivityLog,
        streaks: Optional[StreakCalculator] = None,
        catalog: Optional[List[Achievement]] = None,
        config: Optional[GamificationConfig] = None
    ):
        self.activity_log = activity_log
        self.config = config or get_gamification_config()
        self.streaks = streaks or StreakCalculator(activity_log, self.config)
        self.catalog = catalog or ACHIEVEMENTS

    async def collect_stats(self, user_id: str, today: Optional[date] = None) -> AchievementStats:
        today = today or utc_today()
        threshold = self.config.quality_threshold
        records = await self.activity_log.get_all_records(user_id)
        streak = await self.streaks.compute_streak(user_id, today)

        mood_by_date = {}
        balanced_days = 0
        for record in records:
            mood = clamp_score(record.mood_score)
            if mood is not None:
                mood_by_date[record.date] = mood
            scores = [clamp_score(record.mood_score), clamp_score(record.energy_level),
                      clamp_score(record.productivity_score)]
            if all(s is not None and s >= threshold for s in scores):
                balanced_days += 1

        return AchievementStats(
            today=today,
            total_records=len(records),
            streak=streak,
            goals_completed_total=sum(clamp_count(r.goals_completed) for r in records),
            balanced_days=balanced_days,
            mood_by_date=mood_by_date,
        )

    async def evaluate(self, user_id: str, today: Optional[date] = None) -> List[AchievementStatus]:
        stats = await self.collect_stats(user_id, today)
        return evaluate_catalog(stats, self.catalog)


def achievement_summary(statuses: List[AchievementStatus]) -> Dict[str, object]:
    """Counts and per-category totals for display."""
    by_category: Dict[str, Dict[str, int]] = {}
    for status in statuses:
        bucket = by_category.setdefault(status.achievement.category.value, {"total": 0, "unlocked": 0})
        bucket["total"] += 1
        if status.unlocked:
            bucket["unlocked"] += 1

    total = len(statuses)
    earned = sum(1 for s in statuses if s.unlocked)
    return {
        "total_achievements": total,
        "unlocked_achievements": earned,
        "completion_percent": round(earned / total * 100, 1) if total > 0 else 0,
        "reward_points": sum(s.achievement.points for s in statuses if s.unlocked),
        "by_category": by_category,
    }
