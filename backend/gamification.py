"""
Growth Journal - Streak & Points Engine
Derives streaks, point totals and levels from the activity log.

Everything here is recomputed from scratch on each call. The cached profile
is never read as an input.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional, Iterable

from pydantic import BaseModel

from activity_log import ActivityLog
from config import get_gamification_config, GamificationConfig
from models import DailyRecord
from points_history import PointsLedger


def utc_today() -> date:
    """Calendar day used for check-ins and streak anchoring."""
    return datetime.now(timezone.utc).date()


# ============================================
# PURE HELPERS
# ============================================

def clamp_score(value: Optional[int]) -> Optional[int]:
    """Clamp a stored 1-10 score. Missing scores stay None."""
    if value is None:
        return None
    return min(max(int(value), 1), 10)


def clamp_count(value: Optional[int]) -> int:
    if value is None:
        return 0
    return max(int(value), 0)


def level_for_points(points: int, config: Optional[GamificationConfig] = None) -> int:
    """level = floor(points / 100) + 1"""
    cfg = config or get_gamification_config()
    return max(points, 0) // cfg.points_per_level + 1


def points_to_next_level(points: int, config: Optional[GamificationConfig] = None) -> int:
    cfg = config or get_gamification_config()
    return level_for_points(points, cfg) * cfg.points_per_level - max(points, 0)


def quality_bonus(record: DailyRecord, config: Optional[GamificationConfig] = None) -> int:
    cfg = config or get_gamification_config()
    bonus = 0
    for score in (record.mood_score, record.energy_level, record.productivity_score):
        score = clamp_score(score)
        if score is not None and score >= cfg.quality_threshold:
            bonus += cfg.quality_bonus
    return bonus


def goal_bonus(record: DailyRecord, config: Optional[GamificationConfig] = None) -> int:
    cfg = config or get_gamification_config()
    return clamp_count(record.goals_completed) * cfg.goal_bonus


def record_reward(record: DailyRecord, config: Optional[GamificationConfig] = None) -> int:
    """Points one daily record contributes: base + quality bonuses + goal bonus."""
    cfg = config or get_gamification_config()
    return cfg.record_points + quality_bonus(record, cfg) + goal_bonus(record, cfg)


def streak_milestone_bonus(streak: int, config: Optional[GamificationConfig] = None) -> int:
    """Fixed block bonus for every complete week of the current streak."""
    cfg = config or get_gamification_config()
    return (max(streak, 0) // 7) * cfg.streak_week_bonus


def streak_from_dates(active_dates: Iterable[date], today: date, max_days: int) -> int:
    """Count consecutive active days ending at today.

    Anchored to today: no activity today means 0, whatever came before.
    The walk stops after max_days.
    """
    active = set(active_dates)
    streak = 0
    cursor = today
    while streak < max_days and cursor in active:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


# ============================================
# STREAK CALCULATOR
# ============================================

class StreakCalculator:
    """Unified streak over filed records and check-ins. Focus sessions do not count."""

    def __init__(self, activity_log: ActivityLog, config: Optional[GamificationConfig] = None):
        self.activity_log = activity_log
        self.config = config or get_gamification_config()

    async def compute_streak(self, user_id: str, today: Optional[date] = None) -> int:
        today = today or utc_today()
        lookback = self.config.streak_lookback_days
        window_start = today - timedelta(days=lookback - 1)

        record_dates = await self.activity_log.get_record_dates(user_id, window_start, today)
        checkin_dates = await self.activity_log.get_checkin_dates(user_id, window_start, today)

        return streak_from_dates(record_dates | checkin_dates, today, lookback)


# ============================================
# POINTS ACCUMULATOR
# ============================================

class PointsBreakdown(BaseModel):
    record_count: int = 0
    record_points: int = 0
    quality_points: int = 0
    goal_points: int = 0
    checkin_count: int = 0
    checkin_points: int = 0
    streak: int = 0
    streak_points: int = 0
    manual_points: int = 0

    @property
    def total(self) -> int:
        return (
            self.record_points + self.quality_points + self.goal_points
            + self.checkin_points + self.streak_points + self.manual_points
        )


class PointsAccumulator:
    """Total point balance, recomputed from the full log on every call.

    The milestone component uses the current streak, so it drops when the
    streak resets. Manual awards (focus sessions) exist only in the ledger
    and are added from there.
    """

    def __init__(
        self,
        activity_log: ActivityLog,
        ledger: PointsLedger,
        streaks: Optional[StreakCalculator] = None,
        config: Optional[GamificationConfig] = None
    ):
        self.activity_log = activity_log
        self.ledger = ledger
        self.config = config or get_gamification_config()
        self.streaks = streaks or StreakCalculator(activity_log, self.config)

    async def compute_breakdown(self, user_id: str, today: Optional[date] = None) -> PointsBreakdown:
        cfg = self.config
        records = await self.activity_log.get_all_records(user_id)
        checkin_count = await self.activity_log.count_checkins(user_id)
        streak = await self.streaks.compute_streak(user_id, today)
        manual = await self.ledger.manual_total(user_id)

        return PointsBreakdown(
            record_count=len(records),
            record_points=len(records) * cfg.record_points,
            quality_points=sum(quality_bonus(r, cfg) for r in records),
            goal_points=sum(goal_bonus(r, cfg) for r in records),
            checkin_count=checkin_count,
            checkin_points=checkin_count * cfg.checkin_points,
            streak=streak,
            streak_points=streak_milestone_bonus(streak, cfg),
            manual_points=max(manual, 0),
        )

    async def compute_total_points(self, user_id: str, today: Optional[date] = None) -> int:
        breakdown = await self.compute_breakdown(user_id, today)
        return breakdown.total
