import asyncio
from datetime import timedelta

import pytest

from config import GamificationConfig
from gamification import (
    StreakCalculator, clamp_score, level_for_points, points_to_next_level,
    record_reward, streak_from_dates, streak_milestone_bonus
)
from models import DailyRecord, PointsSource
from database import StoreUnavailable


USER = "user-1"


class TestStreakFromDates:

    def test_counts_consecutive_days_ending_today(self, today):
        dates = {today, today - timedelta(days=1), today - timedelta(days=2), today - timedelta(days=4)}
        assert streak_from_dates(dates, today, 400) == 3

    def test_no_activity_today_resets_to_zero(self, today):
        dates = {today - timedelta(days=1), today - timedelta(days=2)}
        assert streak_from_dates(dates, today, 400) == 0

    def test_no_activity_ever(self, today):
        assert streak_from_dates(set(), today, 400) == 0

    def test_capped_at_lookback(self, today):
        dates = {today - timedelta(days=i) for i in range(30)}
        assert streak_from_dates(dates, today, 10) == 10


class TestStreakCalculator:

    def test_records_and_checkins_form_one_streak(self, activity_log, config, today):
        activity_log.add_record(USER, today)
        activity_log.add_checkin(USER, today - timedelta(days=1))
        activity_log.add_record(USER, today - timedelta(days=2))
        activity_log.add_checkin(USER, today - timedelta(days=2))
        activity_log.add_record(USER, today - timedelta(days=4))

        streak = asyncio.run(StreakCalculator(activity_log, config).compute_streak(USER, today))
        assert streak == 3

    def test_other_users_activity_is_ignored(self, activity_log, config, today):
        activity_log.add_record("someone-else", today)
        streak = asyncio.run(StreakCalculator(activity_log, config).compute_streak(USER, today))
        assert streak == 0

    def test_anchored_to_today(self, activity_log, config, today):
        activity_log.add_record(USER, today - timedelta(days=1))
        streak = asyncio.run(StreakCalculator(activity_log, config).compute_streak(USER, today))
        assert streak == 0

    def test_store_failure_propagates(self, activity_log, config, today):
        activity_log.failing.add("get_record_dates")
        with pytest.raises(StoreUnavailable):
            asyncio.run(StreakCalculator(activity_log, config).compute_streak(USER, today))


class TestRewards:

    def _record(self, **kwargs):
        return DailyRecord(id=1, user_id=USER, date="2026-03-15", **kwargs)

    def test_high_quality_record_reward(self, config):
        record = self._record(mood_score=9, energy_level=9, productivity_score=9, goals_completed=2)
        assert record_reward(record, config) == 5 + 3 * 2 + 2 * 3

    def test_plain_record_reward(self, config):
        record = self._record(mood_score=5, energy_level=8, productivity_score=7)
        assert record_reward(record, config) == 7

    def test_out_of_range_values_are_clamped(self, config):
        record = self._record(mood_score=42, energy_level=-3, productivity_score=None, goals_completed=-5)
        assert record_reward(record, config) == 5 + 2
        assert clamp_score(42) == 10
        assert clamp_score(-3) == 1
        assert clamp_score(None) is None

    def test_streak_milestone_bonus(self, config):
        assert streak_milestone_bonus(6, config) == 0
        assert streak_milestone_bonus(7, config) == 20
        assert streak_milestone_bonus(15, config) == 40


class TestLevels:

    @pytest.mark.parametrize("points,level", [(0, 1), (99, 1), (100, 2), (250, 3)])
    def test_level_for_points(self, points, level, config):
        assert level_for_points(points, config) == level

    def test_points_to_next_level(self, config):
        assert points_to_next_level(0, config) == 100
        assert points_to_next_level(250, config) == 50

    def test_custom_points_per_level(self):
        assert level_for_points(250, GamificationConfig(points_per_level=50)) == 6


class TestPointsAccumulator:

    def test_new_quality_record_adds_fixed_amount(self, activity_log, points, today):
        activity_log.add_record(USER, today - timedelta(days=10), mood=6, energy=6, productivity=6)
        activity_log.add_checkin(USER, today - timedelta(days=10))
        before = asyncio.run(points.compute_total_points(USER, today))

        activity_log.add_record(USER, today - timedelta(days=20), mood=9, energy=9, productivity=9, goals=2)
        after = asyncio.run(points.compute_total_points(USER, today))

        assert after - before == 17

    def test_breakdown_components(self, activity_log, ledger, points, today):
        for offset in range(7):
            activity_log.add_record(USER, today - timedelta(days=offset), mood=8, energy=5, productivity=5)
        activity_log.add_checkin(USER, today)
        asyncio.run(ledger.append(USER, 5, PointsSource.MANUAL))
        asyncio.run(ledger.append(USER, 7, PointsSource.RECORD))

        breakdown = asyncio.run(points.compute_breakdown(USER, today))

        assert breakdown.record_points == 35
        assert breakdown.quality_points == 14
        assert breakdown.checkin_points == 2
        assert breakdown.streak == 7
        assert breakdown.streak_points == 20
        # only manual ledger rows count; record rows mirror the log
        assert breakdown.manual_points == 5
        assert breakdown.total == 35 + 14 + 2 + 20 + 5

    def test_milestone_drops_when_streak_resets(self, activity_log, points, today):
        for offset in range(1, 8):
            activity_log.add_record(USER, today - timedelta(days=offset))
        yesterday = today - timedelta(days=1)

        assert asyncio.run(points.compute_breakdown(USER, yesterday)).streak_points == 20
        assert asyncio.run(points.compute_breakdown(USER, today)).streak_points == 0

    def test_empty_log_is_zero(self, points, today):
        assert asyncio.run(points.compute_total_points(USER, today)) == 0

    def test_store_failure_is_not_zero(self, activity_log, points, today):
        activity_log.failing.add("count_checkins")
        with pytest.raises(StoreUnavailable):
            asyncio.run(points.compute_total_points(USER, today))
