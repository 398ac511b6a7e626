import asyncio
from datetime import timedelta

import pytest
from pydantic import ValidationError

from actions import SideEffectPipeline
from checkin import CheckinService
from database import StoreUnavailable
from models import DailyRecordBase, FocusSessionInput, PointsSource, Profile
from preferences import PreferenceKey, ReminderTime

USER = "user-1"


def record_input(day, **scores):
    values = {"mood_score": 5, "energy_level": 5, "productivity_score": 5}
    values.update(scores)
    return DailyRecordBase(date=day, **values)


class TestCheckin:

    def test_second_checkin_is_not_created(self, activity_log, today):
        service = CheckinService(activity_log)

        first = asyncio.run(service.check_in(USER, today))
        second = asyncio.run(service.check_in(USER, today))

        assert first.created is True
        assert second.created is False
        assert len(activity_log.checkins) == 1

    def test_concurrent_insert_is_benign(self, activity_log, today):
        activity_log.race_on_insert = True
        result = asyncio.run(CheckinService(activity_log).check_in(USER, today))

        assert result.created is False
        assert len(activity_log.checkins) == 1

    def test_new_day_creates_again(self, activity_log, today):
        service = CheckinService(activity_log)
        asyncio.run(service.check_in(USER, today - timedelta(days=1)))
        assert asyncio.run(service.check_in(USER, today)).created is True
        assert asyncio.run(service.has_checked_in(USER, today)) is True


class TestReconcile:

    def test_writes_derived_stats(self, activity_log, profiles, reconciler, today):
        asyncio.run(profiles.ensure_profile(USER))
        for offset in range(7):
            activity_log.add_record(USER, today - timedelta(days=offset))

        stats = asyncio.run(reconciler.reconcile(USER, today))

        assert stats.streak_count == 7
        assert stats.total_points == 7 * 5 + 20
        assert stats.level == 1
        assert profiles.profiles[USER].streak_count == 7

    def test_failed_computation_leaves_profile_untouched(self, activity_log, profiles, reconciler, today):
        profiles.profiles[USER] = Profile(id=USER, total_points=240, level=3, streak_count=12)
        activity_log.add_record(USER, today)
        activity_log.failing.add("count_checkins")

        with pytest.raises(StoreUnavailable):
            asyncio.run(reconciler.reconcile(USER, today))

        profile = profiles.profiles[USER]
        assert (profile.total_points, profile.level, profile.streak_count) == (240, 3, 12)
        assert profiles.writes == 0

    def test_is_idempotent(self, activity_log, profiles, reconciler, today):
        asyncio.run(profiles.ensure_profile(USER))
        activity_log.add_record(USER, today, mood=9)
        first = asyncio.run(reconciler.reconcile(USER, today))
        second = asyncio.run(reconciler.reconcile(USER, today))
        assert first == second


class TestSideEffectPipeline:

    def test_failing_step_does_not_stop_the_rest(self):
        ran = []

        async def ok():
            ran.append("ok")

        async def boom():
            raise StoreUnavailable("down")

        results = asyncio.run(
            SideEffectPipeline(USER).add("first", boom).add("second", ok).run()
        )

        assert ran == ["ok"]
        assert [(r.name, r.ok) for r in results] == [("first", False), ("second", True)]
        assert results[0].error == "down"


class TestSubmitDailyRecord:

    def test_creates_record_and_awards_reward(self, actions, ledger, profiles, today):
        result = asyncio.run(actions.submit_daily_record(
            USER, record_input(today, mood_score=9, energy_level=9, productivity_score=9, goals_completed=2)
        ))

        assert result["created"] is True
        assert result["points_awarded"] == 17
        assert [(e.source, e.points_delta) for e in ledger.entries] == [(PointsSource.RECORD, 17)]
        assert USER in profiles.profiles

    def test_update_awards_only_the_difference(self, actions, ledger, today):
        asyncio.run(actions.submit_daily_record(USER, record_input(today)))
        result = asyncio.run(actions.submit_daily_record(USER, record_input(today, mood_score=9)))

        assert result["created"] is False
        assert result["points_awarded"] == 2
        assert [e.points_delta for e in ledger.entries] == [5, 2]

    def test_unchanged_update_writes_no_ledger_row(self, actions, ledger, today):
        asyncio.run(actions.submit_daily_record(USER, record_input(today)))
        asyncio.run(actions.submit_daily_record(USER, record_input(today)))
        assert len(ledger.entries) == 1

    def test_losing_a_concurrent_first_insert_awards_nothing(self, actions, activity_log, ledger, today):
        activity_log.race_on_upsert = True

        result = asyncio.run(actions.submit_daily_record(USER, record_input(today, mood_score=9)))

        assert result["created"] is False
        assert result["points_awarded"] == 0
        assert ledger.entries == []
        assert activity_log.records[(USER, today)].mood_score == 9

    def test_ledger_failure_does_not_fail_the_save(self, actions, activity_log, ledger, profiles, today):
        ledger.failing.add("append")

        result = asyncio.run(actions.submit_daily_record(USER, record_input(today)))

        assert result["success"] is True
        assert (USER, today) in activity_log.records
        steps = {s["step"]: s["ok"] for s in result["side_effects"]}
        assert steps == {"ledger": False, "reconcile": True}

    def test_reconcile_failure_does_not_fail_the_save(self, actions, activity_log, today):
        activity_log.failing.add("count_checkins")
        result = asyncio.run(actions.submit_daily_record(USER, record_input(today)))
        assert result["success"] is True
        assert {s["step"]: s["ok"] for s in result["side_effects"]}["reconcile"] is False

    def test_scores_out_of_range_are_rejected(self, today):
        with pytest.raises(ValidationError):
            record_input(today, mood_score=11)
        with pytest.raises(ValidationError):
            record_input(today, goals_completed=-1)


class TestSession:

    def test_sign_in_checks_in_once(self, actions, activity_log, ledger, preferences, today):
        first = asyncio.run(actions.sign_in(USER, today))
        second = asyncio.run(actions.sign_in(USER, today))

        assert first["checkin_created"] is True
        assert second["checkin_created"] is False
        assert second["checked_in"] is True
        assert len(activity_log.checkins) == 1
        assert [e.source for e in ledger.entries] == [PointsSource.CHECKIN]
        assert first["profile"].streak_count == 1
        assert first["profile"].total_points == 2

    def test_celebration_is_consumed_once(self, actions, today):
        asyncio.run(actions.sign_in(USER, today))
        assert asyncio.run(actions.consume_celebration(USER)) == 2
        assert asyncio.run(actions.consume_celebration(USER)) is None

    def test_checkin_failure_still_signs_in(self, actions, activity_log, today):
        activity_log.failing.add("insert_checkin")

        result = asyncio.run(actions.sign_in(USER, today))

        assert result["success"] is True
        assert result["checked_in"] is False
        steps = {s["step"]: s["ok"] for s in result["side_effects"]}
        assert steps["checkin"] is False
        assert steps["reconcile"] is True

    def test_sign_out_marker_cleared_by_next_sign_in(self, actions, preferences, today):
        asyncio.run(actions.sign_out(USER))
        assert asyncio.run(preferences.get(USER, PreferenceKey.JUST_SIGNED_OUT)) is True

        asyncio.run(actions.sign_in(USER, today))
        assert asyncio.run(preferences.get(USER, PreferenceKey.JUST_SIGNED_OUT)) is False


class TestFocusSession:

    def _session(self, **kwargs):
        values = {"user_id": USER, "planned_minutes": 25, "actual_minutes": 25}
        values.update(kwargs)
        return FocusSessionInput(**values)

    def test_successful_session_earns_manual_bonus(self, actions, ledger, points):
        result = asyncio.run(actions.complete_focus_session(self._session()))

        assert result["points_awarded"] == 5
        assert ledger.entries[0].source == PointsSource.MANUAL
        assert asyncio.run(points.compute_breakdown(USER)).manual_points == 5

    def test_abandoned_session_earns_nothing(self, actions, ledger):
        result = asyncio.run(actions.complete_focus_session(self._session(is_success=False, actual_minutes=7)))
        assert result["points_awarded"] == 0
        assert ledger.entries == []


class TestPreferences:

    def test_defaults(self, preferences):
        assert asyncio.run(preferences.get(USER, PreferenceKey.THEME_MODE)) == "system"
        assert asyncio.run(preferences.get(USER, PreferenceKey.REMINDER_TIME)) is None

    def test_typed_values(self, preferences):
        value = asyncio.run(preferences.set(USER, PreferenceKey.REMINDER_TIME, {"hour": 21, "minute": 30}))
        assert value == ReminderTime(hour=21, minute=30)

        with pytest.raises(ValidationError):
            asyncio.run(preferences.set(USER, PreferenceKey.THEME_MODE, "neon"))
        with pytest.raises(ValidationError):
            asyncio.run(preferences.set(USER, PreferenceKey.REMINDER_TIME, {"hour": 25, "minute": 0}))
