"""Postgres-backed stores against a stub asyncpg pool: SQL arguments, row mapping
and the driver-error mapping in Database."""

import asyncio
from datetime import date, datetime, timezone

import asyncpg
import pytest

from activity_log import ActivityLog
from checkin import CheckinService
from config import get_gamification_config
from database import ConstraintViolation, Database, IntegrityViolation, StoreUnavailable
from goals import GoalStore
from models import DailyRecordBase, GameStats, GoalStatus, PointsSource
from points_history import PointsLedger
from preferences import PreferenceKey, PreferenceStore, ReminderTime
from profiles import ProfileStore

from fakes import stub_database

USER = "user-1"
DAY = date(2026, 3, 15)
NOW = datetime(2026, 3, 15, 20, 0, tzinfo=timezone.utc)


def record_row(**overrides):
    row = {
        "id": 7, "user_id": USER, "date": DAY,
        "mood_score": 7, "energy_level": 6, "productivity_score": 8, "goals_completed": 1,
        "gratitude_notes": None, "achievements": [], "challenges": [], "reflections": None,
        "created_at": NOW, "updated_at": NOW,
    }
    row.update(overrides)
    return row


def ledger_row(**overrides):
    row = {"id": 1, "user_id": USER, "points_delta": 10, "source": "record",
           "reference_id": "7", "note": "Daily record", "created_at": NOW}
    row.update(overrides)
    return row


class TestDatabaseErrorMapping:

    def test_missing_pool_is_unavailable(self):
        with pytest.raises(StoreUnavailable):
            asyncio.run(Database().fetch("SELECT 1"))

    def test_unique_violation_is_constraint_violation(self):
        database, _ = stub_database(asyncpg.UniqueViolationError("duplicate key"))
        with pytest.raises(ConstraintViolation):
            asyncio.run(database.execute("INSERT INTO t VALUES ($1)", 1))

    @pytest.mark.parametrize("error", [
        asyncpg.NotNullViolationError("null value in column"),
        asyncpg.ForeignKeyViolationError("violates foreign key"),
        asyncpg.CheckViolationError("violates check constraint"),
    ])
    def test_other_integrity_errors_are_integrity_violations(self, error):
        database, _ = stub_database(error)
        with pytest.raises(IntegrityViolation):
            asyncio.run(database.execute_returning("UPDATE t SET x = $1", None))

    @pytest.mark.parametrize("error", [
        asyncpg.PostgresError("relation does not exist"),
        asyncpg.InterfaceError("connection is closed"),
        OSError("connection refused"),
    ])
    def test_driver_failures_are_unavailable(self, error):
        database, _ = stub_database(error)
        with pytest.raises(StoreUnavailable):
            asyncio.run(database.fetch_one("SELECT 1"))

    def test_rows_become_dicts(self):
        database, conn = stub_database([{"id": 1}, {"id": 2}])
        assert asyncio.run(database.fetch("SELECT id FROM t WHERE x = $1", "a")) == [{"id": 1}, {"id": 2}]
        assert conn.calls == [("fetch", "SELECT id FROM t WHERE x = $1", ("a",))]


class TestActivityLogStore:

    def test_upsert_reports_insert(self):
        database, conn = stub_database(None, record_row(inserted=True))
        data = DailyRecordBase(date=DAY, mood_score=7, energy_level=6, productivity_score=8, goals_completed=1)

        record, previous, created = asyncio.run(ActivityLog(database).upsert_record(USER, data))

        assert created is True
        assert previous is None
        assert record.id == 7 and record.mood_score == 7
        method, query, args = conn.calls[1]
        assert "ON CONFLICT (user_id, date) DO UPDATE" in query
        assert "(xmax = 0) AS inserted" in query
        assert args[:5] == (USER, DAY, 7, 6, 8)

    def test_upsert_reports_update(self):
        database, _ = stub_database(record_row(mood_score=4), record_row(mood_score=9, inserted=False))
        data = DailyRecordBase(date=DAY, mood_score=9, energy_level=6, productivity_score=8)

        record, previous, created = asyncio.run(ActivityLog(database).upsert_record(USER, data))

        assert created is False
        assert previous.mood_score == 4
        assert record.mood_score == 9

    def test_concurrent_checkin_is_not_created(self):
        database, conn = stub_database(None, asyncpg.UniqueViolationError("duplicate key"))

        result = asyncio.run(CheckinService(ActivityLog(database)).check_in(USER, DAY))

        assert result.created is False
        assert [c[0] for c in conn.calls] == ["fetchrow", "fetchrow"]
        assert conn.calls[1][1].startswith("INSERT INTO daily_checkins")
        assert conn.calls[1][2] == (USER, DAY)

    def test_first_checkin_is_created(self):
        database, _ = stub_database(None, {"id": 3, "user_id": USER, "date": DAY, "created_at": NOW})
        assert asyncio.run(CheckinService(ActivityLog(database)).check_in(USER, DAY)).created is True


class TestPointsLedgerStore:

    def test_append_passes_columns_and_maps_row(self):
        database, conn = stub_database(ledger_row(points_delta=5, source="manual", reference_id=None, note="Focus"))

        entry = asyncio.run(PointsLedger(database).append(USER, 5, PointsSource.MANUAL, note="Focus"))

        assert entry.source == PointsSource.MANUAL
        assert entry.points_delta == 5
        assert conn.calls[0][2] == (USER, 5, "manual", None, "Focus")

    def test_list_is_newest_first_with_default_limit(self):
        database, conn = stub_database([ledger_row(id=2), ledger_row(id=1)])

        entries = asyncio.run(PointsLedger(database).list(USER))

        assert [e.id for e in entries] == [2, 1]
        _, query, args = conn.calls[0]
        assert "ORDER BY created_at DESC" in query
        assert args == (USER, get_gamification_config().history_limit)

    def test_list_explicit_limit(self):
        database, conn = stub_database([])
        assert asyncio.run(PointsLedger(database).list(USER, limit=3)) == []
        assert conn.calls[0][2] == (USER, 3)

    def test_manual_total_of_empty_ledger(self):
        database, _ = stub_database(0)
        assert asyncio.run(PointsLedger(database).manual_total(USER)) == 0


class TestProfileStoreSql:

    def test_write_stats_single_statement(self):
        row = {"id": USER, "username": None, "full_name": None, "avatar_url": None,
               "total_points": 120, "level": 2, "streak_count": 3, "created_at": NOW, "updated_at": NOW}
        database, conn = stub_database(row)

        profile = asyncio.run(ProfileStore(database).write_stats(
            USER, GameStats(total_points=120, level=2, streak_count=3)
        ))

        assert profile.level == 2
        assert len(conn.calls) == 1
        method, query, args = conn.calls[0]
        assert method == "fetchrow"
        assert query.strip().startswith("UPDATE profiles")
        assert args == (120, 2, 3, USER)

    def test_write_stats_for_unknown_user(self):
        database, _ = stub_database(None)
        assert asyncio.run(ProfileStore(database).write_stats(
            USER, GameStats(total_points=0, level=1, streak_count=0)
        )) is None


class TestPreferenceStoreJson:

    def test_reminder_time_round_trips_through_jsonb(self):
        database, conn = stub_database("INSERT 0 1")
        store = PreferenceStore(database)

        saved = asyncio.run(store.set(USER, PreferenceKey.REMINDER_TIME, {"hour": 21, "minute": 30}))

        assert saved == ReminderTime(hour=21, minute=30)
        _, query, args = conn.calls[0]
        assert "$3::jsonb" in query
        assert args == (USER, "reminder_time", '{"hour":21,"minute":30}')

        conn.responses.append({"value": args[2]})
        assert asyncio.run(store.get(USER, PreferenceKey.REMINDER_TIME)) == ReminderTime(hour=21, minute=30)

    def test_missing_row_gives_default(self):
        database, _ = stub_database(None)
        assert asyncio.run(PreferenceStore(database).get(USER, PreferenceKey.THEME_MODE)) == "system"


class TestGoalStoreSql:

    def test_update_builds_numbered_set_clause(self):
        row = {"id": 4, "user_id": USER, "title": "Run 5k", "description": None, "category": "health",
               "target_date": None, "priority": "high", "status": "completed", "progress": 100,
               "created_at": NOW, "updated_at": NOW}
        database, conn = stub_database(row)

        goal = asyncio.run(GoalStore(database).update_goal(4, progress=100, status=GoalStatus.COMPLETED))

        assert goal.status == GoalStatus.COMPLETED
        _, query, args = conn.calls[0]
        assert "progress = $1, status = $2" in query
        assert "WHERE id = $3" in query
        assert args == (100, "completed", 4)

    def test_not_null_violation_is_integrity_violation(self):
        database, _ = stub_database(asyncpg.NotNullViolationError("null value in column \"title\""))
        with pytest.raises(IntegrityViolation):
            asyncio.run(GoalStore(database).update_goal(4, title=None))
