"""
Growth Journal - Activity Log
Daily records, check-ins and focus sessions: the source of truth every
derived statistic is recomputed from.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, List, Set, Tuple

from database import db as default_db, Database
from models import DailyRecord, DailyRecordBase, CheckIn, FocusSession, FocusSessionInput


class ActivityLog:
    """Read/write accessors for the three activity tables of one store."""

    def __init__(self, database: Optional[Database] = None):
        self.db = database or default_db

    # ============================================
    # DAILY RECORDS
    # ============================================

    async def upsert_record(
        self,
        user_id: str,
        data: DailyRecordBase
    ) -> Tuple[DailyRecord, Optional[DailyRecord], bool]:
        """Create or update the record for (user, date).

        Returns the saved record, the row it replaced as read just before the
        write, and whether this statement inserted the row. Of two concurrent
        first submissions only one sees created=True; the other may see no
        previous row. Field values resolve last-write-wins.
        """
        previous = await self.get_record_by_date(user_id, data.date)

        row = await self.db.execute_returning("""
            INSERT INTO daily_records
            (user_id, date, mood_score, energy_level, productivity_score,
             goals_completed, gratitude_notes, achievements, challenges, reflections)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
            ON CONFLICT (user_id, date) DO UPDATE SET
                mood_score = EXCLUDED.mood_score,
                energy_level = EXCLUDED.energy_level,
                productivity_score = EXCLUDED.productivity_score,
                goals_completed = EXCLUDED.goals_completed,
                gratitude_notes = EXCLUDED.gratitude_notes,
                achievements = EXCLUDED.achievements,
                challenges = EXCLUDED.challenges,
                reflections = EXCLUDED.reflections,
                updated_at = NOW()
            RETURNING *, (xmax = 0) AS inserted
        """, user_id, data.date, data.mood_score, data.energy_level,
            data.productivity_score, data.goals_completed, data.gratitude_notes,
            data.achievements, data.challenges, data.reflections)

        created = row.pop("inserted")
        return DailyRecord(**row), previous, created

    async def get_record_by_date(self, user_id: str, day: date) -> Optional[DailyRecord]:
        row = await self.db.fetch_one(
            "SELECT * FROM daily_records WHERE user_id = $1 AND date = $2",
            user_id, day
        )
        return DailyRecord(**row) if row else None

    async def get_recent_records(self, user_id: str, limit: int = 30) -> List[DailyRecord]:
        """Most recent records first."""
        rows = await self.db.fetch("""
            SELECT * FROM daily_records
            WHERE user_id = $1
            ORDER BY date DESC
            LIMIT $2
        """, user_id, limit)
        return [DailyRecord(**r) for r in rows]

    async def get_records_by_date_range(
        self,
        user_id: str,
        start: date,
        end: date
    ) -> List[DailyRecord]:
        """Records with start <= date <= end, oldest first."""
        rows = await self.db.fetch("""
            SELECT * FROM daily_records
            WHERE user_id = $1 AND date >= $2 AND date <= $3
            ORDER BY date ASC
        """, user_id, start, end)
        return [DailyRecord(**r) for r in rows]

    async def get_all_records(self, user_id: str) -> List[DailyRecord]:
        rows = await self.db.fetch(
            "SELECT * FROM daily_records WHERE user_id = $1 ORDER BY date DESC",
            user_id
        )
        return [DailyRecord(**r) for r in rows]

    async def get_record_dates(self, user_id: str, start: date, end: date) -> Set[date]:
        rows = await self.db.fetch("""
            SELECT date FROM daily_records
            WHERE user_id = $1 AND date >= $2 AND date <= $3
        """, user_id, start, end)
        return {r["date"] for r in rows}

    # ============================================
    # CHECK-INS
    # ============================================

    async def has_checkin(self, user_id: str, day: date) -> bool:
        row = await self.db.fetch_one(
            "SELECT id FROM daily_checkins WHERE user_id = $1 AND date = $2",
            user_id, day
        )
        return row is not None

    async def insert_checkin(self, user_id: str, day: date) -> CheckIn:
        """Insert a check-in. Raises ConstraintViolation if one exists."""
        row = await self.db.execute_returning(
            "INSERT INTO daily_checkins (user_id, date) VALUES ($1, $2) RETURNING *",
            user_id, day
        )
        return CheckIn(**row)

    async def get_checkins_by_date_range(
        self,
        user_id: str,
        start: date,
        end: date
    ) -> List[CheckIn]:
        rows = await self.db.fetch("""
            SELECT * FROM daily_checkins
            WHERE user_id = $1 AND date >= $2 AND date <= $3
            ORDER BY date ASC
        """, user_id, start, end)
        return [CheckIn(**r) for r in rows]

    async def get_checkin_dates(self, user_id: str, start: date, end: date) -> Set[date]:
        checkins = await self.get_checkins_by_date_range(user_id, start, end)
        return {c.date for c in checkins}

    async def count_checkins(self, user_id: str) -> int:
        count = await self.db.fetch_value(
            "SELECT COUNT(*) FROM daily_checkins WHERE user_id = $1", user_id
        )
        return count or 0

    # ============================================
    # FOCUS SESSIONS
    # ============================================

    async def log_focus_session(self, session: FocusSessionInput) -> FocusSession:
        now = datetime.now(timezone.utc)
        ended_at = session.ended_at or now
        started_at = session.started_at or ended_at - timedelta(minutes=session.actual_minutes)

        row = await self.db.execute_returning("""
            INSERT INTO focus_sessions
            (user_id, task_title, planned_minutes, actual_minutes, is_success,
             notes, started_at, ended_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            RETURNING *
        """, session.user_id, session.task_title, session.planned_minutes,
            session.actual_minutes, session.is_success, session.notes,
            started_at, ended_at)
        return FocusSession(**row)

    async def get_focus_sessions(
        self,
        user_id: str,
        start: date,
        end: date
    ) -> List[FocusSession]:
        """Sessions started on any day from start to end (UTC days)."""
        start_at = datetime.combine(start, time.min, tzinfo=timezone.utc)
        end_at = datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc)
        rows = await self.db.fetch("""
            SELECT * FROM focus_sessions
            WHERE user_id = $1 AND started_at >= $2 AND started_at < $3
            ORDER BY started_at ASC
        """, user_id, start_at, end_at)
        return [FocusSession(**r) for r in rows]


# ============================================
# FOCUS AGGREGATES
# ============================================

def focus_minutes_by_day(
    sessions: List[FocusSession],
    start: date,
    end: date
) -> List[dict]:
    """Minutes per day between start and end inclusive, zero-filled."""
    minutes = {}
    cursor = start
    while cursor <= end:
        minutes[cursor] = 0
        cursor += timedelta(days=1)

    for session in sessions:
        if session.started_at is None:
            continue
        day = session.started_at.astimezone(timezone.utc).date()
        if day in minutes:
            minutes[day] += max(session.actual_minutes or 0, 0)

    return [{"date": d.isoformat(), "minutes": m} for d, m in minutes.items()]
