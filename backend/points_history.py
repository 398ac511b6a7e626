"""
Growth Journal - Points History Ledger
Append-only log of point deltas per action, kept for audit and display.
"""

from typing import Optional, List

from config import get_gamification_config
from database import db as default_db, Database
from models import PointsHistoryEntry, PointsSource


class PointsLedger:
    """Append-only ledger. Rows are never updated or deleted."""

    def __init__(self, database: Optional[Database] = None):
        self.db = database or default_db

    async def append(
        self,
        user_id: str,
        delta: int,
        source: PointsSource,
        reference_id: Optional[str] = None,
        note: Optional[str] = None
    ) -> PointsHistoryEntry:
        row = await self.db.execute_returning("""
            INSERT INTO points_history (user_id, points_delta, source, reference_id, note)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING *
        """, user_id, delta, PointsSource(source).value, reference_id, note)
        return PointsHistoryEntry(**row)

    async def list(self, user_id: str, limit: Optional[int] = None) -> List[PointsHistoryEntry]:
        """Most recent entries first."""
        limit = limit or get_gamification_config().history_limit
        rows = await self.db.fetch("""
            SELECT * FROM points_history
            WHERE user_id = $1
            ORDER BY created_at DESC, id DESC
            LIMIT $2
        """, user_id, limit)
        return [PointsHistoryEntry(**r) for r in rows]

    async def manual_total(self, user_id: str) -> int:
        """Sum of manual entries, the only ledger rows with no activity-log source."""
        total = await self.db.fetch_value("""
            SELECT COALESCE(SUM(points_delta), 0) FROM points_history
            WHERE user_id = $1 AND source = 'manual'
        """, user_id)
        return int(total or 0)
