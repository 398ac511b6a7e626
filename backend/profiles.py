"""
Growth Journal - Profiles & Stats Reconciliation
The profile row caches derived (points, level, streak). Reconciliation
recomputes the triple from the activity log and overwrites the cache.
"""

import logging
from datetime import date
from typing import Optional

from config import get_gamification_config, GamificationConfig
from database import db as default_db, Database, ConstraintViolation
from gamification import PointsAccumulator, level_for_points
from models import Profile, GameStats

logger = logging.getLogger(__name__)


class ProfileStore:
    """Profile rows. Only identity fields are authoritative here."""

    def __init__(self, database: Optional[Database] = None):
        self.db = database or default_db

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        row = await self.db.fetch_one("SELECT * FROM profiles WHERE id = $1", user_id)
        return Profile(**row) if row else None

    async def ensure_profile(self, user_id: str) -> Profile:
        """Return the profile, creating an empty one on first use."""
        profile = await self.get_profile(user_id)
        if profile:
            return profile
        try:
            await self.db.execute("INSERT INTO profiles (id) VALUES ($1)", user_id)
        except ConstraintViolation:
            # Created concurrently by another trigger
            pass
        return await self.get_profile(user_id)

    async def write_stats(self, user_id: str, stats: GameStats) -> Optional[Profile]:
        """Overwrite the derived triple in one statement."""
        row = await self.db.execute_returning("""
            UPDATE profiles
            SET total_points = $1, level = $2, streak_count = $3, updated_at = NOW()
            WHERE id = $4
            RETURNING *
        """, stats.total_points, stats.level, stats.streak_count, user_id)
        return Profile(**row) if row else None


class ProfileReconciler:
    """Re-derives points, level and streak and writes them to the profile cache.

    Idempotent for unchanged inputs. Concurrent calls for one user are
    last-write-wins on the row, which is acceptable for a cache.
    """

    def __init__(
        self,
        points: PointsAccumulator,
        profiles: ProfileStore,
        config: Optional[GamificationConfig] = None
    ):
        self.points = points
        self.profiles = profiles
        self.config = config or get_gamification_config()

    async def compute_stats(self, user_id: str, today: Optional[date] = None) -> GameStats:
        breakdown = await self.points.compute_breakdown(user_id, today)
        total = breakdown.total
        return GameStats(
            total_points=total,
            level=level_for_points(total, self.config),
            streak_count=breakdown.streak,
        )

    async def reconcile(self, user_id: str, today: Optional[date] = None) -> GameStats:
        """Recompute and overwrite. Any failure propagates before the write,
        so the cached row is either fully replaced or left untouched."""
        stats = await self.compute_stats(user_id, today)
        profile = await self.profiles.write_stats(user_id, stats)
        if profile is None:
            logger.warning(f"Reconciled stats for {user_id} but no profile row exists")
        else:
            logger.debug(
                f"Reconciled {user_id}: points={stats.total_points} "
                f"level={stats.level} streak={stats.streak_count}"
            )
        return stats
