"""
Growth Journal - Goals Module
User goals with progress, consumed by plan generation.
"""

from typing import Optional, List

from database import db as default_db, Database
from models import Goal, GoalInput, GoalStatus

UPDATABLE_FIELDS = {"title", "description", "category", "target_date", "priority", "status", "progress"}


class GoalStore:

    def __init__(self, database: Optional[Database] = None):
        self.db = database or default_db

    async def create_goal(self, user_id: str, goal: GoalInput) -> Goal:
        row = await self.db.execute_returning("""
            INSERT INTO goals
            (user_id, title, description, category, target_date, priority, status, progress)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            RETURNING *
        """, user_id, goal.title, goal.description, goal.category, goal.target_date,
            goal.priority.value, goal.status.value, goal.progress)
        return Goal(**row)

    async def get_goal(self, goal_id: int) -> Optional[Goal]:
        row = await self.db.fetch_one("SELECT * FROM goals WHERE id = $1", goal_id)
        return Goal(**row) if row else None

    async def get_user_goals(self, user_id: str, status: Optional[GoalStatus] = None) -> List[Goal]:
        """Goals newest first, optionally filtered by status."""
        if status:
            rows = await self.db.fetch("""
                SELECT * FROM goals
                WHERE user_id = $1 AND status = $2
                ORDER BY created_at DESC
            """, user_id, GoalStatus(status).value)
        else:
            rows = await self.db.fetch(
                "SELECT * FROM goals WHERE user_id = $1 ORDER BY created_at DESC",
                user_id
            )
        return [Goal(**r) for r in rows]

    async def update_goal(self, goal_id: int, **updates) -> Optional[Goal]:
        """Update a goal."""
        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        if not updates:
            return await self.get_goal(goal_id)

        set_parts = []
        values = []
        for i, (k, v) in enumerate(updates.items(), 1):
            set_parts.append(f"{k} = ${i}")
            values.append(v.value if hasattr(v, "value") else v)
        values.append(goal_id)
        set_clause = ", ".join(set_parts)

        row = await self.db.execute_returning(
            f"UPDATE goals SET {set_clause}, updated_at = NOW() WHERE id = ${len(values)} RETURNING *",
            *values
        )
        return Goal(**row) if row else None

    async def update_goal_progress(self, goal_id: int, progress: int) -> Optional[Goal]:
        """Set progress (0-100); reaching 100 marks the goal completed."""
        progress = min(max(progress, 0), 100)
        updates = {"progress": progress}
        if progress >= 100:
            updates["status"] = GoalStatus.COMPLETED
        return await self.update_goal(goal_id, **updates)

    async def delete_goal(self, goal_id: int) -> bool:
        result = await self.db.execute("DELETE FROM goals WHERE id = $1", goal_id)
        return "DELETE 1" in result
