"""
Growth Journal - User Actions
Each user action persists its raw event first, then runs its side effects
(ledger append, stats reconciliation, client-state flags) as an ordered
pipeline where every step is isolated: a failing step is logged and the
remaining steps still run. The primary action never depends on them.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Awaitable, Callable, List, Optional, Tuple

from activity_log import ActivityLog
from checkin import CheckinService
from config import get_gamification_config, GamificationConfig
from gamification import record_reward
from models import DailyRecordBase, FocusSessionInput, PointsSource
from points_history import PointsLedger
from preferences import PreferenceKey, PreferenceStore
from profiles import ProfileReconciler, ProfileStore

logger = logging.getLogger(__name__)


# ============================================
# SIDE-EFFECT PIPELINE
# ============================================

@dataclass
class StepResult:
    name: str
    ok: bool
    skipped: bool = False
    error: Optional[str] = None


@dataclass
class SideEffectPipeline:
    """Ordered steps, each wrapped so its failure cannot abort the others."""
    user_id: str
    steps: List[Tuple[str, Callable[[], Awaitable[object]]]] = field(default_factory=list)

    def add(self, name: str, step: Callable[[], Awaitable[object]]) -> "SideEffectPipeline":
        self.steps.append((name, step))
        return self

    async def run(self) -> List[StepResult]:
        results = []
        for name, step in self.steps:
            try:
                await step()
                results.append(StepResult(name=name, ok=True))
            except Exception as e:
                logger.exception(f"Side effect '{name}' failed for user {self.user_id}")
                results.append(StepResult(name=name, ok=False, error=str(e)))
        return results


def summarize(results: List[StepResult]) -> List[dict]:
    return [
        {"step": r.name, "ok": r.ok, **({"error": r.error} if r.error else {})}
        for r in results
    ]


# ============================================
# ACTIONS
# ============================================

class ActivityActions:
    """Entry points for record submission, sign-in/out and focus sessions."""

    def __init__(
        self,
        activity_log: ActivityLog,
        ledger: PointsLedger,
        profiles: ProfileStore,
        reconciler: ProfileReconciler,
        preferences: PreferenceStore,
        config: Optional[GamificationConfig] = None
    ):
        self.activity_log = activity_log
        self.ledger = ledger
        self.profiles = profiles
        self.reconciler = reconciler
        self.preferences = preferences
        self.checkins = CheckinService(activity_log)
        self.config = config or get_gamification_config()

    async def submit_daily_record(self, user_id: str, data: DailyRecordBase) -> dict:
        """Create or update the record for data.date, then award and reconcile.

        The ledger receives the record reward on creation and the reward
        difference on an update that changes it. A submission that lost a
        concurrent first insert for the same day writes no ledger row.
        """
        await self.profiles.ensure_profile(user_id)
        record, previous, created = await self.activity_log.upsert_record(user_id, data)

        reward = record_reward(record, self.config)
        note = f"Daily record {record.date.isoformat()}"
        if created:
            delta = reward
        elif previous is not None:
            delta = reward - record_reward(previous, self.config)
            note += " updated"
        else:
            delta = 0

        pipeline = SideEffectPipeline(user_id)
        if delta != 0:
            pipeline.add("ledger", lambda: self.ledger.append(
                user_id, delta, PointsSource.RECORD, reference_id=str(record.id), note=note
            ))
        pipeline.add("reconcile", lambda: self.reconciler.reconcile(user_id))
        results = await pipeline.run()

        return {
            "success": True,
            "created": created,
            "record": record,
            "points_awarded": delta,
            "side_effects": summarize(results),
        }

    async def sign_in(self, user_id: str, today: Optional[date] = None) -> dict:
        """Sign-in or session restore: idempotent check-in, then reconcile.

        Nothing here can fail the sign-in itself.
        """
        state = {"created": False, "checked_in": False}

        async def ensure_profile():
            await self.profiles.ensure_profile(user_id)

        async def clear_signed_out():
            await self.preferences.clear(user_id, PreferenceKey.JUST_SIGNED_OUT)

        async def check_in():
            result = await self.checkins.check_in(user_id, today)
            state["checked_in"] = True
            state["created"] = result.created

        async def award_checkin():
            if state["created"]:
                await self.ledger.append(
                    user_id, self.config.checkin_points, PointsSource.CHECKIN, note="Daily check-in"
                )

        async def flag_celebration():
            if state["created"]:
                await self.preferences.set(
                    user_id, PreferenceKey.PENDING_CHECKIN_POINTS, self.config.checkin_points
                )

        pipeline = (
            SideEffectPipeline(user_id)
            .add("profile", ensure_profile)
            .add("clear_signed_out", clear_signed_out)
            .add("checkin", check_in)
            .add("ledger", award_checkin)
            .add("celebration", flag_celebration)
            .add("reconcile", lambda: self.reconciler.reconcile(user_id, today))
        )
        results = await pipeline.run()

        profile = None
        try:
            profile = await self.profiles.get_profile(user_id)
        except Exception:
            logger.exception(f"Could not load profile for {user_id} after sign-in")

        return {
            "success": True,
            "checked_in": state["checked_in"],
            "checkin_created": state["created"],
            "profile": profile,
            "side_effects": summarize(results),
        }

    async def sign_out(self, user_id: str) -> dict:
        results = await (
            SideEffectPipeline(user_id)
            .add("profile", lambda: self.profiles.ensure_profile(user_id))
            .add("mark_signed_out", lambda: self.preferences.set(user_id, PreferenceKey.JUST_SIGNED_OUT, True))
            .run()
        )
        return {"success": True, "side_effects": summarize(results)}

    async def consume_celebration(self, user_id: str) -> Optional[int]:
        """Pending check-in points to celebrate, cleared once read."""
        return await self.preferences.consume(user_id, PreferenceKey.PENDING_CHECKIN_POINTS)

    async def complete_focus_session(self, session: FocusSessionInput) -> dict:
        """Log a finished focus interval; successful ones earn a manual ledger bonus."""
        user_id = session.user_id
        await self.profiles.ensure_profile(user_id)
        saved = await self.activity_log.log_focus_session(session)

        awarded = self.config.focus_session_points if saved.is_success else 0
        pipeline = SideEffectPipeline(user_id)
        if awarded:
            pipeline.add("ledger", lambda: self.ledger.append(
                user_id, awarded, PointsSource.MANUAL,
                reference_id=str(saved.id), note=f"Focus session {saved.actual_minutes} min"
            ))
        pipeline.add("reconcile", lambda: self.reconciler.reconcile(user_id))
        results = await pipeline.run()

        return {
            "success": True,
            "session": saved,
            "points_awarded": awarded,
            "side_effects": summarize(results),
        }
