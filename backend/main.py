"""
Growth Journal - FastAPI Backend
Daily records, check-ins, streaks, points, achievements and AI insights.
"""

import logging
from contextlib import asynccontextmanager
from datetime import date, timedelta
from typing import Optional, List

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from achievements import AchievementEvaluator, achievement_summary, newly_unlocked, unlocked_ids
from actions import ActivityActions
from activity_log import ActivityLog, focus_minutes_by_day
from ai_client import AIClient, get_ai_client
from config import get_config_summary, get_gamification_config
from database import db, ensure_tables, ConstraintViolation, IntegrityViolation, StoreUnavailable
from gamification import PointsAccumulator, StreakCalculator, points_to_next_level, utc_today
from goals import GoalStore
from insights import InsightService, InsightStore, record_averages
from logger import setup_logger
from models import (
    DailyRecordInput, FocusSessionInput, GoalInput, GoalProgressUpdate, GoalStatus,
    GoalUpdate, HealthStatus, PreferenceUpdate, UserRequest
)
from points_history import PointsLedger
from preferences import PreferenceKey, PreferenceStore, USER_SETTABLE
from profiles import ProfileReconciler, ProfileStore

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    setup_logger()

    # Startup
    await db.connect()
    await ensure_tables()
    logger.info(f"Server started (version {VERSION})")
    yield
    # Shutdown
    logger.info("Server shutting down")
    await db.disconnect()


app = FastAPI(
    title="Growth Journal",
    description="Personal growth journal with streaks, points, achievements and AI insights",
    version=VERSION,
    lifespan=lifespan
)

# CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request, exc: StoreUnavailable):
    logger.error(f"Store unavailable on {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"error": "Data store unavailable"})


@app.exception_handler(ConstraintViolation)
async def constraint_violation_handler(request, exc: ConstraintViolation):
    logger.warning(f"Conflict on {request.url.path}: {exc}")
    return JSONResponse(status_code=409, content={"error": "Conflicts with existing data"})


@app.exception_handler(IntegrityViolation)
async def integrity_violation_handler(request, exc: IntegrityViolation):
    logger.warning(f"Rejected write on {request.url.path}: {exc}")
    return JSONResponse(status_code=422, content={"error": "Invalid data for this operation"})


# ============================================
# DEPENDENCIES
# ============================================

def get_activity_log() -> ActivityLog:
    return ActivityLog(db)


def get_points_ledger() -> PointsLedger:
    return PointsLedger(db)


def get_profile_store() -> ProfileStore:
    return ProfileStore(db)


def get_preference_store() -> PreferenceStore:
    return PreferenceStore(db)


def get_goal_store() -> GoalStore:
    return GoalStore(db)


def get_insight_store() -> InsightStore:
    return InsightStore(db)


def get_ai() -> AIClient:
    return get_ai_client()


def get_points_accumulator(
    activity_log: ActivityLog = Depends(get_activity_log),
    ledger: PointsLedger = Depends(get_points_ledger),
) -> PointsAccumulator:
    return PointsAccumulator(activity_log, ledger)


def get_reconciler(
    points: PointsAccumulator = Depends(get_points_accumulator),
    profiles: ProfileStore = Depends(get_profile_store),
) -> ProfileReconciler:
    return ProfileReconciler(points, profiles)


def get_actions(
    activity_log: ActivityLog = Depends(get_activity_log),
    ledger: PointsLedger = Depends(get_points_ledger),
    profiles: ProfileStore = Depends(get_profile_store),
    reconciler: ProfileReconciler = Depends(get_reconciler),
    preferences: PreferenceStore = Depends(get_preference_store),
) -> ActivityActions:
    return ActivityActions(activity_log, ledger, profiles, reconciler, preferences)


def get_insight_service(
    activity_log: ActivityLog = Depends(get_activity_log),
    goals: GoalStore = Depends(get_goal_store),
    insights: InsightStore = Depends(get_insight_store),
    ai: AIClient = Depends(get_ai),
) -> InsightService:
    return InsightService(activity_log, goals, insights, ai)


# ============================================
# HEALTH & STATUS
# ============================================

@app.get("/health", response_model=HealthStatus)
@app.get("/api/health", response_model=HealthStatus)
async def health_check(ai: AIClient = Depends(get_ai)):
    """Check API and dependencies health."""
    return HealthStatus(
        status="healthy",
        version=VERSION,
        database="connected" if db.connected else "disconnected",
        ai_service="configured" if ai.is_configured else "fallback"
    )


@app.get("/api/config")
async def config_summary():
    """Non-secret configuration values."""
    return get_config_summary()


# ============================================
# DAILY RECORDS
# ============================================

@app.post("/api/records")
async def submit_record(record: DailyRecordInput, actions: ActivityActions = Depends(get_actions)):
    """Create or update the record for (user, date)."""
    return await actions.submit_daily_record(record.user_id, record)


@app.get("/api/records/{user_id}")
async def list_records(
    user_id: str,
    limit: int = Query(default=30, ge=1, le=365),
    activity_log: ActivityLog = Depends(get_activity_log)
):
    """Most recent records first."""
    return await activity_log.get_recent_records(user_id, limit)


@app.get("/api/records/{user_id}/analytics")
async def record_analytics(
    user_id: str,
    days: int = Query(default=30, ge=1, le=365),
    activity_log: ActivityLog = Depends(get_activity_log)
):
    """Totals and averages over the last `days` days."""
    end = utc_today()
    start = end - timedelta(days=days - 1)
    records = await activity_log.get_records_by_date_range(user_id, start, end)
    averages = record_averages(records)
    streak = await StreakCalculator(activity_log).compute_streak(user_id, end)

    return {
        "start_date": start,
        "end_date": end,
        "total_records": len(records),
        "average_mood": round(averages["mood"], 1),
        "average_energy": round(averages["energy"], 1),
        "average_productivity": round(averages["productivity"], 1),
        "total_goals_completed": averages["goals_completed"],
        "streak": streak,
    }


@app.get("/api/records/{user_id}/{day}")
async def get_record(user_id: str, day: date, activity_log: ActivityLog = Depends(get_activity_log)):
    record = await activity_log.get_record_by_date(user_id, day)
    if not record:
        raise HTTPException(status_code=404, detail="Record not found")
    return record


# ============================================
# CHECK-INS & STREAK
# ============================================

@app.get("/api/checkins/{user_id}/today")
async def checkin_today(user_id: str, activity_log: ActivityLog = Depends(get_activity_log)):
    today = utc_today()
    return {"date": today, "checked_in": await activity_log.has_checkin(user_id, today)}


@app.get("/api/checkins/{user_id}")
async def list_checkins(
    user_id: str,
    start: date,
    end: date,
    activity_log: ActivityLog = Depends(get_activity_log)
):
    if start > end:
        raise HTTPException(status_code=400, detail="start must not be after end")
    return await activity_log.get_checkins_by_date_range(user_id, start, end)


@app.get("/api/streak-calendar/{user_id}")
async def streak_calendar(
    user_id: str,
    days: int = Query(default=30, ge=1, le=365),
    activity_log: ActivityLog = Depends(get_activity_log)
):
    """Each day in the window flagged by record and check-in activity."""
    end = utc_today()
    start = end - timedelta(days=days - 1)
    record_dates = await activity_log.get_record_dates(user_id, start, end)
    checkin_dates = await activity_log.get_checkin_dates(user_id, start, end)

    calendar = []
    for offset in range(days):
        day = start + timedelta(days=offset)
        has_record = day in record_dates
        has_checkin = day in checkin_dates
        calendar.append({
            "date": day,
            "record": has_record,
            "checkin": has_checkin,
            "active": has_record or has_checkin,
        })

    streak = await StreakCalculator(activity_log).compute_streak(user_id, end)
    return {"streak": streak, "days": calendar}


# ============================================
# FOCUS SESSIONS
# ============================================

@app.post("/api/focus")
async def log_focus_session(session: FocusSessionInput, actions: ActivityActions = Depends(get_actions)):
    return await actions.complete_focus_session(session)


@app.get("/api/focus/{user_id}/today")
async def focus_today(user_id: str, activity_log: ActivityLog = Depends(get_activity_log)):
    today = utc_today()
    sessions = await activity_log.get_focus_sessions(user_id, today, today)
    return {
        "date": today,
        "sessions": len(sessions),
        "minutes": sum(max(s.actual_minutes, 0) for s in sessions),
    }


@app.get("/api/focus/{user_id}/trend")
async def focus_trend(
    user_id: str,
    days: int = Query(default=7, ge=1, le=90),
    activity_log: ActivityLog = Depends(get_activity_log)
):
    end = utc_today()
    start = end - timedelta(days=days - 1)
    sessions = await activity_log.get_focus_sessions(user_id, start, end)
    return focus_minutes_by_day(sessions, start, end)


# ============================================
# PROFILE, POINTS & SESSION
# ============================================

@app.get("/api/profile/{user_id}")
async def get_profile(user_id: str, profiles: ProfileStore = Depends(get_profile_store)):
    """Cached profile for display. Not authoritative for points or streak."""
    profile = await profiles.get_profile(user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return {
        **profile.model_dump(),
        "points_to_next_level": points_to_next_level(profile.total_points),
    }


@app.post("/api/profile/{user_id}/refresh")
async def refresh_profile(
    user_id: str,
    profiles: ProfileStore = Depends(get_profile_store),
    reconciler: ProfileReconciler = Depends(get_reconciler)
):
    await profiles.ensure_profile(user_id)
    stats = await reconciler.reconcile(user_id)
    profile = await profiles.get_profile(user_id)
    return {
        "profile": profile,
        "stats": stats,
        "points_to_next_level": points_to_next_level(stats.total_points),
    }


@app.get("/api/points/{user_id}")
async def get_points(user_id: str, points: PointsAccumulator = Depends(get_points_accumulator)):
    """Current total with its components, recomputed from the activity log."""
    breakdown = await points.compute_breakdown(user_id)
    return {"total_points": breakdown.total, "breakdown": breakdown}


@app.get("/api/points/{user_id}/history")
async def points_history(
    user_id: str,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    ledger: PointsLedger = Depends(get_points_ledger)
):
    """Ledger entries, most recent first."""
    return await ledger.list(user_id, limit or get_gamification_config().history_limit)


@app.post("/api/session/sign-in")
async def sign_in(request: UserRequest, actions: ActivityActions = Depends(get_actions)):
    return await actions.sign_in(request.user_id)


@app.post("/api/session/restore")
async def restore_session(request: UserRequest, actions: ActivityActions = Depends(get_actions)):
    return await actions.sign_in(request.user_id)


@app.post("/api/session/sign-out")
async def sign_out(request: UserRequest, actions: ActivityActions = Depends(get_actions)):
    return await actions.sign_out(request.user_id)


@app.get("/api/session/{user_id}/celebration")
async def consume_celebration(user_id: str, actions: ActivityActions = Depends(get_actions)):
    """Pending check-in points to celebrate; returned once, then cleared."""
    points = await actions.consume_celebration(user_id)
    return {"pending_points": points}


# ============================================
# ACHIEVEMENTS
# ============================================

@app.get("/api/achievements/{user_id}")
async def get_achievements(
    user_id: str,
    previously_unlocked: Optional[List[str]] = Query(default=None),
    activity_log: ActivityLog = Depends(get_activity_log)
):
    """Evaluate the catalog. Pass previously_unlocked ids to get the newly crossed ones."""
    statuses = await AchievementEvaluator(activity_log).evaluate(user_id)
    return {
        "achievements": statuses,
        "unlocked": unlocked_ids(statuses),
        "newly_unlocked": [s.achievement.id for s in newly_unlocked(previously_unlocked or [], statuses)],
        "summary": achievement_summary(statuses),
    }


# ============================================
# GOALS
# ============================================

@app.post("/api/goals/{user_id}")
async def create_goal(
    user_id: str,
    goal: GoalInput,
    goals: GoalStore = Depends(get_goal_store),
    profiles: ProfileStore = Depends(get_profile_store)
):
    await profiles.ensure_profile(user_id)
    return await goals.create_goal(user_id, goal)


@app.get("/api/goals/{user_id}")
async def list_goals(
    user_id: str,
    status: Optional[GoalStatus] = None,
    goals: GoalStore = Depends(get_goal_store)
):
    return await goals.get_user_goals(user_id, status)


@app.patch("/api/goals/{goal_id}")
async def update_goal(goal_id: int, updates: GoalUpdate, goals: GoalStore = Depends(get_goal_store)):
    goal = await goals.update_goal(goal_id, **updates.model_dump(exclude_unset=True))
    if not goal:
        raise HTTPException(status_code=404, detail="Goal not found")
    return goal


@app.patch("/api/goals/{goal_id}/progress")
async def update_goal_progress(
    goal_id: int,
    update: GoalProgressUpdate,
    goals: GoalStore = Depends(get_goal_store)
):
    goal = await goals.update_goal_progress(goal_id, update.progress)
    if not goal:
        raise HTTPException(status_code=404, detail="Goal not found")
    return goal


@app.delete("/api/goals/{goal_id}")
async def delete_goal(goal_id: int, goals: GoalStore = Depends(get_goal_store)):
    if not await goals.delete_goal(goal_id):
        raise HTTPException(status_code=404, detail="Goal not found")
    return {"success": True}


# ============================================
# PREFERENCES
# ============================================

@app.get("/api/preferences/{user_id}")
async def get_preferences(user_id: str, preferences: PreferenceStore = Depends(get_preference_store)):
    return await preferences.get_all(user_id)


@app.put("/api/preferences/{user_id}/{key}")
async def set_preference(
    user_id: str,
    key: PreferenceKey,
    update: PreferenceUpdate,
    preferences: PreferenceStore = Depends(get_preference_store),
    profiles: ProfileStore = Depends(get_profile_store)
):
    if key not in USER_SETTABLE:
        raise HTTPException(status_code=400, detail=f"'{key.value}' is not user settable")
    await profiles.ensure_profile(user_id)
    try:
        value = await preferences.set(user_id, key, update.value)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"key": key.value, "value": value}


@app.delete("/api/preferences/{user_id}/{key}")
async def clear_preference(
    user_id: str,
    key: PreferenceKey,
    preferences: PreferenceStore = Depends(get_preference_store)
):
    if key not in USER_SETTABLE:
        raise HTTPException(status_code=400, detail=f"'{key.value}' is not user settable")
    await preferences.clear(user_id, key)
    return {"success": True}


# ============================================
# AI INSIGHTS, PLANS & REPORTS
# ============================================

@app.post("/api/ai/analyze")
async def analyze(request: UserRequest, service: InsightService = Depends(get_insight_service)):
    try:
        return await service.analyze(request.user_id)
    except Exception:
        logger.exception(f"AI analysis failed for {request.user_id}")
        return JSONResponse(status_code=500, content={"error": "AI analysis failed"})


@app.post("/api/ai/plan")
async def plan(request: UserRequest, service: InsightService = Depends(get_insight_service)):
    """Always answers with a plan; falls back to local templates."""
    return {"plan": await service.plan(request.user_id)}


@app.post("/api/reports/weekly")
async def weekly_report(request: UserRequest, service: InsightService = Depends(get_insight_service)):
    try:
        return {"report": await service.weekly_report(request.user_id)}
    except Exception:
        logger.exception(f"Weekly report failed for {request.user_id}")
        return JSONResponse(status_code=500, content={"error": "Report generation failed"})


@app.get("/api/insights/{user_id}")
async def list_insights(
    user_id: str,
    unread_only: bool = False,
    limit: int = Query(default=20, ge=1, le=100),
    insights: InsightStore = Depends(get_insight_store)
):
    return await insights.list_insights(user_id, limit, unread_only)


@app.post("/api/insights/{insight_id}/read")
async def mark_insight_read(insight_id: int, insights: InsightStore = Depends(get_insight_store)):
    if not await insights.mark_read(insight_id):
        raise HTTPException(status_code=404, detail="Insight not found")
    return {"success": True}


@app.post("/api/insights/{user_id}/read-all")
async def mark_all_insights_read(user_id: str, insights: InsightStore = Depends(get_insight_store)):
    await insights.mark_all_read(user_id)
    return {"success": True}


# ============================================
# RUN SERVER
# ============================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
