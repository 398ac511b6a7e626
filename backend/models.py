"""
Growth Journal - Pydantic Models (v2 syntax)
"""

import datetime as dt
from enum import Enum
from typing import Any, Optional, List
from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================
# ENUMS
# ============================================

class PointsSource(str, Enum):
    CHECKIN = "checkin"
    RECORD = "record"
    MANUAL = "manual"


class GoalStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"


class GoalPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class InsightType(str, Enum):
    PATTERN = "pattern"
    RECOMMENDATION = "recommendation"
    ACHIEVEMENT = "achievement"
    WARNING = "warning"


# ============================================
# DAILY RECORD MODELS
# ============================================

class DailyRecordBase(BaseModel):
    date: dt.date
    mood_score: int = Field(ge=1, le=10)
    energy_level: int = Field(ge=1, le=10)
    productivity_score: int = Field(ge=1, le=10)
    goals_completed: int = Field(default=0, ge=0)
    gratitude_notes: Optional[str] = None
    achievements: List[str] = Field(default_factory=list)
    challenges: List[str] = Field(default_factory=list)
    reflections: Optional[str] = None


class DailyRecordInput(DailyRecordBase):
    user_id: str


class DailyRecord(BaseModel):
    """A stored record. No range checks: historical rows may predate them."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    date: dt.date
    mood_score: Optional[int] = None
    energy_level: Optional[int] = None
    productivity_score: Optional[int] = None
    goals_completed: Optional[int] = 0
    gratitude_notes: Optional[str] = None
    achievements: Optional[List[str]] = None
    challenges: Optional[List[str]] = None
    reflections: Optional[str] = None
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None


# ============================================
# CHECK-IN / FOCUS MODELS
# ============================================

class CheckIn(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    date: dt.date
    created_at: Optional[dt.datetime] = None


class CheckInResult(BaseModel):
    created: bool
    date: dt.date


class FocusSessionInput(BaseModel):
    user_id: str
    task_title: Optional[str] = None
    planned_minutes: int = Field(ge=1, le=600)
    actual_minutes: int = Field(ge=0, le=1440)
    is_success: bool = True
    notes: Optional[str] = None
    started_at: Optional[dt.datetime] = None
    ended_at: Optional[dt.datetime] = None


class FocusSession(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    task_title: Optional[str] = None
    planned_minutes: int
    actual_minutes: int
    is_success: bool = True
    notes: Optional[str] = None
    started_at: Optional[dt.datetime] = None
    ended_at: Optional[dt.datetime] = None


# ============================================
# POINTS / PROFILE MODELS
# ============================================

class PointsHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    points_delta: int
    source: PointsSource
    reference_id: Optional[str] = None
    note: Optional[str] = None
    created_at: Optional[dt.datetime] = None


class Profile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    total_points: int = 0
    level: int = 1
    streak_count: int = 0
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None


class GameStats(BaseModel):
    """Derived (points, level, streak) triple written back to the profile."""
    total_points: int
    level: int
    streak_count: int


# ============================================
# GOAL MODELS
# ============================================

class GoalInput(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    category: str = "personal"
    target_date: Optional[dt.date] = None
    priority: GoalPriority = GoalPriority.MEDIUM
    status: GoalStatus = GoalStatus.ACTIVE
    progress: int = Field(default=0, ge=0, le=100)


class GoalUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    target_date: Optional[dt.date] = None
    priority: Optional[GoalPriority] = None
    status: Optional[GoalStatus] = None
    progress: Optional[int] = Field(default=None, ge=0, le=100)

    @field_validator("title", "category", "priority", "status", "progress", mode="before")
    @classmethod
    def not_null(cls, value):
        # Omit the field to leave it unchanged; only description and target_date can be cleared
        if value is None:
            raise ValueError("may be omitted but not set to null")
        return value


class GoalProgressUpdate(BaseModel):
    progress: int


class Goal(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    title: str
    description: Optional[str] = None
    category: str = "personal"
    target_date: Optional[dt.date] = None
    priority: GoalPriority = GoalPriority.MEDIUM
    status: GoalStatus = GoalStatus.ACTIVE
    progress: int = 0
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None


# ============================================
# AI MODELS
# ============================================

class Insight(BaseModel):
    type: InsightType = InsightType.RECOMMENDATION
    title: str
    content: str
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)


class AnalysisResult(BaseModel):
    insights: List[Insight] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    patterns: List[str] = Field(default_factory=list)


class AIInsight(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    insight_type: InsightType
    title: str
    content: str
    confidence_score: float
    is_read: bool = False
    created_at: Optional[dt.datetime] = None


# ============================================
# API REQUEST / RESPONSE MODELS
# ============================================

class UserRequest(BaseModel):
    user_id: str = Field(alias="userId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class PreferenceUpdate(BaseModel):
    value: Any = None


class HealthStatus(BaseModel):
    status: str = "healthy"
    version: str = "1.0.0"
    database: str = "unknown"
    ai_service: str = "fallback"
