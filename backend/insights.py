"""
Growth Journal - AI Insights, Plans & Weekly Reports
Prompt building and parsing for the AI service, with deterministic local
templates used whenever the service is unconfigured, slow or broken.
"""

import json
import logging
import re
from datetime import date, timedelta
from typing import Optional, List, Dict, Any

from pydantic import ValidationError

from activity_log import ActivityLog
from ai_client import AIClient, AINotConfigured, ExternalServiceError, ExternalServiceTimeout
from database import db as default_db, Database
from gamification import clamp_score, clamp_count, utc_today
from goals import GoalStore
from models import AIInsight, AnalysisResult, DailyRecord, Goal, GoalStatus, Insight, InsightType

logger = logging.getLogger(__name__)

ANALYSIS_WINDOW_DAYS = 14
PLAN_WINDOW_DAYS = 7

WELCOME_PLAN = (
    "Welcome! Start with a simple entry today:\n\n"
    "1. Note how you feel right now\n"
    "2. Set one small goal\n"
    "3. Write down one thing you are grateful for\n"
    "4. Write what you look forward to today\n\n"
    "Small daily entries add up to big changes!"
)

EMERGENCY_PLAN = (
    "Suggestions for today:\n\n"
    "1. Pick your most important small goal and work on it for 30 minutes\n"
    "2. Take a short walk or stretch around midday\n"
    "3. Spend 10 minutes in the evening reviewing and recording your day\n\n"
    "Note: the AI service is currently unavailable, so this is a temporary plan."
)


# ============================================
# AGGREGATES
# ============================================

def _average(values: List[int]) -> float:
    return sum(values) / len(values) if values else 0.0


def record_averages(records: List[DailyRecord]) -> Dict[str, float]:
    """Average mood/energy/productivity (clamped, missing scores skipped) and goal total."""
    def scores(attr):
        return [s for s in (clamp_score(getattr(r, attr)) for r in records) if s is not None]

    return {
        "mood": _average(scores("mood_score")),
        "energy": _average(scores("energy_level")),
        "productivity": _average(scores("productivity_score")),
        "goals_completed": sum(clamp_count(r.goals_completed) for r in records),
    }


def latest_records(records: List[DailyRecord], count: int) -> List[DailyRecord]:
    """The most recent `count` records, oldest first."""
    return sorted(records, key=lambda r: r.date)[-count:]


# ============================================
# ANALYSIS PROMPT / PARSING
# ============================================

def build_analysis_prompt(records: List[DailyRecord]) -> str:
    blocks = []
    for record in latest_records(records, 7):
        blocks.append(
            f"Date: {record.date.isoformat()}\n"
            f"Mood: {record.mood_score}/10\n"
            f"Energy: {record.energy_level}/10\n"
            f"Productivity: {record.productivity_score}/10\n"
            f"Gratitude: {record.gratitude_notes or 'none'}\n"
            f"Achievements: {', '.join(record.achievements or []) or 'none'}\n"
            f"Challenges: {', '.join(record.challenges or []) or 'none'}\n"
            f"Reflections: {record.reflections or 'none'}\n"
            f"Goals completed: {clamp_count(record.goals_completed)}"
        )
    data = "\n\n".join(blocks)

    return f"""Please analyse the following daily records and provide insights and suggestions:

{data}

Reply in JSON with these fields:
{{
  "insights": [
    {{
      "type": "pattern|recommendation|achievement|warning",
      "title": "Insight title",
      "content": "Details",
      "confidence": 0.8
    }}
  ],
  "recommendations": ["suggestion 1", "suggestion 2"],
  "patterns": ["pattern 1", "pattern 2"]
}}

Focus on:
1. Trends in mood, energy and productivity
2. Positive and negative behaviour patterns
3. Actionable improvement suggestions
4. Achievements and progress worth celebrating"""


_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_analysis_response(text: str) -> AnalysisResult:
    """Parse the model's JSON reply. Raises ExternalServiceError when malformed."""
    cleaned = _FENCE.sub("", text.strip())
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ExternalServiceError(f"AI analysis is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise ExternalServiceError("AI analysis is not a JSON object")
    try:
        return AnalysisResult.model_validate({
            "insights": payload.get("insights") or [],
            "recommendations": payload.get("recommendations") or [],
            "patterns": payload.get("patterns") or [],
        })
    except ValidationError as e:
        raise ExternalServiceError(f"AI analysis has an unexpected shape: {e}") from e


def local_analysis(records: List[DailyRecord]) -> AnalysisResult:
    """Deterministic analysis from averages, used when the AI cannot answer."""
    recent = latest_records(records, 7)
    avg = record_averages(recent)
    insights = []
    recommendations = []
    patterns = [
        f"Average mood {avg['mood']:.1f}/10, energy {avg['energy']:.1f}/10, "
        f"productivity {avg['productivity']:.1f}/10 over {len(recent)} recent entries"
    ]

    if avg["mood"] >= 7:
        insights.append(Insight(
            type=InsightType.ACHIEVEMENT, title="Good mood streak",
            content="Your recent mood has been consistently positive. Note what is working.",
        ))
    elif avg["mood"] < 5:
        insights.append(Insight(
            type=InsightType.WARNING, title="Low mood lately",
            content="Your recent mood scores are low. Try naming one or two concrete causes each day.",
        ))
        recommendations.append("Write one gratitude note every evening")

    if avg["energy"] < 6:
        recommendations.append("Schedule short walks or stretches between focused work")
    if avg["productivity"] < 6:
        recommendations.append("Use a 25/5 focus timer on one small task at a time")
    if avg["goals_completed"] > 0:
        insights.append(Insight(
            type=InsightType.ACHIEVEMENT, title="Goals completed",
            content=f"You completed {avg['goals_completed']} goals in your recent entries.",
        ))

    insights.append(Insight(
        type=InsightType.RECOMMENDATION, title="Keep recording",
        content="Keep filing daily records to build up data for more accurate analysis.",
    ))
    recommendations.append("Keep your daily record habit")
    return AnalysisResult(insights=insights, recommendations=recommendations, patterns=patterns)


# ============================================
# PLAN PROMPT / LOCAL PLAN
# ============================================

def analyze_trends(records: List[DailyRecord]) -> str:
    if len(records) < 3:
        return "Not enough data to analyse trends"
    avg = record_averages(latest_records(records, 7))
    return (
        f"Average mood: {avg['mood']:.1f}/10\n"
        f"Average energy: {avg['energy']:.1f}/10\n"
        f"Average productivity: {avg['productivity']:.1f}/10"
    )


def build_plan_prompt(records: List[DailyRecord], goals: List[Goal]) -> str:
    goals_list = ", ".join(f"{g.title} ({g.status.value})" for g in goals)
    return f"""Based on the user's history and current goals, create a personalised plan for today:

Recent trends:
{analyze_trends(records)}

Current goals: {goals_list or 'no specific goals'}

Provide a structured plan for today including:
1. Priority tasks (based on past performance and goals)
2. Suggested schedule of activities
3. Concrete ways to lift mood and energy
4. Things to watch out for

The plan should be realistic and fit the user's behaviour patterns."""


def build_local_plan(records: List[DailyRecord], goals: List[Goal], today: Optional[date] = None) -> str:
    """Deterministic plan with fixed sections, built from recent averages and active goals."""
    today = today or utc_today()
    avg = record_averages(latest_records(records, 7))

    if goals:
        goals_lines = "\n".join(
            f"- {g.title} ({g.category} | priority: {g.priority.value} | progress: {g.progress}%)"
            for g in goals
        )
    else:
        goals_lines = "- No active goals yet. Add one small goal you can finish today"

    if avg["energy"] < 6:
        energy_advice = (
            "- Put high-value, low-effort tasks first and avoid long stretches of intense focus\n"
            "- Take one or two short walks or stretches (5-10 minutes each)"
        )
    else:
        energy_advice = (
            "- Block out one deep-work session (25-45 minutes) with short breaks\n"
            "- Add some light outdoor exercise in the afternoon"
        )

    if avg["mood"] < 6:
        mood_advice = (
            "- Spend 3 minutes labelling your emotions and note one or two concrete triggers\n"
            "- Write a gratitude note or send a friend a quick message"
        )
    else:
        mood_advice = (
            "- Record one small win worth celebrating\n"
            "- Leave a word of encouragement for your future self"
        )

    if avg["productivity"] < 6:
        productivity_advice = (
            "- Use a focus timer (25/5) to finish one small block of work\n"
            "- Split your big goal into three steps you can move forward today"
        )
    else:
        productivity_advice = "- Keep it up: do key tasks first and reduce context switching"

    return f"""# Personalised plan for {today.isoformat()}

Overview:
- Last 7 entries: average mood {avg['mood']:.1f}/10 | average energy {avg['energy']:.1f}/10 | average productivity {avg['productivity']:.1f}/10
- Goals completed in the last 7 entries: {avg['goals_completed']}

## Priority tasks (from your active goals)
{goals_lines}

## Suggested schedule
- Morning: push the single most important item forward (30-60 minutes)
- Afternoon: review and adjust, handle messages and replies (30 minutes)
- Evening: 10-minute end-of-day review, note one highlight and one improvement

## Mood and energy
{energy_advice}
{mood_advice}

## Productivity
{productivity_advice}

## Keep in mind
- Don't fill the whole day: leave 20-30% slack
- Note your most distracting moment once, so future analysis can spot patterns

When you are done, come back to the dashboard to record what you gained and keep your streak going."""


# ============================================
# WEEKLY REPORT
# ============================================

def build_weekly_report(records: List[DailyRecord], start: date, end: date) -> str:
    avg = record_averages(records)
    return (
        f"# Weekly report ({start.isoformat()} - {end.isoformat()})\n\n"
        f"Days recorded: {len(records)}/7\n"
        f"Average mood: {avg['mood']:.1f}/10\n"
        f"Average energy: {avg['energy']:.1f}/10\n"
        f"Average productivity: {avg['productivity']:.1f}/10\n"
        f"Goals completed: {avg['goals_completed']}\n\n"
        f"Highlights:\n"
        f"- You kept up your recording habit and your data keeps growing\n\n"
        f"Suggestions:\n"
        f"- Set one or two clear, small goals for next week and review them regularly"
    )


# ============================================
# INSIGHT STORE
# ============================================

class InsightStore:

    def __init__(self, database: Optional[Database] = None):
        self.db = database or default_db

    async def create_insight(self, user_id: str, insight: Insight) -> AIInsight:
        row = await self.db.execute_returning("""
            INSERT INTO ai_insights (user_id, insight_type, title, content, confidence_score)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING *
        """, user_id, insight.type.value, insight.title, insight.content, insight.confidence)
        return AIInsight(**row)

    async def list_insights(self, user_id: str, limit: int = 20, unread_only: bool = False) -> List[AIInsight]:
        if unread_only:
            rows = await self.db.fetch("""
                SELECT * FROM ai_insights
                WHERE user_id = $1 AND is_read = false
                ORDER BY created_at DESC LIMIT $2
            """, user_id, limit)
        else:
            rows = await self.db.fetch("""
                SELECT * FROM ai_insights
                WHERE user_id = $1
                ORDER BY created_at DESC LIMIT $2
            """, user_id, limit)
        return [AIInsight(**r) for r in rows]

    async def mark_read(self, insight_id: int) -> bool:
        result = await self.db.execute(
            "UPDATE ai_insights SET is_read = true WHERE id = $1", insight_id
        )
        return "UPDATE 1" in result

    async def mark_all_read(self, user_id: str) -> None:
        await self.db.execute(
            "UPDATE ai_insights SET is_read = true WHERE user_id = $1 AND is_read = false",
            user_id
        )


# ============================================
# INSIGHT SERVICE
# ============================================

class InsightService:
    """Analysis, plan and report flows. AI failures never reach the caller;
    store failures do."""

    def __init__(
        self,
        activity_log: ActivityLog,
        goals: GoalStore,
        insights: InsightStore,
        ai: AIClient
    ):
        self.activity_log = activity_log
        self.goals = goals
        self.insights = insights
        self.ai = ai

    async def _generate_or_none(self, prompt: str, purpose: str) -> Optional[str]:
        try:
            return await self.ai.generate(prompt)
        except AINotConfigured:
            logger.info(f"No AI key configured, using local {purpose}")
        except ExternalServiceTimeout as e:
            logger.warning(f"AI {purpose} timed out, using local fallback: {e}")
        except ExternalServiceError as e:
            logger.warning(f"AI {purpose} failed, using local fallback: {e}")
        return None

    async def analyze(self, user_id: str) -> Dict[str, Any]:
        records = await self.activity_log.get_recent_records(user_id, ANALYSIS_WINDOW_DAYS)
        if not records:
            return {
                "insights": [],
                "recommendations": [],
                "patterns": [],
                "message": "More records are needed before an AI analysis can run",
            }

        result = None
        response = await self._generate_or_none(build_analysis_prompt(records), "analysis")
        if response is not None:
            try:
                result = parse_analysis_response(response)
            except ExternalServiceError as e:
                logger.warning(f"Discarding malformed AI analysis: {e}")
        if result is None:
            result = local_analysis(records)

        saved = []
        for insight in result.insights:
            saved.append(await self.insights.create_insight(user_id, insight))

        return {
            "insights": saved,
            "recommendations": result.recommendations,
            "patterns": result.patterns,
        }

    async def plan(self, user_id: str, today: Optional[date] = None) -> str:
        """Always returns a usable plan."""
        try:
            records = await self.activity_log.get_recent_records(user_id, PLAN_WINDOW_DAYS)
            if not records:
                return WELCOME_PLAN
            goals = await self.goals.get_user_goals(user_id, GoalStatus.ACTIVE)
        except Exception:
            logger.exception(f"Plan generation could not load data for {user_id}")
            return EMERGENCY_PLAN

        if not self.ai.is_configured:
            return build_local_plan(records, goals, today)

        response = await self._generate_or_none(build_plan_prompt(records, goals), "plan")
        return response if response is not None else build_local_plan(records, goals, today)

    async def weekly_report(self, user_id: str, today: Optional[date] = None) -> str:
        end = today or utc_today()
        start = end - timedelta(days=6)
        records = await self.activity_log.get_records_by_date_range(user_id, start, end)
        return build_weekly_report(records, start, end)
