"""
Growth Journal - Configuration Management
Supports .env files and runtime configuration for the AI service and the
gamification rules.
"""

from typing import Dict, Any
from pydantic_settings import BaseSettings
from pydantic import Field
from functools import lru_cache


# ============================================
# AI / LLM CONFIGURATION
# ============================================

class AIConfig(BaseSettings):
    """
    AI/LLM Configuration.
    Any OpenAI-compatible chat completions endpoint works (DeepSeek by default).
    An empty api_key puts insights and plans in permanent local-fallback mode.
    """
    api_base_url: str = Field(
        default="https://api.deepseek.com/v1",
        description="Base URL for the OpenAI-compatible API"
    )
    api_key: str = Field(
        default="",
        description="API key for the LLM provider (empty disables remote calls)"
    )
    model_name: str = Field(
        default="deepseek-chat",
        description="Model name to use for chat completions"
    )
    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for AI responses"
    )
    max_tokens: int = Field(
        default=1000,
        ge=100,
        le=8000,
        description="Maximum tokens in AI responses"
    )
    timeout_seconds: float = Field(
        default=15.0,
        gt=0.0,
        le=120.0,
        description="Deadline for a single generate() call, retries included"
    )
    max_retries: int = Field(
        default=2,
        ge=0,
        le=5,
        description="Retries on rate limiting and connection errors"
    )

    model_config = {
        "env_prefix": "AI_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore"
    }

    @property
    def has_key(self) -> bool:
        return bool(self.api_key.strip())


# ============================================
# GAMIFICATION CONFIGURATION
# ============================================

class GamificationConfig(BaseSettings):
    """Point values and bounds used by the streak and points engine."""

    record_points: int = Field(
        default=5,
        ge=0,
        description="Flat points for each filed daily record"
    )
    checkin_points: int = Field(
        default=2,
        ge=0,
        description="Flat points for each daily check-in"
    )
    streak_week_bonus: int = Field(
        default=20,
        ge=0,
        description="Bonus per complete week of the current streak"
    )
    quality_threshold: int = Field(
        default=8,
        ge=1,
        le=10,
        description="Score at or above which a record earns a quality bonus"
    )
    quality_bonus: int = Field(
        default=2,
        ge=0,
        description="Bonus per high mood, energy or productivity score"
    )
    goal_bonus: int = Field(
        default=3,
        ge=0,
        description="Bonus per goal completed on a record"
    )
    focus_session_points: int = Field(
        default=5,
        ge=0,
        description="Manual ledger bonus for a successful focus session"
    )
    streak_lookback_days: int = Field(
        default=400,
        ge=1,
        le=3650,
        description="How many days back the streak walk may look (streak cap)"
    )
    history_limit: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Default number of points-history entries returned"
    )
    points_per_level: int = Field(
        default=100,
        ge=1,
        description="Points needed per level"
    )

    model_config = {
        "env_prefix": "GAMIFICATION_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore"
    }


# ============================================
# CACHED CONFIGURATION INSTANCES
# ============================================

@lru_cache()
def get_ai_config() -> AIConfig:
    """Get cached AI configuration instance."""
    return AIConfig()


@lru_cache()
def get_gamification_config() -> GamificationConfig:
    """Get cached gamification configuration instance."""
    return GamificationConfig()


def reload_config():
    """Clear configuration cache and reload from environment."""
    get_ai_config.cache_clear()
    get_gamification_config.cache_clear()


# ============================================
# CONFIGURATION SUMMARY
# ============================================

def get_config_summary() -> Dict[str, Any]:
    """
    Get a summary of all configuration values.
    Useful for debugging and settings display.
    """
    ai = get_ai_config()
    game = get_gamification_config()

    return {
        "ai": {
            "base_url": ai.api_base_url,
            "model": ai.model_name,
            "has_key": ai.has_key,
            "temperature": ai.temperature,
            "max_tokens": ai.max_tokens,
            "timeout_seconds": ai.timeout_seconds,
        },
        "gamification": {
            "record_points": game.record_points,
            "checkin_points": game.checkin_points,
            "streak_week_bonus": game.streak_week_bonus,
            "quality_threshold": game.quality_threshold,
            "quality_bonus": game.quality_bonus,
            "goal_bonus": game.goal_bonus,
            "focus_session_points": game.focus_session_points,
            "streak_lookback_days": game.streak_lookback_days,
            "points_per_level": game.points_per_level,
        },
    }
