"""
Growth Journal - Preferences & Client State
Typed per-user keys kept apart from point/streak accounting.

Lifecycle per key:
    reminder_time           set by the user, cleared by the user
    reduced_motion          set by the user
    theme_mode              set by the user
    pending_checkin_points  set when a check-in is newly created,
                            cleared when the client consumes the celebration
    just_signed_out         set on sign-out, cleared by the next sign-in/restore
"""

from enum import Enum
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field, TypeAdapter

from database import db as default_db, Database


class ReminderTime(BaseModel):
    hour: int = Field(ge=0, le=23)
    minute: int = Field(ge=0, le=59)


class PreferenceKey(str, Enum):
    REMINDER_TIME = "reminder_time"
    REDUCED_MOTION = "reduced_motion"
    THEME_MODE = "theme_mode"
    PENDING_CHECKIN_POINTS = "pending_checkin_points"
    JUST_SIGNED_OUT = "just_signed_out"


# key -> (value type, default)
PREFERENCE_TYPES: Dict[PreferenceKey, tuple] = {
    PreferenceKey.REMINDER_TIME: (Optional[ReminderTime], None),
    PreferenceKey.REDUCED_MOTION: (bool, False),
    PreferenceKey.THEME_MODE: (Literal["light", "dark", "system"], "system"),
    PreferenceKey.PENDING_CHECKIN_POINTS: (Optional[int], None),
    PreferenceKey.JUST_SIGNED_OUT: (bool, False),
}

USER_SETTABLE = {
    PreferenceKey.REMINDER_TIME,
    PreferenceKey.REDUCED_MOTION,
    PreferenceKey.THEME_MODE,
}


def _adapter(key: PreferenceKey) -> TypeAdapter:
    value_type, _ = PREFERENCE_TYPES[key]
    return TypeAdapter(value_type)


def validate_preference(key: PreferenceKey, value: Any) -> Any:
    """Validate a value for a key. Raises pydantic.ValidationError."""
    return _adapter(key).validate_python(value)


class PreferenceStore:
    """Preference rows keyed by (user_id, key), JSON encoded."""

    def __init__(self, database: Optional[Database] = None):
        self.db = database or default_db

    async def get(self, user_id: str, key: PreferenceKey) -> Any:
        key = PreferenceKey(key)
        row = await self.db.fetch_one(
            "SELECT value FROM user_preferences WHERE user_id = $1 AND key = $2",
            user_id, key.value
        )
        if row is None or row["value"] is None:
            return PREFERENCE_TYPES[key][1]
        return _adapter(key).validate_json(row["value"])

    async def set(self, user_id: str, key: PreferenceKey, value: Any) -> Any:
        key = PreferenceKey(key)
        value = validate_preference(key, value)
        encoded = _adapter(key).dump_json(value).decode()
        await self.db.execute("""
            INSERT INTO user_preferences (user_id, key, value)
            VALUES ($1, $2, $3::jsonb)
            ON CONFLICT (user_id, key) DO UPDATE SET
                value = EXCLUDED.value,
                updated_at = NOW()
        """, user_id, key.value, encoded)
        return value

    async def clear(self, user_id: str, key: PreferenceKey) -> None:
        await self.db.execute(
            "DELETE FROM user_preferences WHERE user_id = $1 AND key = $2",
            user_id, PreferenceKey(key).value
        )

    async def consume(self, user_id: str, key: PreferenceKey) -> Any:
        """Read a one-shot flag and clear it."""
        value = await self.get(user_id, key)
        await self.clear(user_id, key)
        return value

    async def get_all(self, user_id: str) -> Dict[str, Any]:
        rows = await self.db.fetch(
            "SELECT key, value FROM user_preferences WHERE user_id = $1", user_id
        )
        stored = {r["key"]: r["value"] for r in rows}
        result = {}
        for key, (_, default) in PREFERENCE_TYPES.items():
            raw = stored.get(key.value)
            value = _adapter(key).validate_json(raw) if raw is not None else default
            result[key.value] = _adapter(key).dump_python(value, mode="json")
        return result
