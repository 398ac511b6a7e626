"""
Growth Journal - Daily Check-in
NoCheckinToday -> Checked, fired on sign-in and session restore.

The existence check only saves a round trip; the UNIQUE (user_id, date)
constraint is the real guard against two tabs checking in at once.
"""

import logging
from datetime import date
from typing import Optional

from activity_log import ActivityLog
from database import ConstraintViolation
from gamification import utc_today
from models import CheckInResult

logger = logging.getLogger(__name__)


class CheckinService:

    def __init__(self, activity_log: ActivityLog):
        self.activity_log = activity_log

    async def has_checked_in(self, user_id: str, today: Optional[date] = None) -> bool:
        return await self.activity_log.has_checkin(user_id, today or utc_today())

    async def check_in(self, user_id: str, today: Optional[date] = None) -> CheckInResult:
        """Check the user in for today. created is False when already checked in."""
        today = today or utc_today()

        if await self.activity_log.has_checkin(user_id, today):
            return CheckInResult(created=False, date=today)

        try:
            await self.activity_log.insert_checkin(user_id, today)
        except ConstraintViolation:
            logger.info(f"Concurrent check-in for {user_id} on {today}, keeping the existing row")
            return CheckInResult(created=False, date=today)

        return CheckInResult(created=True, date=today)
