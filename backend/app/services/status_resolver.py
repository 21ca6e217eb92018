"""
Automatic status transitions.

Success is never applied automatically: reaching the target while active
only makes the goal eligible for an explicit "complete" action. Failure is
automatic once the deadline day has fully elapsed with the target unmet.
Abandoned and completed goals are never touched.
"""
from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional

from app.models.goal import GoalStatus

END_OF_DAY = time(23, 59, 59, 999000)


def end_of_deadline_day(deadline: date) -> datetime:
    """Last instant of the deadline's calendar day, in server-local time."""
    return datetime.combine(deadline, END_OF_DAY)


def resolve(
    current_status: GoalStatus,
    current_value: Decimal,
    target_value: Decimal,
    deadline: date,
    now: datetime,
) -> Optional[GoalStatus]:
    """Return the status the goal should move to, or None to leave it as is."""
    if current_status == GoalStatus.abandoned:
        return None

    if current_status in (GoalStatus.completed_success, GoalStatus.completed_failure):
        return None

    if now.tzinfo is not None:
        now = now.astimezone().replace(tzinfo=None)

    if now > end_of_deadline_day(deadline) and current_value < target_value:
        return GoalStatus.completed_failure

    return None
