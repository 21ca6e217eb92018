import pytest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from app.models.goal import GoalStatus
from app.services.status_resolver import end_of_deadline_day, resolve

DEADLINE = date(2026, 3, 15)
END = end_of_deadline_day(DEADLINE)


def test_end_of_deadline_day_is_last_millisecond():
    assert END == datetime(2026, 3, 15, 23, 59, 59, 999000)


@pytest.mark.parametrize("status", [GoalStatus.abandoned, GoalStatus.completed_success, GoalStatus.completed_failure])
def test_finished_goals_never_change(status):
    after = END + timedelta(days=5)
    assert resolve(status, Decimal("0"), Decimal("100"), DEADLINE, after) is None
    assert resolve(status, Decimal("200"), Decimal("100"), DEADLINE, after) is None


def test_reaching_target_does_not_complete_goal():
    before = END - timedelta(days=1)
    assert resolve(GoalStatus.active, Decimal("100"), Decimal("100"), DEADLINE, before) is None
    assert resolve(GoalStatus.active, Decimal("150"), Decimal("100"), DEADLINE, END + timedelta(days=1)) is None


def test_no_failure_until_deadline_day_is_over():
    assert resolve(GoalStatus.active, Decimal("10"), Decimal("100"), DEADLINE, datetime(2026, 3, 15, 0, 0)) is None
    assert resolve(GoalStatus.active, Decimal("10"), Decimal("100"), DEADLINE, END) is None


def test_failure_right_after_deadline_day():
    now = END + timedelta(milliseconds=1)
    assert resolve(GoalStatus.active, Decimal("10"), Decimal("100"), DEADLINE, now) == GoalStatus.completed_failure


def test_aware_now_is_compared_in_local_time():
    now = (END + timedelta(days=2)).astimezone(timezone.utc)
    assert resolve(GoalStatus.active, Decimal("0"), Decimal("1"), DEADLINE, now) == GoalStatus.completed_failure
