from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

ZERO = Decimal("0")


@dataclass(frozen=True)
class GoalMetrics:
    current_value: Decimal
    progress_ratio: Decimal
    progress_percent: int
    is_locked: bool
    days_remaining: int
    entries_count: int


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps floats coming back from the driver at their printed precision
    return Decimal(str(value))


def sum_progress(values: Iterable) -> Decimal:
    """Exact sum of progress values; zero when there are none."""
    total = ZERO
    for value in values:
        total += to_decimal(value)
    return total


def progress_percent(current_value: Decimal, target_value: Decimal) -> int:
    if target_value <= 0:
        return 0
    percent = current_value * 100 / target_value
    return int(percent.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_metrics(target_value, deadline: date, values: Iterable, today: date) -> GoalMetrics:
    values = list(values)
    target = to_decimal(target_value)
    current = sum_progress(values)
    ratio = current / target if target > 0 else ZERO
    return GoalMetrics(
        current_value=current,
        progress_ratio=ratio,
        progress_percent=progress_percent(current, target),
        is_locked=len(values) >= 1,
        days_remaining=(deadline - today).days,
        entries_count=len(values),
    )
