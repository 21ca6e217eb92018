from datetime import date
from decimal import Decimal

from app.services.progress_aggregator import compute_metrics, progress_percent, sum_progress


def test_sum_of_no_entries_is_zero():
    assert sum_progress([]) == Decimal("0")


def test_sum_is_exact_across_many_small_entries():
    # 0.1 summed as floats drifts to 0.9999999999999999
    assert sum_progress([Decimal("0.1")] * 10) == Decimal("1.0")
    assert sum_progress([0.1] * 10) == Decimal("1.0")


def test_percent_rounds_half_up():
    assert progress_percent(Decimal("1"), Decimal("8")) == 13
    assert progress_percent(Decimal("1"), Decimal("3")) == 33


def test_metrics_ratio_is_not_clamped():
    metrics = compute_metrics(Decimal("100"), date(2026, 3, 10), [Decimal("90"), Decimal("60")], date(2026, 3, 1))

    assert metrics.current_value == Decimal("150")
    assert metrics.progress_ratio == Decimal("1.5")
    assert metrics.progress_percent == 150
    assert metrics.is_locked is True
    assert metrics.entries_count == 2
    assert metrics.days_remaining == 9


def test_metrics_without_entries_are_unlocked_and_days_can_be_negative():
    metrics = compute_metrics(Decimal("50"), date(2026, 3, 1), [], date(2026, 3, 4))

    assert metrics.current_value == Decimal("0")
    assert metrics.progress_percent == 0
    assert metrics.is_locked is False
    assert metrics.days_remaining == -3
