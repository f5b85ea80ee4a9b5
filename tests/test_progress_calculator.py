"""Hours-based progress arithmetic (pure, no DB)."""

from decimal import Decimal

import pytest

from app.services.progress_calculator import calculated_progress, clamp_percentage, variance


@pytest.mark.parametrize(
    "hours,predicted,expected",
    [
        (0, 100, "0.00"),
        (40, 100, "40.00"),
        (50, 100, "50.00"),
        (1, 3, "33.33"),
        (2, 3, "66.67"),
        (100, 100, "100.00"),
        (150, 100, "100.00"),
        ("12.5", "40", "31.25"),
    ],
)
def test_calculated_progress(hours, predicted, expected):
    assert calculated_progress(hours, predicted) == Decimal(expected)


@pytest.mark.parametrize("predicted", [0, "0", None, -5])
def test_zero_or_missing_budget_yields_zero(predicted):
    assert calculated_progress(40, predicted) == Decimal("0")


def test_rounds_half_up_to_two_places():
    # 1/8 * 100 = 12.5 exactly; 1/160 * 100 = 0.625 -> 0.63
    assert calculated_progress(1, 160) == Decimal("0.63")


def test_never_exceeds_hundred():
    assert calculated_progress(Decimal("1000000"), Decimal("0.25")) == Decimal("100.00")


def test_variance_is_actual_minus_calculated():
    assert variance(60, Decimal("40.00")) == Decimal("20.00")
    assert variance(Decimal("30"), Decimal("50")) == Decimal("-20.00")


def test_clamp_percentage():
    assert clamp_percentage(Decimal("120")) == Decimal("100.00")
    assert clamp_percentage(Decimal("-3")) == Decimal("0.00")
    assert clamp_percentage("55.555") == Decimal("55.56")
