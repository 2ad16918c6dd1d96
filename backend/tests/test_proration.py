from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

from backend.app.services import BillingPeriodService, InvalidInputError
from backend.app.services.proration import (
    ActivityInterval,
    ProrationCalculator,
    round_money,
)

APRIL_START = date(2024, 4, 1)
APRIL_END = date(2024, 4, 30)


def test_half_of_thirty_day_period_is_half_the_rate():
    intervals = [ActivityInterval(datetime(2024, 4, 1), datetime(2024, 4, 16))]

    charge = ProrationCalculator.prorate(Decimal("3000"), APRIL_START, APRIL_END, intervals)

    assert charge.days_active == 15
    assert charge.days_in_period == 30
    assert charge.amount == Decimal("1500.00")
    assert charge.fraction == Decimal("0.5000")


def test_full_period_is_charged_exactly_the_rate():
    intervals = [ActivityInterval(datetime(2024, 3, 15), None)]

    charge = ProrationCalculator.prorate(Decimal("3000"), APRIL_START, APRIL_END, intervals)

    assert charge.is_full_period
    assert charge.amount == Decimal("3000.00")
    assert charge.fraction == Decimal("1")


def test_inactive_object_gets_discounted_rate():
    charge = ProrationCalculator.prorate(
        Decimal("800"),
        APRIL_START,
        APRIL_END,
        [],
        enable_inactive_discounts=True,
        inactive_discount_ratio=Decimal("0.25"),
    )

    assert charge.inactive_discount_applied
    assert charge.days_active == 0
    assert charge.amount == Decimal("200.00")


def test_inactive_object_without_discount_pays_full_rate():
    charge = ProrationCalculator.prorate(
        Decimal("800"), APRIL_START, APRIL_END, [], enable_inactive_discounts=False
    )

    assert not charge.inactive_discount_applied
    assert charge.amount == Decimal("800.00")


def test_partial_day_at_either_end_is_not_counted():
    # Active from midday on the 10th until midday on the 12th: only the 11th is whole.
    intervals = [ActivityInterval(datetime(2024, 4, 10, 12), datetime(2024, 4, 12, 12))]

    assert ProrationCalculator.count_active_days(APRIL_START, APRIL_END, intervals) == 1


def test_overlapping_intervals_are_counted_once():
    intervals = [
        ActivityInterval(datetime(2024, 4, 1), datetime(2024, 4, 11)),
        ActivityInterval(datetime(2024, 4, 5), datetime(2024, 4, 21)),
        ActivityInterval(date(2024, 4, 28), date(2024, 4, 30)),
    ]

    assert ProrationCalculator.count_active_days(APRIL_START, APRIL_END, intervals) == 23


def test_intervals_outside_the_period_are_ignored():
    intervals = [
        ActivityInterval(datetime(2024, 2, 1), datetime(2024, 3, 1)),
        ActivityInterval(datetime(2024, 5, 2), None),
    ]

    assert ProrationCalculator.count_active_days(APRIL_START, APRIL_END, intervals) == 0


def test_amount_is_rounded_half_up_to_minor_unit():
    # 100 * 1 / 30 = 3.3333...
    intervals = [ActivityInterval(date(2024, 4, 1), date(2024, 4, 1))]

    charge = ProrationCalculator.prorate(Decimal("100"), APRIL_START, APRIL_END, intervals)

    assert charge.amount == Decimal("3.33")
    assert round_money(Decimal("2.345")) == Decimal("2.35")
    assert round_money(Decimal("1234.5"), "JPY") == Decimal("1235")


def test_negative_rate_is_rejected():
    with pytest.raises(InvalidInputError):
        ProrationCalculator.prorate(Decimal("-1"), APRIL_START, APRIL_END, [])


def test_reversed_period_is_rejected():
    with pytest.raises(InvalidInputError):
        ProrationCalculator.count_active_days(APRIL_END, APRIL_START, [])


def test_month_period_and_previous_month():
    assert BillingPeriodService.month_period(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
    assert BillingPeriodService.previous_month(date(2025, 1, 10)) == (2024, 12)
    assert BillingPeriodService.add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)

    with pytest.raises(InvalidInputError):
        BillingPeriodService.month_period(2024, 13)


def test_normalize_period_key():
    assert BillingPeriodService.normalize_period_key("2024-2") == (
        "2024-02",
        date(2024, 2, 1),
        date(2024, 2, 29),
    )
    with pytest.raises(InvalidInputError):
        BillingPeriodService.normalize_period_key("2024/02")
