"""Pure proration arithmetic used to price billable entities over a period."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Union

from .billing_periods import BillingPeriodService
from .errors import InvalidInputError

DateLike = Union[date, datetime]

# Currencies without a fractional minor unit.
ZERO_DECIMAL_CURRENCIES = frozenset({"JPY", "KRW", "VND", "CLP", "ISK", "UGX"})

FRACTION_QUANTUM = Decimal("0.0001")


def minor_unit(currency: Optional[str] = None) -> Decimal:
    if currency and currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return Decimal("1")
    return Decimal("0.01")


def round_money(value: Decimal | int | str, currency: Optional[str] = None) -> Decimal:
    """Round an amount half-up to the currency's minor unit."""

    return Decimal(value).quantize(minor_unit(currency), rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class ActivityInterval:
    """A span of activity.

    ``datetime`` bounds are instants; ``date`` bounds are whole days, so a
    ``date`` end is the last active day. A missing end means still active.
    """

    active_from: DateLike
    active_until: Optional[DateLike] = None

    def full_days(self) -> tuple[date, Optional[date]]:
        """Return the first and last calendar day covered from midnight to midnight."""

        start = self.active_from
        if isinstance(start, datetime):
            first = start.date() if start.time() == time.min else start.date() + timedelta(days=1)
        else:
            first = start

        end = self.active_until
        if end is None:
            last = None
        elif isinstance(end, datetime):
            last = end.date() - timedelta(days=1)
        else:
            last = end
        return first, last


@dataclass(frozen=True)
class ProratedCharge:
    """Result of pricing one entity for one period."""

    rate: Decimal
    amount: Decimal
    fraction: Decimal
    days_active: int
    days_in_period: int
    inactive_discount_applied: bool = False

    @property
    def is_full_period(self) -> bool:
        return self.days_active == self.days_in_period


class ProrationCalculator:
    """Day-based proration over closed calendar periods."""

    @staticmethod
    def count_active_days(
        period_start: date,
        period_end: date,
        intervals: Iterable[ActivityInterval],
    ) -> int:
        """Count whole calendar days of the period covered by any interval."""

        BillingPeriodService.validate_period(period_start, period_end)

        spans: list[tuple[date, date]] = []
        for interval in intervals:
            first, last = interval.full_days()
            first = max(first, period_start)
            last = period_end if last is None else min(last, period_end)
            if first <= last:
                spans.append((first, last))

        spans.sort()
        days = 0
        current_start: Optional[date] = None
        current_end: Optional[date] = None
        for first, last in spans:
            if current_end is not None and first <= current_end + timedelta(days=1):
                current_end = max(current_end, last)
                continue
            if current_start is not None:
                days += (current_end - current_start).days + 1
            current_start, current_end = first, last
        if current_start is not None:
            days += (current_end - current_start).days + 1
        return days

    @classmethod
    def prorate(
        cls,
        rate: Decimal | int | str,
        period_start: date,
        period_end: date,
        intervals: Iterable[ActivityInterval],
        *,
        enable_inactive_discounts: bool = True,
        inactive_discount_ratio: Decimal | str = Decimal("0.5"),
        currency: Optional[str] = None,
    ) -> ProratedCharge:
        """Price ``rate`` for the period given the entity's activity.

        Full activity is charged at exactly ``rate``, partial activity at
        ``rate * days_active / days_in_period`` and no activity at
        ``rate * inactive_discount_ratio`` when inactive discounts are enabled
        (otherwise the full rate).
        """

        rate = Decimal(rate)
        if rate < 0:
            raise InvalidInputError("rate must not be negative")
        ratio = Decimal(inactive_discount_ratio)
        if ratio < 0 or ratio > 1:
            raise InvalidInputError("inactive_discount_ratio must be between 0 and 1")

        days_in_period = BillingPeriodService.days_in_period(period_start, period_end)
        days_active = cls.count_active_days(period_start, period_end, intervals)

        if days_active == days_in_period:
            return ProratedCharge(
                rate=rate,
                amount=round_money(rate, currency),
                fraction=Decimal("1"),
                days_active=days_active,
                days_in_period=days_in_period,
            )

        if days_active == 0:
            if enable_inactive_discounts:
                return ProratedCharge(
                    rate=rate,
                    amount=round_money(rate * ratio, currency),
                    fraction=ratio.quantize(FRACTION_QUANTUM, rounding=ROUND_HALF_UP),
                    days_active=0,
                    days_in_period=days_in_period,
                    inactive_discount_applied=True,
                )
            return ProratedCharge(
                rate=rate,
                amount=round_money(rate, currency),
                fraction=Decimal("1"),
                days_active=0,
                days_in_period=days_in_period,
            )

        fraction = Decimal(days_active) / Decimal(days_in_period)
        return ProratedCharge(
            rate=rate,
            amount=round_money(rate * days_active / days_in_period, currency),
            fraction=fraction.quantize(FRACTION_QUANTUM, rounding=ROUND_HALF_UP),
            days_active=days_active,
            days_in_period=days_in_period,
        )
