"""Calendar helpers for billing periods."""

from __future__ import annotations

from calendar import monthrange
from datetime import date

from .errors import InvalidInputError


class BillingPeriodService:
    """Utility helpers to compute and validate billing periods.

    Periods are closed date ranges: both ``starts_on`` and ``ends_on`` are
    billable days.
    """

    @staticmethod
    def month_period(year: int, month: int) -> tuple[date, date]:
        if month < 1 or month > 12:
            raise InvalidInputError("month must be between 1 and 12")
        _, last_day = monthrange(year, month)
        return date(year, month, 1), date(year, month, last_day)

    @staticmethod
    def year_period(year: int) -> tuple[date, date]:
        return date(year, 1, 1), date(year, 12, 31)

    @classmethod
    def previous_month(cls, reference: date) -> tuple[int, int]:
        shifted = cls.shift_months(reference.replace(day=1), -1)
        return shifted.year, shifted.month

    @staticmethod
    def validate_period(starts_on: date, ends_on: date) -> None:
        if starts_on is None or ends_on is None:
            raise InvalidInputError("period_start and period_end are required")
        if ends_on < starts_on:
            raise InvalidInputError("period_end must not be earlier than period_start")

    @staticmethod
    def days_in_period(starts_on: date, ends_on: date) -> int:
        return (ends_on - starts_on).days + 1

    @staticmethod
    def shift_months(start: date, months_delta: int) -> date:
        month_index = start.month - 1 + months_delta
        year = start.year + month_index // 12
        normalized_month = month_index % 12 + 1
        last_day = monthrange(year, normalized_month)[1]
        return date(year, normalized_month, min(start.day, last_day))

    @classmethod
    def add_months(cls, start: date, months: int) -> date:
        return cls.shift_months(start, months)

    @staticmethod
    def normalize_period_key(period_key: str) -> tuple[str, date, date]:
        """Return ``(YYYY-MM, first_day, last_day)`` for a period key."""

        if not period_key:
            raise InvalidInputError("period_key is required")

        try:
            year_str, month_str = period_key.split("-", maxsplit=1)
            year = int(year_str)
            month = int(month_str)
        except ValueError as exc:
            raise InvalidInputError("Invalid period key format, expected YYYY-MM") from exc

        if month < 1 or month > 12:
            raise InvalidInputError("Invalid period key format, expected YYYY-MM")

        starts_on = date(year, month, 1)
        _, last_day = monthrange(year, month)
        ends_on = date(year, month, last_day)
        return f"{year:04d}-{month:02d}", starts_on, ends_on
