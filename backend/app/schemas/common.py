"""Schema building blocks shared by the billing and invoice endpoints."""

from __future__ import annotations

from datetime import date
from typing import Generic, Sequence, TypeVar

from pydantic import BaseModel, Field, model_validator

ItemT = TypeVar("ItemT")


class PaginatedResponse(BaseModel, Generic[ItemT]):
    """Envelope returned by every list endpoint."""

    items: Sequence[ItemT]
    total: int = Field(..., ge=0)
    limit: int = Field(..., ge=1)
    skip: int = Field(..., ge=0)


class BillingPeriodRequest(BaseModel):
    """Inclusive ``[period_start, period_end]`` billing window."""

    period_start: date
    period_end: date

    @model_validator(mode="after")
    def _validate_period(self):
        if self.period_end < self.period_start:
            raise ValueError("period_end must not be earlier than period_start")
        return self
