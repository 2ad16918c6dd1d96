"""Schemas for billing plans and subscriptions."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.billing_plan import BillingPeriodType, SubscriptionStatus
from .common import PaginatedResponse


class BillingPlanBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0)
    currency: str = Field(default="RUB", min_length=3, max_length=3)
    billing_period: BillingPeriodType = BillingPeriodType.MONTHLY
    max_objects: Optional[int] = Field(default=None, ge=0)
    is_active: bool = True


class BillingPlanCreate(BillingPlanBase):
    company_id: Optional[int] = None


class BillingPlanUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    billing_period: Optional[BillingPeriodType] = None
    max_objects: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None
    administrative_correction: bool = False


class BillingPlanRead(BillingPlanBase):
    id: int
    company_id: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BillingPlanListResponse(PaginatedResponse[BillingPlanRead]):
    pass


class SubscriptionCreate(BaseModel):
    company_id: int
    plan_id: int
    start_date: Optional[date] = None


class SubscriptionRead(BaseModel):
    id: int
    company_id: int
    plan_id: int
    status: SubscriptionStatus
    start_date: date
    end_date: Optional[date] = None
    next_payment_date: Optional[date] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
