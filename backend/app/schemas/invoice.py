"""Schemas for invoices, their items and payments."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.invoice import InvoiceItemType, InvoiceStatus
from ..models.payment import PaymentMethod, PaymentStatus
from .common import BillingPeriodRequest, PaginatedResponse


class InvoiceItemRead(BaseModel):
    id: int
    position: int
    name: str
    description: Optional[str] = None
    item_type: InvoiceItemType
    object_id: Optional[int] = None
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal
    period_start: Optional[date] = None
    period_end: Optional[date] = None

    model_config = ConfigDict(from_attributes=True)


class InvoiceRead(BaseModel):
    id: int
    company_id: int
    contract_id: int
    tariff_plan_id: Optional[int] = None
    number: str
    title: str
    description: Optional[str] = None
    invoice_date: date
    due_date: date
    period_start: date
    period_end: date
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    currency: str
    status: InvoiceStatus
    paid_amount: Decimal
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    notes: Optional[str] = None
    items: List[InvoiceItemRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class InvoiceListResponse(PaginatedResponse[InvoiceRead]):
    pass


class InvoiceGenerateRequest(BillingPeriodRequest):
    issue_date: Optional[date] = None


class InvoicePaymentCreate(BaseModel):
    amount: Decimal
    method: Optional[PaymentMethod] = None
    notes: Optional[str] = Field(default=None, max_length=500)


class InvoicePaymentRead(BaseModel):
    id: int
    invoice_id: int
    amount: Decimal
    method: PaymentMethod
    status: PaymentStatus
    notes: Optional[str] = None
    paid_at: datetime
    confirmed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class InvoiceCancelRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)
