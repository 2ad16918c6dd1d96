"""Schemas for billing calculations, batch runs, statistics and settings."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.billing_history import BillingOperation
from ..models.invoice import InvoiceItemType
from ..models.payment import PaymentMethod
from .common import PaginatedResponse


class BillingLineItemRead(BaseModel):
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


class BillingCalculationRead(BaseModel):
    contract_id: int
    company_id: int
    tariff_plan_id: int
    period_start: date
    period_end: date
    currency: str
    tax_rate: Decimal
    tax_included: bool
    items: List[BillingLineItemRead]
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal

    model_config = ConfigDict(from_attributes=True)


class MonthlyGenerationRequest(BaseModel):
    year: int = Field(..., ge=2000, le=2100)
    month: int = Field(..., ge=1, le=12)
    company_ids: Optional[List[int]] = None
    issue_date: Optional[date] = None


class BatchFailureRead(BaseModel):
    company_id: Optional[int] = None
    contract_id: Optional[int] = None
    object_id: Optional[int] = None
    error: str

    model_config = ConfigDict(from_attributes=True)


class InvoiceGenerationSummaryRead(BaseModel):
    year: int
    month: int
    period_start: date
    period_end: date
    companies_processed: int
    contracts_total: int
    generated: List[int]
    skipped: List[int]
    failures: List[BatchFailureRead]
    execution_time_ms: float

    model_config = ConfigDict(from_attributes=True)


class DeletionSummaryRead(BaseModel):
    deleted_contracts: List[int]
    deleted_objects: List[int]
    deferred_contracts: List[int]
    deferred_objects: List[int]
    failures: List[BatchFailureRead]

    model_config = ConfigDict(from_attributes=True)


class OverdueScanResult(BaseModel):
    updated: int = Field(..., ge=0)


class BillingStatisticsRead(BaseModel):
    company_id: int
    year: int
    month: Optional[int] = None
    period_start: date
    period_end: date
    invoice_count: int
    counts_by_status: Dict[str, int]
    total_invoiced: Decimal
    total_paid: Decimal
    total_outstanding: Decimal
    total_overdue: Decimal

    model_config = ConfigDict(from_attributes=True)


class BillingHistoryRead(BaseModel):
    id: int
    company_id: int
    contract_id: Optional[int] = None
    invoice_id: Optional[int] = None
    operation: BillingOperation
    amount: Optional[Decimal] = None
    description: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BillingHistoryListResponse(PaginatedResponse[BillingHistoryRead]):
    pass


class BillingSettingsRead(BaseModel):
    company_id: int
    auto_generate_invoices: bool
    invoice_generation_day: int
    invoice_payment_term_days: int
    default_tax_rate: Decimal
    tax_included: bool
    notify_before_invoice: int
    notify_before_due: int
    notify_overdue: int
    invoice_number_prefix: str
    invoice_number_format: str
    currency: str
    default_payment_method: PaymentMethod
    allow_partial_payments: bool
    require_payment_confirmation: bool
    enable_inactive_discounts: bool
    inactive_discount_ratio: Decimal

    model_config = ConfigDict(from_attributes=True)


class BillingSettingsUpdate(BaseModel):
    auto_generate_invoices: Optional[bool] = None
    invoice_generation_day: Optional[int] = None
    invoice_payment_term_days: Optional[int] = None
    default_tax_rate: Optional[Decimal] = None
    tax_included: Optional[bool] = None
    notify_before_invoice: Optional[int] = None
    notify_before_due: Optional[int] = None
    notify_overdue: Optional[int] = None
    invoice_number_prefix: Optional[str] = Field(default=None, max_length=20)
    invoice_number_format: Optional[str] = Field(default=None, max_length=50)
    currency: Optional[str] = None
    default_payment_method: Optional[PaymentMethod] = None
    allow_partial_payments: Optional[bool] = None
    require_payment_confirmation: Optional[bool] = None
    enable_inactive_discounts: Optional[bool] = None
    inactive_discount_ratio: Optional[Decimal] = None
