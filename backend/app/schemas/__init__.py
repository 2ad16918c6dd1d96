"""Expose Pydantic schemas for convenient imports."""

from .billing import (
    BatchFailureRead,
    BillingCalculationRead,
    BillingHistoryListResponse,
    BillingHistoryRead,
    BillingLineItemRead,
    BillingSettingsRead,
    BillingSettingsUpdate,
    BillingStatisticsRead,
    DeletionSummaryRead,
    InvoiceGenerationSummaryRead,
    MonthlyGenerationRequest,
    OverdueScanResult,
)
from .billing_plan import (
    BillingPlanCreate,
    BillingPlanListResponse,
    BillingPlanRead,
    BillingPlanUpdate,
    SubscriptionCreate,
    SubscriptionRead,
)
from .common import BillingPeriodRequest, PaginatedResponse
from .invoice import (
    InvoiceCancelRequest,
    InvoiceGenerateRequest,
    InvoiceItemRead,
    InvoiceListResponse,
    InvoicePaymentCreate,
    InvoicePaymentRead,
    InvoiceRead,
)

__all__ = [
    "BatchFailureRead",
    "BillingCalculationRead",
    "BillingHistoryListResponse",
    "BillingHistoryRead",
    "BillingLineItemRead",
    "BillingPeriodRequest",
    "BillingPlanCreate",
    "BillingPlanListResponse",
    "BillingPlanRead",
    "BillingPlanUpdate",
    "BillingSettingsRead",
    "BillingSettingsUpdate",
    "BillingStatisticsRead",
    "DeletionSummaryRead",
    "InvoiceCancelRequest",
    "InvoiceGenerateRequest",
    "InvoiceGenerationSummaryRead",
    "InvoiceItemRead",
    "InvoiceListResponse",
    "InvoicePaymentCreate",
    "InvoicePaymentRead",
    "InvoiceRead",
    "MonthlyGenerationRequest",
    "OverdueScanResult",
    "PaginatedResponse",
    "SubscriptionCreate",
    "SubscriptionRead",
]
