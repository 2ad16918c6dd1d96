"""Expose SQLAlchemy models for convenient imports."""

from .billing_history import BillingHistory, BillingOperation
from .billing_plan import BillingPeriodType, BillingPlan, Subscription, SubscriptionStatus
from .billing_settings import BillingSettings
from .company import Company
from .contract import Contract, ContractStatus, TariffPlan
from .invoice import (
    OPEN_INVOICE_STATUSES,
    Invoice,
    InvoiceItem,
    InvoiceItemType,
    InvoiceStatus,
)
from .monitored_object import MonitoredObject, ObjectActivityInterval, ObjectStatus
from .payment import InvoicePayment, PaymentMethod, PaymentStatus

__all__ = [
    "BillingHistory",
    "BillingOperation",
    "BillingPeriodType",
    "BillingPlan",
    "BillingSettings",
    "Company",
    "Contract",
    "ContractStatus",
    "Invoice",
    "InvoiceItem",
    "InvoiceItemType",
    "InvoicePayment",
    "InvoiceStatus",
    "MonitoredObject",
    "ObjectActivityInterval",
    "ObjectStatus",
    "OPEN_INVOICE_STATUSES",
    "PaymentMethod",
    "PaymentStatus",
    "Subscription",
    "SubscriptionStatus",
    "TariffPlan",
]
