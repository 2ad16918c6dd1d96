"""Service layer encapsulating business logic for API routers."""

from .billing_automation import (
    BatchFailure,
    BillingAutomationService,
    BillingStatistics,
    DeletionSummary,
    InvoiceGenerationSummary,
)
from .billing_calculation import BillingCalculation, BillingCalculationService, BillingLineItem
from .billing_history import BillingHistoryService
from .billing_periods import BillingPeriodService
from .billing_settings import DEFAULT_BILLING_SETTINGS, BillingSettingsService
from .errors import (
    AlreadyExistsError,
    BillingError,
    DependencyFailureError,
    InvalidInputError,
    InvalidStateTransitionError,
    NotFoundError,
)
from .invoice_lifecycle import InvoiceEvent, InvoiceLifecycleService, derive_status, transition
from .invoice_reminders import (
    ConsoleNotificationClient,
    InvoiceReminderService,
    build_notification_client_from_env,
)
from .proration import ActivityInterval, ProratedCharge, ProrationCalculator
from .subscriptions import SubscriptionService

__all__ = [
    "ActivityInterval",
    "AlreadyExistsError",
    "BatchFailure",
    "BillingAutomationService",
    "BillingCalculation",
    "BillingCalculationService",
    "BillingError",
    "BillingHistoryService",
    "BillingLineItem",
    "BillingPeriodService",
    "BillingSettingsService",
    "BillingStatistics",
    "ConsoleNotificationClient",
    "DEFAULT_BILLING_SETTINGS",
    "DeletionSummary",
    "DependencyFailureError",
    "InvalidInputError",
    "InvalidStateTransitionError",
    "InvoiceEvent",
    "InvoiceGenerationSummary",
    "InvoiceLifecycleService",
    "InvoiceReminderService",
    "NotFoundError",
    "ProratedCharge",
    "ProrationCalculator",
    "SubscriptionService",
    "build_notification_client_from_env",
    "derive_status",
    "transition",
]
