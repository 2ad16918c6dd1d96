"""Send due-soon and overdue invoice reminders to company contacts."""

from __future__ import annotations

import abc
import logging
import os
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from .. import models
from .billing_history import BillingHistoryService
from .billing_settings import BillingSettingsService

LOGGER = logging.getLogger(__name__)


class ConfigurationError(RuntimeError):
    """Raised when a notification client cannot be configured."""


class NotificationError(RuntimeError):
    """Raised when the external provider rejects a notification."""


@dataclass
class NotificationResult:
    """Outcome returned by a notification provider."""

    success: bool
    status_code: Optional[int] = None
    provider_message_id: Optional[str] = None
    error: Optional[str] = None


class NotificationClient(abc.ABC):
    """Interface implemented by outbound notification providers."""

    channel: str

    @abc.abstractmethod
    def send_message(
        self,
        *,
        destination: str,
        subject: str,
        plain_text: str,
        html_text: str | None = None,
    ) -> NotificationResult:
        """Send a message to the destination and return the delivery result."""


class ConsoleNotificationClient(NotificationClient):
    """Client that logs messages instead of delivering them."""

    channel = "console"

    def __init__(self) -> None:
        self.records: list[dict[str, str]] = []

    def send_message(
        self,
        *,
        destination: str,
        subject: str,
        plain_text: str,
        html_text: str | None = None,
    ) -> NotificationResult:
        self.records.append(
            {
                "destination": destination,
                "subject": subject,
                "plain_text": plain_text,
                "html_text": html_text or "",
            }
        )
        LOGGER.info("[console] Reminder for %s: %s", destination, subject)
        return NotificationResult(success=True, status_code=200, provider_message_id="console")


class SendGridEmailClient(NotificationClient):
    """Deliver reminders through the SendGrid REST API."""

    channel = "email"
    endpoint = "https://api.sendgrid.com/v3/mail/send"

    def __init__(
        self,
        *,
        api_key: str | None,
        sender_email: str | None,
        sender_name: str | None = None,
        sandbox_mode: bool = False,
        timeout: float = 10.0,
    ) -> None:
        if not api_key:
            raise ConfigurationError("SENDGRID_API_KEY is required to send email reminders.")
        if not sender_email:
            raise ConfigurationError("BILLING_REMINDER_EMAIL_FROM is required to send email reminders.")
        self.api_key = api_key
        self.sender_email = sender_email
        self.sender_name = sender_name or "Billing"
        self.sandbox_mode = sandbox_mode
        self.timeout = timeout

    def send_message(
        self,
        *,
        destination: str,
        subject: str,
        plain_text: str,
        html_text: str | None = None,
    ) -> NotificationResult:
        content = [{"type": "text/plain", "value": plain_text}]
        if html_text:
            content.append({"type": "text/html", "value": html_text})

        payload: dict[str, object] = {
            "personalizations": [{"to": [{"email": destination}]}],
            "from": {"email": self.sender_email, "name": self.sender_name},
            "subject": subject,
            "content": content,
        }
        if self.sandbox_mode:
            payload["mail_settings"] = {"sandbox_mode": {"enable": True}}

        try:
            response = httpx.post(
                self.endpoint,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            raise NotificationError(f"Network error contacting SendGrid: {exc}") from exc

        if response.status_code >= 400:
            return NotificationResult(
                success=False, status_code=response.status_code, error=response.text
            )
        return NotificationResult(
            success=True,
            status_code=response.status_code,
            provider_message_id=response.headers.get("x-message-id"),
        )


@dataclass
class InvoiceReminderSummary:
    """Aggregate statistics after processing reminders."""

    due_soon_attempts: int = 0
    overdue_attempts: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def total_attempts(self) -> int:
        return self.due_soon_attempts + self.overdue_attempts

    def to_dict(self) -> dict[str, int]:
        return {
            "due_soon_attempts": self.due_soon_attempts,
            "overdue_attempts": self.overdue_attempts,
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
            "total_attempts": self.total_attempts,
        }


class InvoiceReminderService:
    """Coordinates reminder delivery using each company's notification lead times."""

    def __init__(self, db: Session, notification_client: NotificationClient) -> None:
        self.db = db
        self.notification_client = notification_client

    def send_reminders(self, *, reference_date: Optional[date] = None) -> InvoiceReminderSummary:
        today = reference_date or date.today()
        summary = InvoiceReminderSummary()

        companies = (
            self.db.query(models.Company)
            .filter(models.Company.is_active.is_(True))
            .order_by(models.Company.id)
            .all()
        )
        for company in companies:
            if not company.contact_email:
                continue
            settings = BillingSettingsService.get_or_create_settings(self.db, company.id)

            for invoice in self._due_soon_invoices(company.id, today, settings.notify_before_due):
                summary.due_soon_attempts += 1
                self._deliver(company, invoice, "due_soon", today, summary)

            for invoice in self._overdue_invoices(company.id, today, settings.notify_overdue):
                summary.overdue_attempts += 1
                self._deliver(company, invoice, "overdue", today, summary)

        return summary

    def _due_soon_invoices(
        self, company_id: int, today: date, days_ahead: int
    ) -> list[models.Invoice]:
        return (
            self.db.query(models.Invoice)
            .filter(
                models.Invoice.company_id == company_id,
                models.Invoice.status.in_(models.OPEN_INVOICE_STATUSES),
                models.Invoice.due_date >= today,
                models.Invoice.due_date <= today + timedelta(days=days_ahead),
            )
            .order_by(models.Invoice.due_date, models.Invoice.id)
            .all()
        )

    def _overdue_invoices(
        self, company_id: int, today: date, days_overdue: int
    ) -> list[models.Invoice]:
        cutoff = today - timedelta(days=max(days_overdue, 1))
        return (
            self.db.query(models.Invoice)
            .filter(
                models.Invoice.company_id == company_id,
                models.Invoice.status.notin_(
                    [models.InvoiceStatus.PAID, models.InvoiceStatus.CANCELLED]
                ),
                models.Invoice.due_date <= cutoff,
            )
            .order_by(models.Invoice.due_date, models.Invoice.id)
            .all()
        )

    @staticmethod
    def _reminder_marker(reminder_type: str, today: date) -> str:
        return f"{reminder_type} reminder {today.isoformat()}"

    def _already_reminded(self, invoice: models.Invoice, reminder_type: str, today: date) -> bool:
        return (
            self.db.query(models.BillingHistory.id)
            .filter(
                models.BillingHistory.invoice_id == invoice.id,
                models.BillingHistory.operation == models.BillingOperation.REMINDER_SENT,
                models.BillingHistory.description.startswith(
                    self._reminder_marker(reminder_type, today), autoescape=True
                ),
            )
            .first()
            is not None
        )

    def _deliver(
        self,
        company: models.Company,
        invoice: models.Invoice,
        reminder_type: str,
        today: date,
        summary: InvoiceReminderSummary,
    ) -> None:
        if self._already_reminded(invoice, reminder_type, today):
            summary.skipped += 1
            return

        subject, plain_text = self._compose_message(company, invoice, reminder_type)
        try:
            result = self.notification_client.send_message(
                destination=company.contact_email,
                subject=subject,
                plain_text=plain_text,
            )
        except NotificationError as exc:
            LOGGER.warning("Reminder delivery to %s failed: %s", company.contact_email, exc)
            result = NotificationResult(success=False, error=str(exc))

        if not result.success:
            summary.failed += 1
            LOGGER.warning(
                "Reminder for invoice %s was rejected: %s",
                invoice.number,
                result.error,
                extra={"invoice_id": invoice.id, "status_code": result.status_code},
            )
            return

        BillingHistoryService.record(
            self.db,
            operation=models.BillingOperation.REMINDER_SENT,
            company_id=company.id,
            contract_id=invoice.contract_id,
            invoice_id=invoice.id,
            amount=invoice.outstanding_amount,
            description=(
                f"{self._reminder_marker(reminder_type, today)}: invoice {invoice.number}"
                f" via {self.notification_client.channel}"
            ),
        )
        # Persist each delivery so a later failure cannot cause a resend.
        self.db.commit()
        summary.sent += 1

    @staticmethod
    def _compose_message(
        company: models.Company, invoice: models.Invoice, reminder_type: str
    ) -> tuple[str, str]:
        due = invoice.due_date.strftime("%d.%m.%Y")
        outstanding = f"{invoice.outstanding_amount} {invoice.currency}"
        if reminder_type == "due_soon":
            subject = f"Invoice {invoice.number} is due on {due}"
            intro = f"Invoice {invoice.number} for {company.name} is due on {due}."
        else:
            subject = f"Invoice {invoice.number} is overdue"
            intro = f"Invoice {invoice.number} for {company.name} was due on {due} and is still unpaid."

        body_lines = [
            intro,
            f"Outstanding amount: {outstanding}.",
            "",
            "If you have already paid, please ignore this message.",
        ]
        return subject, "\n".join(body_lines)


def _read_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def build_notification_client_from_env(*, fallback_to_console: bool = True) -> NotificationClient:
    """Instantiate a notification client from environment variables."""

    transport = os.getenv("BILLING_NOTIFICATION_TRANSPORT", "console").strip().lower()

    if transport == "sendgrid":
        try:
            return SendGridEmailClient(
                api_key=os.getenv("SENDGRID_API_KEY"),
                sender_email=os.getenv("BILLING_REMINDER_EMAIL_FROM"),
                sender_name=os.getenv("BILLING_REMINDER_EMAIL_NAME"),
                sandbox_mode=_read_bool("SENDGRID_SANDBOX_MODE"),
            )
        except ConfigurationError as exc:
            if not fallback_to_console:
                raise
            LOGGER.warning("%s; falling back to console delivery.", exc)

    return ConsoleNotificationClient()
