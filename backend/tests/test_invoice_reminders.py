from __future__ import annotations

from datetime import date, timedelta

import httpx
import pytest

from backend.app import models
from backend.app.services import (
    BillingSettingsService,
    DependencyFailureError,
    InvoiceLifecycleService,
)
from backend.app.services.invoice_reminders import (
    ConfigurationError,
    ConsoleNotificationClient,
    InvoiceReminderService,
    NotificationClient,
    NotificationResult,
    SendGridEmailClient,
    build_notification_client_from_env,
)

ISSUE_DATE = date(2025, 2, 1)


class FailingNotificationClient(NotificationClient):
    channel = "test"

    def send_message(  # type: ignore[override]
        self,
        *,
        destination: str,
        subject: str,
        plain_text: str,
        html_text: str | None = None,
    ) -> NotificationResult:
        return NotificationResult(success=False, status_code=500, error="boom")


@pytest.fixture
def invoice(db_session, contract) -> models.Invoice:
    return InvoiceLifecycleService.generate_invoice_for_contract(
        db_session, contract.id, date(2025, 1, 1), date(2025, 1, 31), issue_date=ISSUE_DATE
    )


def _reminder_count(db_session) -> int:
    return (
        db_session.query(models.BillingHistory)
        .filter(models.BillingHistory.operation == models.BillingOperation.REMINDER_SENT)
        .count()
    )


def test_due_soon_reminder_is_sent_once_per_day(db_session, invoice):
    client = ConsoleNotificationClient()
    service = InvoiceReminderService(db_session, client)
    today = invoice.due_date - timedelta(days=2)

    summary = service.send_reminders(reference_date=today)

    assert summary.due_soon_attempts == 1
    assert summary.overdue_attempts == 0
    assert summary.sent == 1
    assert client.records[0]["destination"] == "billing@acme.example"
    assert invoice.number in client.records[0]["subject"]
    assert "1200.00 RUB" in client.records[0]["plain_text"]

    again = service.send_reminders(reference_date=today)
    assert again.sent == 0
    assert again.skipped == 1
    assert _reminder_count(db_session) == 1


def test_delivered_reminders_survive_a_later_company_failure(
    db_session, invoice, monkeypatch
):
    other = models.Company(name="Beta Freight", contact_email="ap@beta.example")
    db_session.add(other)
    db_session.commit()
    load_settings = BillingSettingsService.get_or_create_settings

    def settings_unavailable_for_other(db, company_id):
        if company_id == other.id:
            raise DependencyFailureError("settings unavailable")
        return load_settings(db, company_id)

    monkeypatch.setattr(
        BillingSettingsService,
        "get_or_create_settings",
        staticmethod(settings_unavailable_for_other),
    )
    service = InvoiceReminderService(db_session, ConsoleNotificationClient())

    with pytest.raises(DependencyFailureError):
        service.send_reminders(reference_date=invoice.due_date - timedelta(days=1))
    db_session.rollback()

    assert _reminder_count(db_session) == 1


def test_invoice_due_later_gets_no_reminder(db_session, invoice):
    client = ConsoleNotificationClient()

    summary = InvoiceReminderService(db_session, client).send_reminders(
        reference_date=invoice.due_date - timedelta(days=10)
    )

    assert summary.total_attempts == 0
    assert client.records == []


def test_overdue_reminder_waits_for_configured_days(db_session, invoice):
    client = ConsoleNotificationClient()
    service = InvoiceReminderService(db_session, client)

    on_due_date = service.send_reminders(reference_date=invoice.due_date)
    assert on_due_date.overdue_attempts == 0

    late = service.send_reminders(reference_date=invoice.due_date + timedelta(days=1))
    assert late.overdue_attempts == 1
    assert late.sent == 1
    assert "overdue" in client.records[-1]["subject"]


def test_paid_invoice_gets_no_reminder(db_session, invoice):
    InvoiceLifecycleService.process_payment(
        db_session, invoice.id, invoice.total_amount, reference_date=ISSUE_DATE
    )
    client = ConsoleNotificationClient()

    summary = InvoiceReminderService(db_session, client).send_reminders(
        reference_date=invoice.due_date + timedelta(days=5)
    )

    assert summary.total_attempts == 0


def test_failed_delivery_is_counted_and_not_recorded(db_session, invoice):
    summary = InvoiceReminderService(db_session, FailingNotificationClient()).send_reminders(
        reference_date=invoice.due_date
    )

    assert summary.failed == 1
    assert summary.sent == 0
    assert _reminder_count(db_session) == 0


def test_sendgrid_client_posts_payload(monkeypatch):
    captured = {}

    def fake_post(url, *, headers, json, timeout):
        captured.update(url=url, headers=headers, json=json)
        return httpx.Response(202, headers={"x-message-id": "abc123"})

    monkeypatch.setattr(httpx, "post", fake_post)
    client = SendGridEmailClient(
        api_key="key", sender_email="billing@example.com", sandbox_mode=True
    )

    result = client.send_message(destination="to@example.com", subject="Hi", plain_text="Body")

    assert result.success
    assert result.provider_message_id == "abc123"
    assert captured["headers"]["Authorization"] == "Bearer key"
    assert captured["json"]["mail_settings"] == {"sandbox_mode": {"enable": True}}


def test_sendgrid_client_requires_credentials():
    with pytest.raises(ConfigurationError):
        SendGridEmailClient(api_key=None, sender_email="billing@example.com")


def test_client_from_env(monkeypatch):
    monkeypatch.setenv("BILLING_NOTIFICATION_TRANSPORT", "sendgrid")
    monkeypatch.delenv("SENDGRID_API_KEY", raising=False)

    assert isinstance(build_notification_client_from_env(), ConsoleNotificationClient)
    with pytest.raises(ConfigurationError):
        build_notification_client_from_env(fallback_to_console=False)

    monkeypatch.setenv("SENDGRID_API_KEY", "key")
    monkeypatch.setenv("BILLING_REMINDER_EMAIL_FROM", "billing@example.com")
    assert isinstance(build_notification_client_from_env(), SendGridEmailClient)
