from __future__ import annotations

from decimal import Decimal

import pytest

from backend.app import models
from backend.app.services import (
    DEFAULT_BILLING_SETTINGS,
    BillingSettingsService,
    InvalidInputError,
    NotFoundError,
)
from backend.app.services.billing_settings import format_invoice_number


def test_settings_are_created_lazily_with_defaults(db_session, company):
    assert db_session.query(models.BillingSettings).count() == 0

    settings = BillingSettingsService.get_or_create_settings(db_session, company.id)

    for field, value in DEFAULT_BILLING_SETTINGS.items():
        assert getattr(settings, field) == value
    assert settings.last_invoice_sequence == 0


def test_get_or_create_returns_the_same_row(db_session, company):
    first = BillingSettingsService.get_or_create_settings(db_session, company.id)
    second = BillingSettingsService.get_or_create_settings(db_session, company.id)

    assert first.id == second.id
    assert db_session.query(models.BillingSettings).count() == 1


def test_unknown_company_is_not_found(db_session):
    with pytest.raises(NotFoundError):
        BillingSettingsService.get_or_create_settings(db_session, 777)


def test_update_settings_normalizes_values(db_session, company):
    settings = BillingSettingsService.update_settings(
        db_session,
        company.id,
        {
            "currency": "usd",
            "default_tax_rate": "7.5",
            "invoice_payment_term_days": "30",
            "default_payment_method": "card",
        },
    )

    assert settings.currency == "USD"
    assert settings.default_tax_rate == Decimal("7.50")
    assert settings.invoice_payment_term_days == 30
    assert settings.default_payment_method == models.PaymentMethod.CARD


@pytest.mark.parametrize(
    "changes",
    [
        {"invoice_generation_day": 29},
        {"invoice_generation_day": 0},
        {"invoice_payment_term_days": 0},
        {"default_tax_rate": "100.01"},
        {"inactive_discount_ratio": "1.5"},
        {"currency": "EURO"},
        {"invoice_number_prefix": "  "},
        {"invoice_number_format": "%d-%d-%d"},
        {"default_payment_method": "cheque"},
        {"notify_overdue": -1},
        {"tax_included": None},
        {"unknown_field": True},
    ],
)
def test_invalid_settings_are_rejected(db_session, company, changes):
    with pytest.raises(InvalidInputError):
        BillingSettingsService.update_settings(db_session, company.id, changes)


def test_format_invoice_number():
    assert format_invoice_number("%s-%04d", "INV", 7) == "INV-0007"
    with pytest.raises(InvalidInputError):
        format_invoice_number("%s", "INV", 7)
