from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from backend.app import models
from backend.app.services import (
    BillingAutomationService,
    BillingHistoryService,
    BillingSettingsService,
    InvalidInputError,
    InvoiceLifecycleService,
)


@pytest.fixture
def second_contract(db_session, company, tariff_plan) -> models.Contract:
    record = models.Contract(
        company_id=company.id,
        tariff_plan_id=tariff_plan.id,
        number="C-002",
        title="Warehouse sensors",
        start_date=date(2024, 6, 1),
    )
    db_session.add(record)
    db_session.commit()
    return record


def test_monthly_generation_is_idempotent(db_session, contract, second_contract):
    first = BillingAutomationService.auto_generate_invoices_for_month(
        db_session, 2025, 1, issue_date=date(2025, 2, 1)
    )

    assert first.companies_processed == 1
    assert first.contracts_total == 2
    assert len(first.generated) == 2
    assert first.skipped == []
    assert not first.has_failures

    second = BillingAutomationService.auto_generate_invoices_for_month(
        db_session, 2025, 1, issue_date=date(2025, 2, 1)
    )

    assert second.generated == []
    assert sorted(second.skipped) == sorted([contract.id, second_contract.id])
    assert db_session.query(models.Invoice).count() == 2


def test_rerun_after_cancellation_does_not_bill_again(db_session, contract):
    first = BillingAutomationService.auto_generate_invoices_for_month(
        db_session, 2025, 1, issue_date=date(2025, 2, 1)
    )
    InvoiceLifecycleService.cancel_invoice(db_session, first.generated[0], "waived")

    second = BillingAutomationService.auto_generate_invoices_for_month(
        db_session, 2025, 1, issue_date=date(2025, 2, 1)
    )

    assert second.generated == []
    assert second.skipped == [contract.id]
    assert db_session.query(models.Invoice).count() == 1


def test_generation_skips_ineligible_contracts(db_session, company, contract, second_contract):
    second_contract.status = models.ContractStatus.SUSPENDED
    terminated = models.Contract(
        company_id=company.id,
        tariff_plan_id=contract.tariff_plan_id,
        number="C-003",
        title="Ended",
        start_date=date(2024, 1, 1),
        end_date=date(2024, 12, 31),
    )
    db_session.add(terminated)
    db_session.commit()

    summary = BillingAutomationService.auto_generate_invoices_for_month(db_session, 2025, 1)

    assert summary.contracts_total == 1
    invoice = db_session.get(models.Invoice, summary.generated[0])
    assert invoice.contract_id == contract.id


def test_generation_collects_failures_and_continues(db_session, company, contract):
    broken = models.Contract(
        company_id=company.id,
        tariff_plan_id=None,
        number="C-404",
        title="No tariff",
        start_date=date(2024, 1, 1),
    )
    db_session.add(broken)
    db_session.commit()

    summary = BillingAutomationService.auto_generate_invoices_for_month(db_session, 2025, 1)

    assert summary.has_failures
    assert [failure.contract_id for failure in summary.failures] == [broken.id]
    assert len(summary.generated) == 1
    assert summary.to_dict()["failures"][0]["company_id"] == company.id


def test_generation_respects_auto_generate_setting(db_session, company, contract):
    BillingSettingsService.update_settings(
        db_session, company.id, {"auto_generate_invoices": False}
    )

    summary = BillingAutomationService.auto_generate_invoices_for_month(db_session, 2025, 1)

    assert summary.companies_processed == 0
    assert summary.generated == []


def test_companies_due_for_generation(db_session, company):
    BillingSettingsService.update_settings(
        db_session, company.id, {"invoice_generation_day": 5}
    )

    assert BillingAutomationService.companies_due_for_generation(
        db_session, date(2025, 3, 5)
    ) == [company.id]
    assert BillingAutomationService.companies_due_for_generation(
        db_session, date(2025, 3, 6)
    ) == []


def test_scheduled_deletion_is_deferred_by_open_invoice(db_session, contract, add_object):
    obj = add_object(contract, "Truck", (datetime(2024, 1, 1), None))
    invoice = InvoiceLifecycleService.generate_invoice_for_contract(
        db_session, contract.id, date(2025, 1, 1), date(2025, 1, 31), issue_date=date(2025, 2, 1)
    )
    contract.scheduled_delete_at = date(2025, 2, 5)
    db_session.commit()

    deferred = BillingAutomationService.process_scheduled_deletions(
        db_session, reference_date=date(2025, 2, 5)
    )
    assert deferred.deferred_contracts == [contract.id]
    assert deferred.deleted_contracts == []

    InvoiceLifecycleService.process_payment(
        db_session, invoice.id, invoice.total_amount, reference_date=date(2025, 2, 6)
    )
    summary = BillingAutomationService.process_scheduled_deletions(
        db_session, reference_date=date(2025, 2, 6)
    )

    assert summary.deleted_contracts == [contract.id]
    db_session.refresh(contract)
    db_session.refresh(obj)
    assert contract.status == models.ContractStatus.TERMINATED
    assert contract.deleted_at is not None
    assert obj.status == models.ObjectStatus.DELETED
    assert obj.activity_intervals[0].active_until == datetime(2025, 2, 6)
    assert contract.end_date == date(2025, 2, 5)


def test_contract_deleted_mid_month_is_billed_for_days_used(
    db_session, tariff_plan, contract, add_object
):
    tariff_plan.price_per_object = Decimal("310.00")
    obj = add_object(contract, "Van", (datetime(2024, 1, 1), None))
    contract.scheduled_delete_at = date(2025, 1, 15)
    db_session.commit()

    deletion = BillingAutomationService.process_scheduled_deletions(
        db_session, reference_date=date(2025, 1, 15)
    )
    assert deletion.deleted_contracts == [contract.id]
    db_session.refresh(contract)
    assert contract.end_date == date(2025, 1, 14)

    january = BillingAutomationService.auto_generate_invoices_for_month(
        db_session, 2025, 1, issue_date=date(2025, 2, 1)
    )
    february = BillingAutomationService.auto_generate_invoices_for_month(
        db_session, 2025, 2, issue_date=date(2025, 3, 1)
    )

    assert len(january.generated) == 1
    assert february.contracts_total == 0
    invoice = db_session.get(models.Invoice, january.generated[0])
    amounts = {item.item_type: item.amount for item in invoice.items}
    # January 1-14 of 31 days.
    assert amounts[models.InvoiceItemType.SUBSCRIPTION] == Decimal("451.61")
    assert amounts[models.InvoiceItemType.OBJECT] == Decimal("140.00")
    assert obj.id in [item.object_id for item in invoice.items]


def test_overdue_invoice_does_not_defer_deletion(db_session, contract, add_object):
    obj = add_object(contract, "Sensor", (datetime(2024, 1, 1), None))
    obj.scheduled_delete_at = date(2025, 3, 1)
    db_session.commit()
    InvoiceLifecycleService.generate_invoice_for_contract(
        db_session, contract.id, date(2025, 1, 1), date(2025, 1, 31), issue_date=date(2025, 2, 1)
    )

    summary = BillingAutomationService.process_scheduled_deletions(
        db_session, reference_date=date(2025, 3, 1)
    )

    assert summary.deleted_objects == [obj.id]
    history, total = BillingHistoryService.list_history(db_session, contract.company_id)
    assert models.BillingOperation.OBJECT_SCHEDULED_DELETION in [
        entry.operation for entry in history
    ]


def test_billing_statistics(db_session, contract, second_contract):
    BillingAutomationService.auto_generate_invoices_for_month(
        db_session, 2025, 1, issue_date=date(2025, 2, 1)
    )
    invoices = db_session.query(models.Invoice).order_by(models.Invoice.id).all()
    InvoiceLifecycleService.process_payment(
        db_session, invoices[0].id, "1200", reference_date=date(2025, 2, 2)
    )
    InvoiceLifecycleService.mark_overdue_invoices(db_session, reference_date=date(2025, 3, 1))

    stats = BillingAutomationService.get_billing_statistics(
        db_session, contract.company_id, 2025, 2
    )

    assert stats.invoice_count == 2
    assert stats.counts_by_status["paid"] == 1
    assert stats.counts_by_status["overdue"] == 1
    assert stats.counts_by_status["cancelled"] == 0
    assert stats.total_invoiced == Decimal("2400.00")
    assert stats.total_paid == Decimal("1200.00")
    assert stats.total_outstanding == Decimal("1200.00")
    assert stats.total_overdue == Decimal("1200.00")

    empty = BillingAutomationService.get_billing_statistics(
        db_session, contract.company_id, 2025, 1
    )
    assert empty.invoice_count == 0


def test_cancelled_invoices_are_excluded_from_totals(db_session, contract):
    invoice = InvoiceLifecycleService.generate_invoice_for_contract(
        db_session, contract.id, date(2025, 1, 1), date(2025, 1, 31), issue_date=date(2025, 2, 1)
    )
    InvoiceLifecycleService.cancel_invoice(db_session, invoice.id, "Duplicate")

    stats = BillingAutomationService.get_billing_statistics(db_session, contract.company_id, 2025)

    assert stats.counts_by_status["cancelled"] == 1
    assert stats.total_invoiced == Decimal("0.00")


def test_invoices_by_period_and_overdue(db_session, contract):
    InvoiceLifecycleService.generate_invoice_for_contract(
        db_session, contract.id, date(2025, 1, 1), date(2025, 1, 31), issue_date=date(2025, 2, 1)
    )
    InvoiceLifecycleService.generate_invoice_for_contract(
        db_session, contract.id, date(2025, 2, 1), date(2025, 2, 28), issue_date=date(2025, 3, 1)
    )

    february = BillingAutomationService.get_invoices_by_period(
        db_session, date(2025, 2, 1), date(2025, 2, 28)
    )
    assert [invoice.period_start for invoice in february] == [date(2025, 1, 1)]

    # Reported as overdue even before the scan has updated the status.
    overdue = BillingAutomationService.get_overdue_invoices(
        db_session, reference_date=date(2025, 3, 10)
    )
    assert [invoice.period_start for invoice in overdue] == [date(2025, 1, 1)]
    assert overdue[0].status == models.InvoiceStatus.ISSUED

    with pytest.raises(InvalidInputError):
        BillingAutomationService.get_invoices_by_period(
            db_session, date(2025, 2, 28), date(2025, 2, 1)
        )


def test_history_pagination_defaults(db_session, contract):
    for month in (1, 2, 3):
        start = date(2025, month, 1)
        end = (start + timedelta(days=32)).replace(day=1) - timedelta(days=1)
        InvoiceLifecycleService.generate_invoice_for_contract(
            db_session, contract.id, start, end, issue_date=end
        )

    items, total = BillingAutomationService.get_billing_history(
        db_session, contract.company_id, limit=0, offset=-3
    )
    assert total == 3
    assert len(items) == 3

    page, total = BillingAutomationService.get_billing_history(
        db_session, contract.company_id, limit=2, offset=2
    )
    assert total == 3
    assert len(page) == 1
