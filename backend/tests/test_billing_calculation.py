from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

from backend.app import models
from backend.app.services import (
    BillingCalculationService,
    BillingSettingsService,
    InvalidInputError,
    NotFoundError,
)
from backend.app.services.billing_calculation import apply_tax

JAN_START = date(2025, 1, 1)
JAN_END = date(2025, 1, 31)


def test_monthly_tariff_with_exclusive_tax(db_session, contract):
    calculation = BillingCalculationService.calculate_billing_for_contract(
        db_session, contract.id, JAN_START, JAN_END
    )

    assert [item.item_type for item in calculation.items] == [
        models.InvoiceItemType.SUBSCRIPTION
    ]
    assert calculation.subtotal == Decimal("1000.00")
    assert calculation.tax_amount == Decimal("200.00")
    assert calculation.total == Decimal("1200.00")
    assert calculation.currency == "RUB"


def test_inclusive_tax_is_backed_out_of_the_gross(db_session, contract, company):
    BillingSettingsService.update_settings(db_session, company.id, {"tax_included": True})

    calculation = BillingCalculationService.calculate_billing_for_contract(
        db_session, contract.id, JAN_START, JAN_END
    )

    assert calculation.total == Decimal("1000.00")
    assert calculation.tax_amount == Decimal("166.67")
    assert calculation.subtotal == Decimal("833.33")
    assert calculation.subtotal + calculation.tax_amount == calculation.total


def test_object_lines_are_prorated(db_session, contract, tariff_plan, add_object):
    tariff_plan.base_price = Decimal("0")
    tariff_plan.price_per_object = Decimal("3000")
    db_session.commit()

    add_object(contract, "Truck 1", (datetime(2024, 4, 1), datetime(2024, 4, 16)))
    add_object(contract, "Truck 2", (datetime(2024, 1, 1), None))

    calculation = BillingCalculationService.calculate_billing_for_contract(
        db_session, contract.id, date(2024, 4, 1), date(2024, 4, 30)
    )

    amounts = {item.name: item.amount for item in calculation.items}
    assert amounts == {"Object: Truck 1": Decimal("1500.00"), "Object: Truck 2": Decimal("3000.00")}
    assert calculation.subtotal == Decimal("4500.00")
    assert calculation.total == Decimal("5400.00")


def test_free_objects_go_to_the_most_active(db_session, contract, tariff_plan, add_object):
    tariff_plan.base_price = Decimal("0")
    tariff_plan.price_per_object = Decimal("300")
    tariff_plan.free_objects_count = 1
    db_session.commit()

    add_object(contract, "Idle", (datetime(2024, 4, 20), None))
    add_object(contract, "Busy", (datetime(2024, 1, 1), None))

    calculation = BillingCalculationService.calculate_billing_for_contract(
        db_session, contract.id, date(2024, 4, 1), date(2024, 4, 30)
    )

    assert [item.name for item in calculation.items] == ["Object: Idle"]
    assert calculation.items[0].amount == Decimal("110.00")


def test_inactive_objects_use_the_discount_ratio(
    db_session, contract, tariff_plan, company, add_object
):
    tariff_plan.base_price = Decimal("0")
    tariff_plan.price_per_object = Decimal("500")
    db_session.commit()
    BillingSettingsService.update_settings(
        db_session, company.id, {"inactive_discount_ratio": "0.2", "default_tax_rate": "0"}
    )

    add_object(contract, "Parked")

    calculation = BillingCalculationService.calculate_billing_for_contract(
        db_session, contract.id, JAN_START, JAN_END
    )

    assert calculation.items[0].amount == Decimal("100.00")
    assert calculation.total == Decimal("100.00")


def test_setup_fee_and_discount_lines(db_session, contract, tariff_plan, company):
    tariff_plan.setup_fee = Decimal("500")
    tariff_plan.discount_percent = Decimal("10")
    contract.start_date = date(2025, 1, 16)
    db_session.commit()
    BillingSettingsService.update_settings(db_session, company.id, {"default_tax_rate": "0"})

    calculation = BillingCalculationService.calculate_billing_for_contract(
        db_session, contract.id, JAN_START, JAN_END
    )

    by_type = {item.item_type: item.amount for item in calculation.items}
    # 16 of 31 days of the base price.
    assert by_type[models.InvoiceItemType.SETUP] == Decimal("500.00")
    assert by_type[models.InvoiceItemType.SUBSCRIPTION] == Decimal("516.13")
    assert by_type[models.InvoiceItemType.DISCOUNT] == Decimal("-101.61")
    assert calculation.total == Decimal("914.52")


def test_contract_outside_period_has_no_base_charge(db_session, contract):
    contract.start_date = date(2025, 2, 1)
    db_session.commit()

    calculation = BillingCalculationService.calculate_billing_for_contract(
        db_session, contract.id, JAN_START, JAN_END
    )

    assert calculation.items == []
    assert calculation.total == Decimal("0")


def test_unknown_contract_is_not_found(db_session, company):
    with pytest.raises(NotFoundError):
        BillingCalculationService.calculate_billing_for_contract(
            db_session, 9999, JAN_START, JAN_END
        )


def test_reversed_period_is_rejected(db_session, contract):
    with pytest.raises(InvalidInputError):
        BillingCalculationService.calculate_billing_for_contract(
            db_session, contract.id, JAN_END, JAN_START
        )


def test_apply_tax_keeps_total_equal_to_subtotal_plus_tax():
    for gross in (Decimal("0.01"), Decimal("99.99"), Decimal("1234.56")):
        for included in (True, False):
            subtotal, tax, total = apply_tax(gross, Decimal("20"), tax_included=included)
            assert subtotal + tax == total
