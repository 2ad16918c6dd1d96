"""Assemble priced billing calculations for a contract and period."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .. import models
from .billing_periods import BillingPeriodService
from .billing_settings import BillingSettingsService
from .errors import DependencyFailureError, NotFoundError
from .proration import ActivityInterval, ProratedCharge, ProrationCalculator, round_money

LOGGER = logging.getLogger(__name__)


@dataclass
class BillingLineItem:
    """One priced line of a calculation."""

    name: str
    item_type: models.InvoiceItemType
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal
    description: Optional[str] = None
    object_id: Optional[int] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "description": self.description,
            "item_type": self.item_type.value,
            "object_id": self.object_id,
            "quantity": str(self.quantity),
            "unit_price": str(self.unit_price),
            "amount": str(self.amount),
            "period_start": self.period_start.isoformat() if self.period_start else None,
            "period_end": self.period_end.isoformat() if self.period_end else None,
        }


@dataclass
class BillingCalculation:
    """Transient result of pricing a contract for one period."""

    contract_id: int
    company_id: int
    tariff_plan_id: int
    period_start: date
    period_end: date
    currency: str
    tax_rate: Decimal
    tax_included: bool
    items: list[BillingLineItem] = field(default_factory=list)
    subtotal: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    total: Decimal = Decimal("0")

    def to_dict(self) -> dict[str, object]:
        return {
            "contract_id": self.contract_id,
            "company_id": self.company_id,
            "tariff_plan_id": self.tariff_plan_id,
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "currency": self.currency,
            "tax_rate": str(self.tax_rate),
            "tax_included": self.tax_included,
            "items": [item.to_dict() for item in self.items],
            "subtotal": str(self.subtotal),
            "tax_amount": str(self.tax_amount),
            "total": str(self.total),
        }


def apply_tax(
    gross: Decimal, tax_rate_percent: Decimal, *, tax_included: bool, currency: Optional[str] = None
) -> tuple[Decimal, Decimal, Decimal]:
    """Return ``(subtotal, tax, total)`` for a gross line total.

    With ``tax_included`` the tax is backed out of ``gross`` and the subtotal is
    the net amount, so ``total == subtotal + tax`` holds either way.
    """

    rate = Decimal(tax_rate_percent) / Decimal("100")
    if tax_included:
        tax = round_money(gross - gross / (Decimal("1") + rate), currency)
        return gross - tax, tax, gross
    tax = round_money(gross * rate, currency)
    return gross, tax, gross + tax


class BillingCalculationService:
    """Read-only pricing of contracts."""

    @staticmethod
    def _load_contract(db: Session, contract_id: int) -> models.Contract:
        try:
            contract = (
                db.query(models.Contract)
                .options(
                    selectinload(models.Contract.tariff_plan),
                    selectinload(models.Contract.objects).selectinload(
                        models.MonitoredObject.activity_intervals
                    ),
                )
                .filter(models.Contract.id == contract_id)
                .first()
            )
        except SQLAlchemyError as exc:
            raise DependencyFailureError("Unable to load contract.") from exc

        if contract is None:
            raise NotFoundError(f"Contract {contract_id} not found")
        if contract.tariff_plan is None:
            raise NotFoundError(f"Contract {contract_id} has no tariff plan")
        return contract

    @classmethod
    def calculate_billing_for_contract(
        cls,
        db: Session,
        contract_id: int,
        period_start: date,
        period_end: date,
    ) -> BillingCalculation:
        BillingPeriodService.validate_period(period_start, period_end)
        contract = cls._load_contract(db, contract_id)
        settings = BillingSettingsService.get_or_create_settings(db, contract.company_id)
        calculation = cls.build_calculation(
            contract, contract.tariff_plan, settings, period_start, period_end
        )
        LOGGER.debug(
            "Calculated billing",
            extra={
                "contract_id": contract_id,
                "period_start": period_start.isoformat(),
                "period_end": period_end.isoformat(),
                "total": str(calculation.total),
            },
        )
        return calculation

    @staticmethod
    def billable_objects(
        contract: models.Contract, period_start: date, period_end: date
    ) -> list[models.MonitoredObject]:
        """Objects attached to the contract at some point during the period."""

        billable = []
        for obj in contract.objects:
            if obj.attached_on > period_end:
                continue
            if obj.deleted_at is not None and obj.deleted_at.date() < period_start:
                continue
            billable.append(obj)
        return billable

    @classmethod
    def build_calculation(
        cls,
        contract: models.Contract,
        tariff: models.TariffPlan,
        settings: models.BillingSettings,
        period_start: date,
        period_end: date,
    ) -> BillingCalculation:
        BillingPeriodService.validate_period(period_start, period_end)
        currency = settings.currency
        items: list[BillingLineItem] = []

        setup_fee = Decimal(tariff.setup_fee or 0)
        if setup_fee > 0 and period_start <= contract.start_date <= period_end:
            amount = round_money(setup_fee, currency)
            items.append(
                BillingLineItem(
                    name="Setup fee",
                    description=f"One-time setup for contract {contract.number}",
                    item_type=models.InvoiceItemType.SETUP,
                    quantity=Decimal("1"),
                    unit_price=amount,
                    amount=amount,
                    period_start=period_start,
                    period_end=period_end,
                )
            )

        base_price = Decimal(tariff.base_price or 0)
        if base_price > 0:
            contract_term = [ActivityInterval(contract.start_date, contract.end_date)]
            days_in_force = ProrationCalculator.count_active_days(
                period_start, period_end, contract_term
            )
            if days_in_force > 0:
                charge = ProrationCalculator.prorate(
                    base_price,
                    period_start,
                    period_end,
                    contract_term,
                    enable_inactive_discounts=False,
                    currency=currency,
                )
                items.append(
                    BillingLineItem(
                        name=tariff.name,
                        description=cls._describe_charge(charge),
                        item_type=models.InvoiceItemType.SUBSCRIPTION,
                        quantity=charge.fraction,
                        unit_price=round_money(base_price, currency),
                        amount=charge.amount,
                        period_start=period_start,
                        period_end=period_end,
                    )
                )

        items.extend(
            cls._object_items(contract, tariff, settings, period_start, period_end)
        )

        discount_percent = Decimal(tariff.discount_percent or 0)
        if discount_percent > 0 and items:
            gross = sum((item.amount for item in items), Decimal("0"))
            discount = round_money(gross * discount_percent / Decimal("100"), currency)
            if discount > 0:
                items.append(
                    BillingLineItem(
                        name="Discount",
                        description=f"Tariff discount {discount_percent.normalize()}%",
                        item_type=models.InvoiceItemType.DISCOUNT,
                        quantity=Decimal("1"),
                        unit_price=-discount,
                        amount=-discount,
                        period_start=period_start,
                        period_end=period_end,
                    )
                )

        gross = sum((item.amount for item in items), Decimal("0"))
        tax_rate = Decimal(settings.default_tax_rate)
        subtotal, tax_amount, total = apply_tax(
            gross, tax_rate, tax_included=bool(settings.tax_included), currency=currency
        )

        return BillingCalculation(
            contract_id=contract.id,
            company_id=contract.company_id,
            tariff_plan_id=tariff.id,
            period_start=period_start,
            period_end=period_end,
            currency=currency,
            tax_rate=tax_rate,
            tax_included=bool(settings.tax_included),
            items=items,
            subtotal=subtotal,
            tax_amount=tax_amount,
            total=total,
        )

    @classmethod
    def _object_items(
        cls,
        contract: models.Contract,
        tariff: models.TariffPlan,
        settings: models.BillingSettings,
        period_start: date,
        period_end: date,
    ) -> list[BillingLineItem]:
        rate = Decimal(tariff.price_per_object or 0)
        if rate <= 0:
            return []

        charges: list[tuple[models.MonitoredObject, ProratedCharge]] = []
        for obj in cls.billable_objects(contract, period_start, period_end):
            intervals = [
                ActivityInterval(interval.active_from, interval.active_until)
                for interval in obj.activity_intervals
            ]
            charge = ProrationCalculator.prorate(
                rate,
                period_start,
                period_end,
                intervals,
                enable_inactive_discounts=bool(settings.enable_inactive_discounts),
                inactive_discount_ratio=Decimal(settings.inactive_discount_ratio),
                currency=settings.currency,
            )
            charges.append((obj, charge))

        # Free allowance goes to the most active objects first.
        ranked = sorted(charges, key=lambda pair: (-pair[1].days_active, pair[0].id))
        free_ids = {obj.id for obj, _ in ranked[: max(tariff.free_objects_count or 0, 0)]}

        items = []
        for obj, charge in charges:
            if obj.id in free_ids:
                continue
            items.append(
                BillingLineItem(
                    name=f"Object: {obj.name}",
                    description=cls._describe_charge(charge),
                    item_type=models.InvoiceItemType.OBJECT,
                    object_id=obj.id,
                    quantity=charge.fraction,
                    unit_price=round_money(rate, settings.currency),
                    amount=charge.amount,
                    period_start=period_start,
                    period_end=period_end,
                )
            )
        return items

    @staticmethod
    def _describe_charge(charge: ProratedCharge) -> str:
        if charge.inactive_discount_applied:
            return "Inactive for the whole period, discounted rate"
        if charge.is_full_period:
            return f"Full period ({charge.days_in_period} days)"
        if charge.days_active == 0:
            return "Inactive for the whole period"
        return f"{charge.days_active} of {charge.days_in_period} days"
