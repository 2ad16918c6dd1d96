"""Invoice generation, payment application and status transitions."""

from __future__ import annotations

import enum
import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .. import models
from .billing_calculation import BillingCalculationService
from .billing_history import BillingHistoryService
from .billing_periods import BillingPeriodService
from .billing_settings import BillingSettingsService, format_invoice_number
from .errors import (
    AlreadyExistsError,
    BillingError,
    DependencyFailureError,
    InvalidInputError,
    InvalidStateTransitionError,
    NotFoundError,
)
from .proration import round_money

LOGGER = logging.getLogger(__name__)


class InvoiceEvent(str, enum.Enum):
    """Events that move an invoice between statuses."""

    ISSUE = "issue"
    PARTIAL_PAYMENT = "partial_payment"
    FULL_PAYMENT = "full_payment"
    MARK_OVERDUE = "mark_overdue"
    CANCEL = "cancel"


_S = models.InvoiceStatus
_E = InvoiceEvent

INVOICE_TRANSITIONS: dict[models.InvoiceStatus, dict[InvoiceEvent, models.InvoiceStatus]] = {
    _S.DRAFT: {_E.ISSUE: _S.ISSUED, _E.CANCEL: _S.CANCELLED},
    _S.ISSUED: {
        _E.PARTIAL_PAYMENT: _S.PARTIALLY_PAID,
        _E.FULL_PAYMENT: _S.PAID,
        _E.MARK_OVERDUE: _S.OVERDUE,
        _E.CANCEL: _S.CANCELLED,
    },
    _S.PARTIALLY_PAID: {
        _E.PARTIAL_PAYMENT: _S.PARTIALLY_PAID,
        _E.FULL_PAYMENT: _S.PAID,
        _E.MARK_OVERDUE: _S.OVERDUE,
        _E.CANCEL: _S.CANCELLED,
    },
    _S.OVERDUE: {
        _E.PARTIAL_PAYMENT: _S.OVERDUE,
        _E.FULL_PAYMENT: _S.PAID,
        _E.CANCEL: _S.CANCELLED,
    },
    _S.PAID: {},
    _S.CANCELLED: {},
}


def transition(current: models.InvoiceStatus, event: InvoiceEvent) -> models.InvoiceStatus:
    """Return the status reached from ``current`` through ``event``."""

    current = models.InvoiceStatus(current)
    target = INVOICE_TRANSITIONS[current].get(InvoiceEvent(event))
    if target is None:
        raise InvalidStateTransitionError(
            f"Cannot apply '{InvoiceEvent(event).value}' to an invoice in status '{current.value}'"
        )
    return target


def derive_status(
    *,
    paid_amount: Decimal,
    total: Decimal,
    due_date: date,
    today: date,
    cancelled: bool = False,
) -> models.InvoiceStatus:
    """Status an issued invoice must have for the given balance and date."""

    if cancelled:
        return models.InvoiceStatus.CANCELLED
    if Decimal(paid_amount) >= Decimal(total):
        return models.InvoiceStatus.PAID
    if due_date < today:
        return models.InvoiceStatus.OVERDUE
    if Decimal(paid_amount) > 0:
        return models.InvoiceStatus.PARTIALLY_PAID
    return models.InvoiceStatus.ISSUED


class InvoiceLifecycleService:
    """Operations that create invoices and advance them through their lifecycle."""

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    @staticmethod
    def _normalize_amount(value: Decimal | int | str, currency: Optional[str] = None) -> Decimal:
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError) as exc:
            raise InvalidInputError("amount must be a decimal number") from exc
        if not amount.is_finite() or amount <= 0:
            raise InvalidInputError("Payment amount must be greater than zero")
        normalized = round_money(amount, currency)
        if normalized != amount:
            raise InvalidInputError(
                f"Payment amount {amount} has more precision than the currency allows"
            )
        return normalized

    @staticmethod
    def _resolve_method(
        method: Optional[models.PaymentMethod | str], settings: models.BillingSettings
    ) -> models.PaymentMethod:
        if method is None or method == "":
            return models.PaymentMethod(settings.default_payment_method)
        try:
            return models.PaymentMethod(method)
        except ValueError as exc:
            raise InvalidInputError(f"Unsupported payment method: {method}") from exc

    @staticmethod
    def _lock_invoice(db: Session, invoice_id: int) -> models.Invoice:
        invoice = (
            db.query(models.Invoice)
            .filter(models.Invoice.id == invoice_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return invoice

    @staticmethod
    def _company_for_invoice(db: Session, invoice_id: int) -> int:
        company_id = (
            db.query(models.Invoice.company_id).filter(models.Invoice.id == invoice_id).scalar()
        )
        if company_id is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return company_id

    @staticmethod
    def _pending_total(db: Session, invoice_id: int, *, exclude_payment_id: Optional[int] = None) -> Decimal:
        query = db.query(func.coalesce(func.sum(models.InvoicePayment.amount), 0)).filter(
            models.InvoicePayment.invoice_id == invoice_id,
            models.InvoicePayment.status == models.PaymentStatus.PENDING,
        )
        if exclude_payment_id is not None:
            query = query.filter(models.InvoicePayment.id != exclude_payment_id)
        return Decimal(str(query.scalar() or 0))

    @staticmethod
    def invoice_exists_for_period(
        db: Session,
        contract_id: int,
        period_start: date,
        period_end: date,
        *,
        include_cancelled: bool = False,
    ) -> bool:
        query = db.query(models.Invoice.id).filter(
            models.Invoice.contract_id == contract_id,
            models.Invoice.period_start == period_start,
            models.Invoice.period_end == period_end,
        )
        if not include_cancelled:
            query = query.filter(models.Invoice.status != models.InvoiceStatus.CANCELLED)
        return query.first() is not None

    @classmethod
    def generate_invoice_for_contract(
        cls,
        db: Session,
        contract_id: int,
        period_start: date,
        period_end: date,
        *,
        issue_date: Optional[date] = None,
    ) -> models.Invoice:
        """Price the contract for the period and persist an issued invoice.

        Raises ``AlreadyExistsError`` when a non-cancelled invoice already
        covers exactly the same contract and period.
        """

        BillingPeriodService.validate_period(period_start, period_end)
        issue_date = issue_date or date.today()

        try:
            if cls.invoice_exists_for_period(db, contract_id, period_start, period_end):
                raise AlreadyExistsError(
                    f"Contract {contract_id} is already invoiced for "
                    f"{period_start.isoformat()}..{period_end.isoformat()}"
                )
        except SQLAlchemyError as exc:
            raise DependencyFailureError("Unable to check existing invoices.") from exc

        calculation = BillingCalculationService.calculate_billing_for_contract(
            db, contract_id, period_start, period_end
        )

        try:
            settings = BillingSettingsService.get_settings_for_update(db, calculation.company_id)
            sequence = (settings.last_invoice_sequence or 0) + 1
            number = format_invoice_number(
                settings.invoice_number_format, settings.invoice_number_prefix, sequence
            )
            settings.last_invoice_sequence = sequence

            status = transition(models.InvoiceStatus.DRAFT, InvoiceEvent.ISSUE)
            paid_amount = Decimal("0")
            paid_at = None
            if calculation.total == 0:
                status = transition(status, InvoiceEvent.FULL_PAYMENT)
                paid_at = cls._now()

            invoice = models.Invoice(
                company_id=calculation.company_id,
                contract_id=contract_id,
                tariff_plan_id=calculation.tariff_plan_id,
                number=number,
                title=(
                    f"Services for {period_start.isoformat()} to {period_end.isoformat()}"
                ),
                invoice_date=issue_date,
                due_date=issue_date + timedelta(days=settings.invoice_payment_term_days),
                period_start=period_start,
                period_end=period_end,
                subtotal=calculation.subtotal,
                tax_rate=calculation.tax_rate,
                tax_amount=calculation.tax_amount,
                total_amount=calculation.total,
                currency=calculation.currency,
                status=status,
                paid_amount=paid_amount,
                paid_at=paid_at,
            )
            for position, line in enumerate(calculation.items, start=1):
                invoice.items.append(
                    models.InvoiceItem(
                        position=position,
                        name=line.name,
                        description=line.description,
                        item_type=line.item_type,
                        object_id=line.object_id,
                        quantity=line.quantity,
                        unit_price=line.unit_price,
                        amount=line.amount,
                        period_start=line.period_start,
                        period_end=line.period_end,
                    )
                )
            db.add(settings)
            db.add(invoice)
            db.flush()

            BillingHistoryService.record(
                db,
                operation=models.BillingOperation.INVOICE_CREATED,
                company_id=invoice.company_id,
                contract_id=contract_id,
                invoice_id=invoice.id,
                amount=invoice.total_amount,
                description=f"Invoice {number} issued",
            )
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            if cls.invoice_exists_for_period(db, contract_id, period_start, period_end):
                raise AlreadyExistsError(
                    f"Contract {contract_id} is already invoiced for "
                    f"{period_start.isoformat()}..{period_end.isoformat()}"
                ) from exc
            raise DependencyFailureError("Unable to store invoice.") from exc
        except BillingError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            raise DependencyFailureError("Unable to store invoice.") from exc

        db.refresh(invoice)
        LOGGER.info(
            "Issued invoice %s",
            invoice.number,
            extra={
                "invoice_id": invoice.id,
                "contract_id": contract_id,
                "total": str(invoice.total_amount),
            },
        )
        return invoice

    @classmethod
    def _ensure_payable(
        cls,
        invoice: models.Invoice,
        amount: Decimal,
        *,
        allow_partial: bool,
        reserved: Decimal = Decimal("0"),
    ) -> InvoiceEvent:
        if invoice.status in (models.InvoiceStatus.PAID, models.InvoiceStatus.CANCELLED):
            raise InvalidStateTransitionError(
                f"Invoice {invoice.number} is {models.InvoiceStatus(invoice.status).value} "
                "and does not accept payments"
            )

        remaining = Decimal(invoice.total_amount) - Decimal(invoice.paid_amount) - reserved
        if amount > remaining:
            raise InvalidStateTransitionError(
                f"Payment of {amount} exceeds the outstanding balance of {remaining}"
            )
        if not allow_partial and amount != remaining:
            raise InvalidStateTransitionError(
                f"Partial payments are disabled; the payment must equal {remaining}"
            )

        event = InvoiceEvent.FULL_PAYMENT if amount == remaining else InvoiceEvent.PARTIAL_PAYMENT
        transition(invoice.status, event)
        return event

    @classmethod
    def _apply_payment(
        cls,
        db: Session,
        invoice: models.Invoice,
        payment: models.InvoicePayment,
        today: date,
    ) -> None:
        new_paid = Decimal(invoice.paid_amount) + Decimal(payment.amount)
        total = Decimal(invoice.total_amount)
        event = InvoiceEvent.FULL_PAYMENT if new_paid == total else InvoiceEvent.PARTIAL_PAYMENT
        status = transition(invoice.status, event)
        if status == models.InvoiceStatus.PARTIALLY_PAID and invoice.due_date < today:
            status = transition(status, InvoiceEvent.MARK_OVERDUE)

        now = cls._now()
        invoice.paid_amount = new_paid
        invoice.status = status
        if status == models.InvoiceStatus.PAID:
            invoice.paid_at = now
        payment.status = models.PaymentStatus.CONFIRMED
        payment.confirmed_at = now

        db.add(invoice)
        db.add(payment)
        BillingHistoryService.record(
            db,
            operation=models.BillingOperation.PAYMENT_RECEIVED,
            company_id=invoice.company_id,
            contract_id=invoice.contract_id,
            invoice_id=invoice.id,
            amount=Decimal(payment.amount),
            description=f"Payment for invoice {invoice.number} ({payment.method.value})",
        )

    @classmethod
    def process_payment(
        cls,
        db: Session,
        invoice_id: int,
        amount: Decimal | int | str,
        method: Optional[models.PaymentMethod | str] = None,
        notes: Optional[str] = None,
        *,
        reference_date: Optional[date] = None,
    ) -> models.InvoicePayment:
        """Append a payment to the invoice and advance its status.

        When the company requires payment confirmation the payment is stored
        as pending and only counts once :meth:`confirm_payment` runs.
        """

        today = reference_date or date.today()
        try:
            company_id = cls._company_for_invoice(db, invoice_id)
            settings = BillingSettingsService.get_or_create_settings(db, company_id)
            normalized = cls._normalize_amount(amount, settings.currency)
            payment_method = cls._resolve_method(method, settings)

            invoice = cls._lock_invoice(db, invoice_id)
            reserved = cls._pending_total(db, invoice.id)
            cls._ensure_payable(
                invoice,
                normalized,
                allow_partial=bool(settings.allow_partial_payments),
                reserved=reserved,
            )

            payment = models.InvoicePayment(
                invoice_id=invoice.id,
                amount=normalized,
                method=payment_method,
                notes=notes,
                status=models.PaymentStatus.PENDING,
                paid_at=cls._now(),
            )
            db.add(payment)
            if not settings.require_payment_confirmation:
                cls._apply_payment(db, invoice, payment, today)
            db.commit()
        except BillingError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            raise DependencyFailureError("Unable to record payment at this time.") from exc

        db.refresh(payment)
        LOGGER.info(
            "Recorded payment on invoice %s",
            invoice.number,
            extra={
                "invoice_id": invoice.id,
                "amount": str(normalized),
                "status": payment.status.value,
            },
        )
        return payment

    @classmethod
    def confirm_payment(
        cls,
        db: Session,
        payment_id: int,
        *,
        reference_date: Optional[date] = None,
    ) -> models.InvoicePayment:
        today = reference_date or date.today()
        try:
            payment = db.get(models.InvoicePayment, payment_id)
            if payment is None:
                raise NotFoundError(f"Payment {payment_id} not found")
            if payment.status != models.PaymentStatus.PENDING:
                raise InvalidStateTransitionError(f"Payment {payment_id} is already confirmed")

            settings = BillingSettingsService.get_or_create_settings(
                db, cls._company_for_invoice(db, payment.invoice_id)
            )
            invoice = cls._lock_invoice(db, payment.invoice_id)
            cls._ensure_payable(
                invoice,
                Decimal(payment.amount),
                allow_partial=bool(settings.allow_partial_payments),
                reserved=cls._pending_total(db, invoice.id, exclude_payment_id=payment.id),
            )
            cls._apply_payment(db, invoice, payment, today)
            db.commit()
        except BillingError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            raise DependencyFailureError("Unable to confirm payment at this time.") from exc

        db.refresh(payment)
        return payment

    @classmethod
    def cancel_invoice(cls, db: Session, invoice_id: int, reason: str) -> models.Invoice:
        """Cancel an invoice that has not received any funds."""

        if not reason or not reason.strip():
            raise InvalidInputError("A cancellation reason is required")

        try:
            invoice = cls._lock_invoice(db, invoice_id)
            if Decimal(invoice.paid_amount) > 0:
                raise InvalidStateTransitionError(
                    f"Invoice {invoice.number} has received payments; refund it instead"
                )
            if cls._pending_total(db, invoice.id) > 0:
                raise InvalidStateTransitionError(
                    f"Invoice {invoice.number} has pending payments awaiting confirmation"
                )
            invoice.status = transition(invoice.status, InvoiceEvent.CANCEL)
            invoice.cancelled_at = cls._now()
            invoice.cancellation_reason = reason.strip()
            db.add(invoice)
            BillingHistoryService.record(
                db,
                operation=models.BillingOperation.INVOICE_CANCELLED,
                company_id=invoice.company_id,
                contract_id=invoice.contract_id,
                invoice_id=invoice.id,
                amount=Decimal(invoice.total_amount),
                description=f"Invoice {invoice.number} cancelled: {reason.strip()}",
            )
            db.commit()
        except BillingError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            raise DependencyFailureError("Unable to cancel invoice at this time.") from exc

        db.refresh(invoice)
        LOGGER.info("Cancelled invoice %s", invoice.number, extra={"invoice_id": invoice.id})
        return invoice

    @classmethod
    def mark_overdue_invoices(
        cls,
        db: Session,
        *,
        reference_date: Optional[date] = None,
        company_id: Optional[int] = None,
    ) -> int:
        """Move open invoices past their due date to ``overdue``."""

        today = reference_date or date.today()
        try:
            query = db.query(models.Invoice).filter(
                models.Invoice.status.in_(models.OPEN_INVOICE_STATUSES),
                models.Invoice.due_date < today,
            )
            if company_id is not None:
                query = query.filter(models.Invoice.company_id == company_id)
            invoices = query.order_by(models.Invoice.id).with_for_update().all()

            for invoice in invoices:
                invoice.status = transition(invoice.status, InvoiceEvent.MARK_OVERDUE)
                db.add(invoice)
                BillingHistoryService.record(
                    db,
                    operation=models.BillingOperation.INVOICE_OVERDUE,
                    company_id=invoice.company_id,
                    contract_id=invoice.contract_id,
                    invoice_id=invoice.id,
                    amount=invoice.outstanding_amount,
                    description=f"Invoice {invoice.number} is overdue since {invoice.due_date.isoformat()}",
                )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise DependencyFailureError("Unable to update overdue invoices.") from exc

        if invoices:
            LOGGER.info("Marked %s invoices as overdue", len(invoices))
        return len(invoices)

    @staticmethod
    def get_invoice(db: Session, invoice_id: int) -> models.Invoice:
        invoice = (
            db.query(models.Invoice)
            .options(selectinload(models.Invoice.items), selectinload(models.Invoice.payments))
            .filter(models.Invoice.id == invoice_id)
            .first()
        )
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return invoice

    @staticmethod
    def list_invoices(
        db: Session,
        *,
        company_id: Optional[int] = None,
        contract_id: Optional[int] = None,
        status: Optional[models.InvoiceStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[Iterable[models.Invoice], int]:
        query = db.query(models.Invoice).options(selectinload(models.Invoice.items))
        if company_id is not None:
            query = query.filter(models.Invoice.company_id == company_id)
        if contract_id is not None:
            query = query.filter(models.Invoice.contract_id == contract_id)
        if status is not None:
            query = query.filter(models.Invoice.status == status)

        total = query.count()
        items = (
            query.order_by(models.Invoice.invoice_date.desc(), models.Invoice.id.desc())
            .offset(max(skip, 0))
            .limit(max(limit, 1))
            .all()
        )
        return items, total

    @classmethod
    def list_payments(cls, db: Session, invoice_id: int) -> list[models.InvoicePayment]:
        cls.get_invoice(db, invoice_id)
        return (
            db.query(models.InvoicePayment)
            .filter(models.InvoicePayment.invoice_id == invoice_id)
            .order_by(models.InvoicePayment.id)
            .all()
        )
