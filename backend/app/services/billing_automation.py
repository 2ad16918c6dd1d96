"""Batch billing operations: monthly generation, deletion sweeps and reporting."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from time import perf_counter
from typing import Iterable, Optional, Sequence, Tuple

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models
from .billing_history import DEFAULT_HISTORY_LIMIT, BillingHistoryService
from .billing_periods import BillingPeriodService
from .billing_settings import BillingSettingsService
from .errors import AlreadyExistsError, BillingError, DependencyFailureError, InvalidInputError
from .invoice_lifecycle import InvoiceLifecycleService
from .proration import round_money

LOGGER = logging.getLogger(__name__)


@dataclass
class BatchFailure:
    """A single item that could not be processed."""

    error: str
    company_id: Optional[int] = None
    contract_id: Optional[int] = None
    object_id: Optional[int] = None

    def to_dict(self) -> dict[str, object]:
        return {
            "company_id": self.company_id,
            "contract_id": self.contract_id,
            "object_id": self.object_id,
            "error": self.error,
        }


@dataclass
class InvoiceGenerationSummary:
    """Outcome of a monthly invoice generation run."""

    year: int
    month: int
    period_start: date
    period_end: date
    companies_processed: int = 0
    contracts_total: int = 0
    generated: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    failures: list[BatchFailure] = field(default_factory=list)
    execution_time_ms: float = 0.0

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)

    def to_dict(self) -> dict[str, object]:
        return {
            "year": self.year,
            "month": self.month,
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "companies_processed": self.companies_processed,
            "contracts_total": self.contracts_total,
            "generated": list(self.generated),
            "skipped": list(self.skipped),
            "failures": [failure.to_dict() for failure in self.failures],
            "execution_time_ms": round(self.execution_time_ms, 2),
        }


@dataclass
class DeletionSummary:
    """Outcome of a scheduled deletion sweep."""

    deleted_contracts: list[int] = field(default_factory=list)
    deleted_objects: list[int] = field(default_factory=list)
    deferred_contracts: list[int] = field(default_factory=list)
    deferred_objects: list[int] = field(default_factory=list)
    failures: list[BatchFailure] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)

    def to_dict(self) -> dict[str, object]:
        return {
            "deleted_contracts": list(self.deleted_contracts),
            "deleted_objects": list(self.deleted_objects),
            "deferred_contracts": list(self.deferred_contracts),
            "deferred_objects": list(self.deferred_objects),
            "failures": [failure.to_dict() for failure in self.failures],
        }


@dataclass
class BillingStatistics:
    """Invoice counts and amounts for a company over a year or month."""

    company_id: int
    year: int
    month: Optional[int]
    period_start: date
    period_end: date
    invoice_count: int = 0
    counts_by_status: dict[str, int] = field(default_factory=dict)
    total_invoiced: Decimal = Decimal("0.00")
    total_paid: Decimal = Decimal("0.00")
    total_outstanding: Decimal = Decimal("0.00")
    total_overdue: Decimal = Decimal("0.00")

    def to_dict(self) -> dict[str, object]:
        return {
            "company_id": self.company_id,
            "year": self.year,
            "month": self.month,
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "invoice_count": self.invoice_count,
            "counts_by_status": dict(self.counts_by_status),
            "total_invoiced": str(self.total_invoiced),
            "total_paid": str(self.total_paid),
            "total_outstanding": str(self.total_outstanding),
            "total_overdue": str(self.total_overdue),
        }


class BillingAutomationService:
    """Orchestrates billing work that spans many contracts."""

    @staticmethod
    def eligible_contracts(
        db: Session, company_id: int, period_start: date, period_end: date
    ) -> list[models.Contract]:
        """Contracts in force at some point of the period.

        Active contracts qualify, and so do contracts deleted by the scheduled
        sweep, whose ``end_date`` marks the last billable day.
        """

        return (
            db.query(models.Contract)
            .filter(
                models.Contract.company_id == company_id,
                or_(
                    and_(
                        models.Contract.status == models.ContractStatus.ACTIVE,
                        models.Contract.deleted_at.is_(None),
                    ),
                    and_(
                        models.Contract.deleted_at.isnot(None),
                        models.Contract.end_date.isnot(None),
                    ),
                ),
                models.Contract.start_date <= period_end,
                (models.Contract.end_date.is_(None))
                | (models.Contract.end_date >= period_start),
            )
            .order_by(models.Contract.id)
            .all()
        )

    @staticmethod
    def _active_companies(
        db: Session, company_ids: Optional[Sequence[int]] = None
    ) -> list[models.Company]:
        query = db.query(models.Company).filter(models.Company.is_active.is_(True))
        if company_ids is not None:
            query = query.filter(models.Company.id.in_(list(company_ids)))
        return query.order_by(models.Company.id).all()

    @classmethod
    def companies_due_for_generation(cls, db: Session, reference_date: date) -> list[int]:
        """Companies whose configured generation day is ``reference_date``."""

        try:
            companies = cls._active_companies(db)
        except SQLAlchemyError as exc:
            raise DependencyFailureError("Unable to list companies.") from exc

        due = []
        for company in companies:
            settings = BillingSettingsService.get_or_create_settings(db, company.id)
            if not settings.auto_generate_invoices:
                continue
            if settings.invoice_generation_day == reference_date.day:
                due.append(company.id)
        return due

    @classmethod
    def auto_generate_invoices_for_month(
        cls,
        db: Session,
        year: int,
        month: int,
        *,
        company_ids: Optional[Sequence[int]] = None,
        issue_date: Optional[date] = None,
    ) -> InvoiceGenerationSummary:
        """Invoice every eligible contract for the calendar month.

        Safe to re-run: contracts with any invoice for the month, including a
        cancelled one, are reported as skipped. Per-contract failures are collected in the summary.
        """

        period_start, period_end = BillingPeriodService.month_period(year, month)
        summary = InvoiceGenerationSummary(
            year=year, month=month, period_start=period_start, period_end=period_end
        )
        started = perf_counter()

        try:
            company_ids_to_process = [
                company.id for company in cls._active_companies(db, company_ids)
            ]
        except SQLAlchemyError as exc:
            raise DependencyFailureError("Unable to list companies.") from exc

        for company_id in company_ids_to_process:
            try:
                settings = BillingSettingsService.get_or_create_settings(db, company_id)
            except BillingError as exc:
                LOGGER.warning(
                    "Skipping company %s: %s", company_id, exc, extra={"company_id": company_id}
                )
                summary.failures.append(BatchFailure(error=str(exc), company_id=company_id))
                continue
            if not settings.auto_generate_invoices:
                continue

            summary.companies_processed += 1
            try:
                contract_ids = [
                    contract.id
                    for contract in cls.eligible_contracts(db, company_id, period_start, period_end)
                ]
            except SQLAlchemyError as exc:
                raise DependencyFailureError("Unable to list contracts.") from exc

            for contract_id in contract_ids:
                summary.contracts_total += 1
                try:
                    if InvoiceLifecycleService.invoice_exists_for_period(
                        db, contract_id, period_start, period_end, include_cancelled=True
                    ):
                        summary.skipped.append(contract_id)
                        continue
                    invoice = InvoiceLifecycleService.generate_invoice_for_contract(
                        db, contract_id, period_start, period_end, issue_date=issue_date
                    )
                except AlreadyExistsError:
                    summary.skipped.append(contract_id)
                    continue
                except (BillingError, SQLAlchemyError) as exc:
                    if isinstance(exc, SQLAlchemyError):
                        db.rollback()
                    LOGGER.warning(
                        "Invoice generation failed for contract %s: %s",
                        contract_id,
                        exc,
                        extra={"company_id": company_id, "contract_id": contract_id},
                    )
                    summary.failures.append(
                        BatchFailure(error=str(exc), company_id=company_id, contract_id=contract_id)
                    )
                    continue
                summary.generated.append(invoice.id)

        summary.execution_time_ms = (perf_counter() - started) * 1000
        LOGGER.info(
            "Invoice generation for %04d-%02d finished: %s generated, %s skipped, %s failed",
            year,
            month,
            len(summary.generated),
            len(summary.skipped),
            len(summary.failures),
        )
        return summary

    @staticmethod
    def _has_open_invoice_within_term(db: Session, contract_id: int, today: date) -> bool:
        return (
            db.query(models.Invoice.id)
            .filter(
                models.Invoice.contract_id == contract_id,
                models.Invoice.status.in_(models.OPEN_INVOICE_STATUSES),
                models.Invoice.due_date >= today,
            )
            .first()
            is not None
        )

    @staticmethod
    def _retire_object(obj: models.MonitoredObject, now: datetime, closed_at: datetime) -> None:
        obj.status = models.ObjectStatus.DELETED
        obj.deleted_at = now
        for interval in obj.activity_intervals:
            if interval.active_until is None:
                interval.active_until = max(interval.active_from, closed_at)

    @classmethod
    def process_scheduled_deletions(
        cls, db: Session, *, reference_date: Optional[date] = None
    ) -> DeletionSummary:
        """Soft-delete contracts and objects whose scheduled deletion date has come.

        An entity is deferred while its contract still has an unpaid invoice
        within its payment term. A deleted contract keeps the day before its
        deletion as ``end_date`` so monthly generation still bills that last
        partial period.
        """

        today = reference_date or date.today()
        closed_at = datetime.combine(today, time.min)
        summary = DeletionSummary()

        try:
            contract_ids = [
                contract_id
                for (contract_id,) in db.query(models.Contract.id)
                .filter(
                    models.Contract.scheduled_delete_at.isnot(None),
                    models.Contract.scheduled_delete_at <= today,
                    models.Contract.deleted_at.is_(None),
                )
                .order_by(models.Contract.id)
                .all()
            ]
        except SQLAlchemyError as exc:
            raise DependencyFailureError("Unable to list contracts scheduled for deletion.") from exc

        for contract_id in contract_ids:
            try:
                if cls._has_open_invoice_within_term(db, contract_id, today):
                    summary.deferred_contracts.append(contract_id)
                    continue
                contract = db.get(models.Contract, contract_id)
                now = datetime.now(timezone.utc)
                last_billable_day = max(contract.start_date, today - timedelta(days=1))
                if contract.end_date is None or contract.end_date > last_billable_day:
                    contract.end_date = last_billable_day
                contract.status = models.ContractStatus.TERMINATED
                contract.deleted_at = now
                for obj in contract.objects:
                    if obj.deleted_at is None:
                        cls._retire_object(obj, now, closed_at)
                db.add(contract)
                BillingHistoryService.record(
                    db,
                    operation=models.BillingOperation.CONTRACT_SCHEDULED_DELETION,
                    company_id=contract.company_id,
                    contract_id=contract.id,
                    description=f"Contract {contract.number} deleted as scheduled",
                )
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                LOGGER.warning("Scheduled deletion failed for contract %s: %s", contract_id, exc)
                summary.failures.append(BatchFailure(error=str(exc), contract_id=contract_id))
                continue
            summary.deleted_contracts.append(contract_id)

        try:
            object_rows = (
                db.query(models.MonitoredObject.id, models.MonitoredObject.contract_id)
                .filter(
                    models.MonitoredObject.scheduled_delete_at.isnot(None),
                    models.MonitoredObject.scheduled_delete_at <= today,
                    models.MonitoredObject.deleted_at.is_(None),
                )
                .order_by(models.MonitoredObject.id)
                .all()
            )
        except SQLAlchemyError as exc:
            raise DependencyFailureError("Unable to list objects scheduled for deletion.") from exc

        for object_id, contract_id in object_rows:
            try:
                if cls._has_open_invoice_within_term(db, contract_id, today):
                    summary.deferred_objects.append(object_id)
                    continue
                obj = db.get(models.MonitoredObject, object_id)
                cls._retire_object(obj, datetime.now(timezone.utc), closed_at)
                db.add(obj)
                BillingHistoryService.record(
                    db,
                    operation=models.BillingOperation.OBJECT_SCHEDULED_DELETION,
                    company_id=obj.contract.company_id,
                    contract_id=contract_id,
                    description=f"Object {obj.name} deleted as scheduled",
                )
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                LOGGER.warning("Scheduled deletion failed for object %s: %s", object_id, exc)
                summary.failures.append(
                    BatchFailure(error=str(exc), contract_id=contract_id, object_id=object_id)
                )
                continue
            summary.deleted_objects.append(object_id)

        LOGGER.info("Scheduled deletions processed: %s", summary.to_dict())
        return summary

    @staticmethod
    def get_billing_statistics(
        db: Session, company_id: int, year: int, month: Optional[int] = None
    ) -> BillingStatistics:
        if month is None:
            period_start, period_end = BillingPeriodService.year_period(year)
        else:
            period_start, period_end = BillingPeriodService.month_period(year, month)

        try:
            rows = (
                db.query(
                    models.Invoice.status,
                    func.count(models.Invoice.id),
                    func.coalesce(func.sum(models.Invoice.total_amount), 0),
                    func.coalesce(func.sum(models.Invoice.paid_amount), 0),
                )
                .filter(
                    models.Invoice.company_id == company_id,
                    models.Invoice.invoice_date >= period_start,
                    models.Invoice.invoice_date <= period_end,
                )
                .group_by(models.Invoice.status)
                .all()
            )
        except SQLAlchemyError as exc:
            raise DependencyFailureError("Unable to compute billing statistics.") from exc

        stats = BillingStatistics(
            company_id=company_id,
            year=year,
            month=month,
            period_start=period_start,
            period_end=period_end,
            counts_by_status={status.value: 0 for status in models.InvoiceStatus},
        )
        for status, count, total_amount, paid_amount in rows:
            status = models.InvoiceStatus(status)
            total_amount = round_money(Decimal(str(total_amount)))
            paid_amount = round_money(Decimal(str(paid_amount)))
            stats.counts_by_status[status.value] = count
            stats.invoice_count += count
            if status == models.InvoiceStatus.CANCELLED:
                continue
            stats.total_invoiced += total_amount
            stats.total_paid += paid_amount
            if status != models.InvoiceStatus.PAID:
                stats.total_outstanding += total_amount - paid_amount
            if status == models.InvoiceStatus.OVERDUE:
                stats.total_overdue += total_amount - paid_amount
        return stats

    @staticmethod
    def get_invoices_by_period(
        db: Session,
        start: date,
        end: date,
        *,
        company_id: Optional[int] = None,
    ) -> list[models.Invoice]:
        """Invoices issued between ``start`` and ``end`` inclusive."""

        if end < start:
            raise InvalidInputError("end must not be earlier than start")
        try:
            query = db.query(models.Invoice).filter(
                models.Invoice.invoice_date >= start,
                models.Invoice.invoice_date <= end,
            )
            if company_id is not None:
                query = query.filter(models.Invoice.company_id == company_id)
            return query.order_by(models.Invoice.invoice_date, models.Invoice.id).all()
        except SQLAlchemyError as exc:
            raise DependencyFailureError("Unable to load invoices.") from exc

    @staticmethod
    def get_overdue_invoices(
        db: Session,
        *,
        company_id: Optional[int] = None,
        reference_date: Optional[date] = None,
    ) -> list[models.Invoice]:
        """Unpaid, non-cancelled invoices past their due date, whether or not the scan ran."""

        today = reference_date or date.today()
        try:
            query = db.query(models.Invoice).filter(
                models.Invoice.due_date < today,
                models.Invoice.status.notin_(
                    [models.InvoiceStatus.PAID, models.InvoiceStatus.CANCELLED]
                ),
            )
            if company_id is not None:
                query = query.filter(models.Invoice.company_id == company_id)
            return query.order_by(models.Invoice.due_date, models.Invoice.id).all()
        except SQLAlchemyError as exc:
            raise DependencyFailureError("Unable to load overdue invoices.") from exc

    @staticmethod
    def get_billing_history(
        db: Session,
        company_id: int,
        *,
        limit: int = DEFAULT_HISTORY_LIMIT,
        offset: int = 0,
    ) -> Tuple[Iterable[models.BillingHistory], int]:
        return BillingHistoryService.list_history(db, company_id, limit=limit, offset=offset)
