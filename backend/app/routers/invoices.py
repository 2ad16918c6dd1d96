"""Router exposing invoice reads, payments and cancellation."""

from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db
from ..services import BillingAutomationService, BillingError, InvoiceLifecycleService
from .billing import billing_http_error

router = APIRouter()


@router.get("", response_model=schemas.InvoiceListResponse)
def list_invoices(
    company_id: Optional[int] = Query(None),
    contract_id: Optional[int] = Query(None),
    status_filter: Optional[models.InvoiceStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
) -> schemas.InvoiceListResponse:
    items, total = InvoiceLifecycleService.list_invoices(
        db,
        company_id=company_id,
        contract_id=contract_id,
        status=status_filter,
        skip=skip,
        limit=limit,
    )
    return schemas.InvoiceListResponse(items=items, total=total, limit=limit, skip=skip)


@router.get("/overdue", response_model=List[schemas.InvoiceRead])
def list_overdue_invoices(
    company_id: Optional[int] = Query(None),
    reference_date: Optional[date] = Query(None),
    db: Session = Depends(get_db),
) -> List[schemas.InvoiceRead]:
    try:
        invoices = BillingAutomationService.get_overdue_invoices(
            db, company_id=company_id, reference_date=reference_date
        )
    except BillingError as exc:
        raise billing_http_error(exc) from exc
    return [schemas.InvoiceRead.model_validate(invoice) for invoice in invoices]


@router.get("/by-period", response_model=List[schemas.InvoiceRead])
def list_invoices_by_period(
    start_date: date = Query(...),
    end_date: date = Query(...),
    company_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
) -> List[schemas.InvoiceRead]:
    try:
        invoices = BillingAutomationService.get_invoices_by_period(
            db, start_date, end_date, company_id=company_id
        )
    except BillingError as exc:
        raise billing_http_error(exc) from exc
    return [schemas.InvoiceRead.model_validate(invoice) for invoice in invoices]


@router.get("/{invoice_id}", response_model=schemas.InvoiceRead)
def read_invoice(invoice_id: int, db: Session = Depends(get_db)) -> schemas.InvoiceRead:
    try:
        invoice = InvoiceLifecycleService.get_invoice(db, invoice_id)
    except BillingError as exc:
        raise billing_http_error(exc) from exc
    return schemas.InvoiceRead.model_validate(invoice)


@router.get("/{invoice_id}/payments", response_model=List[schemas.InvoicePaymentRead])
def list_invoice_payments(
    invoice_id: int, db: Session = Depends(get_db)
) -> List[schemas.InvoicePaymentRead]:
    try:
        payments = InvoiceLifecycleService.list_payments(db, invoice_id)
    except BillingError as exc:
        raise billing_http_error(exc) from exc
    return [schemas.InvoicePaymentRead.model_validate(payment) for payment in payments]


@router.post(
    "/{invoice_id}/payments",
    response_model=schemas.InvoicePaymentRead,
    status_code=status.HTTP_201_CREATED,
)
def record_invoice_payment(
    invoice_id: int,
    payload: schemas.InvoicePaymentCreate,
    db: Session = Depends(get_db),
) -> schemas.InvoicePaymentRead:
    try:
        payment = InvoiceLifecycleService.process_payment(
            db, invoice_id, payload.amount, payload.method, payload.notes
        )
    except BillingError as exc:
        raise billing_http_error(exc) from exc
    return schemas.InvoicePaymentRead.model_validate(payment)


@router.post("/payments/{payment_id}/confirm", response_model=schemas.InvoicePaymentRead)
def confirm_invoice_payment(
    payment_id: int, db: Session = Depends(get_db)
) -> schemas.InvoicePaymentRead:
    try:
        payment = InvoiceLifecycleService.confirm_payment(db, payment_id)
    except BillingError as exc:
        raise billing_http_error(exc) from exc
    return schemas.InvoicePaymentRead.model_validate(payment)


@router.post("/{invoice_id}/cancel", response_model=schemas.InvoiceRead)
def cancel_invoice(
    invoice_id: int,
    payload: schemas.InvoiceCancelRequest,
    db: Session = Depends(get_db),
) -> schemas.InvoiceRead:
    try:
        invoice = InvoiceLifecycleService.cancel_invoice(db, invoice_id, payload.reason)
    except BillingError as exc:
        raise billing_http_error(exc) from exc
    return schemas.InvoiceRead.model_validate(invoice)
