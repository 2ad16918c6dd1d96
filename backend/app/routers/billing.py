"""Router exposing billing calculation, automation and configuration endpoints."""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..services import (
    AlreadyExistsError,
    BillingAutomationService,
    BillingCalculationService,
    BillingError,
    BillingSettingsService,
    DependencyFailureError,
    InvalidInputError,
    InvalidStateTransitionError,
    InvoiceLifecycleService,
    NotFoundError,
    SubscriptionService,
)

LOGGER = logging.getLogger(__name__)

router = APIRouter()


def billing_http_error(exc: BillingError) -> HTTPException:
    """Translate a service error into the matching HTTP error."""

    if isinstance(exc, NotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, (InvalidStateTransitionError, AlreadyExistsError)):
        status_code = status.HTTP_409_CONFLICT
    elif isinstance(exc, InvalidInputError):
        status_code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, DependencyFailureError):
        LOGGER.error("Billing dependency failure: %s", exc)
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        status_code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=status_code, detail=str(exc))


@router.get(
    "/contracts/{contract_id}/calculation",
    response_model=schemas.BillingCalculationRead,
)
def calculate_contract_billing(
    contract_id: int,
    period_start: date = Query(..., description="First billable day"),
    period_end: date = Query(..., description="Last billable day"),
    db: Session = Depends(get_db),
) -> schemas.BillingCalculationRead:
    try:
        calculation = BillingCalculationService.calculate_billing_for_contract(
            db, contract_id, period_start, period_end
        )
    except BillingError as exc:
        raise billing_http_error(exc) from exc
    return schemas.BillingCalculationRead.model_validate(calculation)


@router.post(
    "/contracts/{contract_id}/invoices",
    response_model=schemas.InvoiceRead,
    status_code=status.HTTP_201_CREATED,
)
def generate_contract_invoice(
    contract_id: int,
    payload: schemas.InvoiceGenerateRequest,
    db: Session = Depends(get_db),
) -> schemas.InvoiceRead:
    try:
        invoice = InvoiceLifecycleService.generate_invoice_for_contract(
            db,
            contract_id,
            payload.period_start,
            payload.period_end,
            issue_date=payload.issue_date,
        )
    except BillingError as exc:
        raise billing_http_error(exc) from exc
    return schemas.InvoiceRead.model_validate(invoice)


@router.post("/generate", response_model=schemas.InvoiceGenerationSummaryRead)
def generate_monthly_invoices(
    payload: schemas.MonthlyGenerationRequest,
    db: Session = Depends(get_db),
) -> schemas.InvoiceGenerationSummaryRead:
    try:
        summary = BillingAutomationService.auto_generate_invoices_for_month(
            db,
            payload.year,
            payload.month,
            company_ids=payload.company_ids,
            issue_date=payload.issue_date,
        )
    except BillingError as exc:
        raise billing_http_error(exc) from exc
    return schemas.InvoiceGenerationSummaryRead.model_validate(summary)


@router.post("/overdue-scan", response_model=schemas.OverdueScanResult)
def run_overdue_scan(
    reference_date: Optional[date] = Query(None),
    company_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
) -> schemas.OverdueScanResult:
    try:
        updated = InvoiceLifecycleService.mark_overdue_invoices(
            db, reference_date=reference_date, company_id=company_id
        )
    except BillingError as exc:
        raise billing_http_error(exc) from exc
    return schemas.OverdueScanResult(updated=updated)


@router.post("/scheduled-deletions", response_model=schemas.DeletionSummaryRead)
def run_scheduled_deletions(
    reference_date: Optional[date] = Query(None),
    db: Session = Depends(get_db),
) -> schemas.DeletionSummaryRead:
    try:
        summary = BillingAutomationService.process_scheduled_deletions(
            db, reference_date=reference_date
        )
    except BillingError as exc:
        raise billing_http_error(exc) from exc
    return schemas.DeletionSummaryRead.model_validate(summary)


@router.get("/statistics", response_model=schemas.BillingStatisticsRead)
def read_billing_statistics(
    company_id: int = Query(...),
    year: int = Query(..., ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    db: Session = Depends(get_db),
) -> schemas.BillingStatisticsRead:
    try:
        stats = BillingAutomationService.get_billing_statistics(db, company_id, year, month)
    except BillingError as exc:
        raise billing_http_error(exc) from exc
    return schemas.BillingStatisticsRead.model_validate(stats)


@router.get("/history", response_model=schemas.BillingHistoryListResponse)
def read_billing_history(
    company_id: int = Query(...),
    limit: int = Query(50),
    offset: int = Query(0),
    db: Session = Depends(get_db),
) -> schemas.BillingHistoryListResponse:
    effective_limit = limit if limit >= 1 else 50
    effective_offset = max(offset, 0)
    try:
        items, total = BillingAutomationService.get_billing_history(
            db, company_id, limit=effective_limit, offset=effective_offset
        )
    except BillingError as exc:
        raise billing_http_error(exc) from exc
    return schemas.BillingHistoryListResponse(
        items=items, total=total, limit=effective_limit, skip=effective_offset
    )


@router.get("/settings/{company_id}", response_model=schemas.BillingSettingsRead)
def read_billing_settings(
    company_id: int, db: Session = Depends(get_db)
) -> schemas.BillingSettingsRead:
    try:
        settings = BillingSettingsService.get_or_create_settings(db, company_id)
    except BillingError as exc:
        raise billing_http_error(exc) from exc
    return schemas.BillingSettingsRead.model_validate(settings)


@router.put("/settings/{company_id}", response_model=schemas.BillingSettingsRead)
def update_billing_settings(
    company_id: int,
    payload: schemas.BillingSettingsUpdate,
    db: Session = Depends(get_db),
) -> schemas.BillingSettingsRead:
    try:
        settings = BillingSettingsService.update_settings(
            db, company_id, payload.model_dump(exclude_unset=True)
        )
    except BillingError as exc:
        raise billing_http_error(exc) from exc
    return schemas.BillingSettingsRead.model_validate(settings)


@router.get("/plans", response_model=schemas.BillingPlanListResponse)
def list_billing_plans(
    company_id: Optional[int] = Query(None),
    include_inactive: bool = Query(False),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
) -> schemas.BillingPlanListResponse:
    items, total = SubscriptionService.list_plans(
        db,
        company_id=company_id,
        include_inactive=include_inactive,
        skip=skip,
        limit=limit,
    )
    return schemas.BillingPlanListResponse(items=items, total=total, limit=limit, skip=skip)


@router.post(
    "/plans",
    response_model=schemas.BillingPlanRead,
    status_code=status.HTTP_201_CREATED,
)
def create_billing_plan(
    payload: schemas.BillingPlanCreate, db: Session = Depends(get_db)
) -> schemas.BillingPlanRead:
    values = payload.model_dump(exclude={"company_id"})
    try:
        plan = SubscriptionService.create_plan(db, values, company_id=payload.company_id)
    except BillingError as exc:
        raise billing_http_error(exc) from exc
    return schemas.BillingPlanRead.model_validate(plan)


@router.put("/plans/{plan_id}", response_model=schemas.BillingPlanRead)
def update_billing_plan(
    plan_id: int,
    payload: schemas.BillingPlanUpdate,
    db: Session = Depends(get_db),
) -> schemas.BillingPlanRead:
    changes = payload.model_dump(exclude_unset=True, exclude={"administrative_correction"})
    try:
        plan = SubscriptionService.update_plan(
            db,
            plan_id,
            changes,
            administrative_correction=payload.administrative_correction,
        )
    except BillingError as exc:
        raise billing_http_error(exc) from exc
    return schemas.BillingPlanRead.model_validate(plan)


@router.post(
    "/subscriptions",
    response_model=schemas.SubscriptionRead,
    status_code=status.HTTP_201_CREATED,
)
def create_subscription(
    payload: schemas.SubscriptionCreate, db: Session = Depends(get_db)
) -> schemas.SubscriptionRead:
    try:
        subscription = SubscriptionService.create_subscription(
            db, payload.company_id, payload.plan_id, start_date=payload.start_date
        )
    except BillingError as exc:
        raise billing_http_error(exc) from exc
    return schemas.SubscriptionRead.model_validate(subscription)


@router.post("/subscriptions/{subscription_id}/cancel", response_model=schemas.SubscriptionRead)
def cancel_subscription(
    subscription_id: int,
    end_date: Optional[date] = Query(None),
    db: Session = Depends(get_db),
) -> schemas.SubscriptionRead:
    try:
        subscription = SubscriptionService.cancel_subscription(
            db, subscription_id, end_date=end_date
        )
    except BillingError as exc:
        raise billing_http_error(exc) from exc
    return schemas.SubscriptionRead.model_validate(subscription)
