"""Business logic for billing plans and company subscriptions."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models
from .billing_periods import BillingPeriodService
from .errors import (
    DependencyFailureError,
    InvalidInputError,
    InvalidStateTransitionError,
    NotFoundError,
)

LOGGER = logging.getLogger(__name__)

PRICING_FIELDS = frozenset({"price", "currency", "billing_period"})
PLAN_FIELDS = frozenset(
    {"name", "description", "price", "currency", "billing_period", "max_objects", "is_active"}
)


def next_payment_date_for(
    billing_period: models.BillingPeriodType, reference: date
) -> Optional[date]:
    """Date one billing period after ``reference``; ``None`` for one-time plans."""

    billing_period = models.BillingPeriodType(billing_period)
    if billing_period == models.BillingPeriodType.MONTHLY:
        return BillingPeriodService.add_months(reference, 1)
    if billing_period == models.BillingPeriodType.YEARLY:
        return BillingPeriodService.add_months(reference, 12)
    return None


class SubscriptionService:
    """Catalog and subscription operations."""

    @staticmethod
    def list_plans(
        db: Session,
        *,
        company_id: Optional[int] = None,
        include_inactive: bool = False,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[Iterable[models.BillingPlan], int]:
        """Global plans plus the plans scoped to ``company_id``."""

        query = db.query(models.BillingPlan)
        if company_id is None:
            query = query.filter(models.BillingPlan.company_id.is_(None))
        else:
            query = query.filter(
                or_(
                    models.BillingPlan.company_id.is_(None),
                    models.BillingPlan.company_id == company_id,
                )
            )
        if not include_inactive:
            query = query.filter(models.BillingPlan.is_active.is_(True))

        total = query.count()
        items = (
            query.order_by(models.BillingPlan.price.asc(), models.BillingPlan.id.asc())
            .offset(max(skip, 0))
            .limit(max(limit, 1))
            .all()
        )
        return items, total

    @staticmethod
    def get_plan(db: Session, plan_id: int) -> models.BillingPlan:
        plan = db.get(models.BillingPlan, plan_id)
        if plan is None:
            raise NotFoundError(f"Billing plan {plan_id} not found")
        return plan

    @staticmethod
    def _validate_plan_values(values: Mapping[str, Any]) -> None:
        unknown = set(values) - PLAN_FIELDS
        if unknown:
            raise InvalidInputError(f"Unknown plan fields: {', '.join(sorted(unknown))}")
        if "name" in values and not (values["name"] or "").strip():
            raise InvalidInputError("Plan name cannot be empty")
        if "price" in values and Decimal(values["price"]) < 0:
            raise InvalidInputError("Plan price must not be negative")
        if values.get("max_objects") is not None and int(values["max_objects"]) < 0:
            raise InvalidInputError("max_objects must not be negative")

    @classmethod
    def create_plan(
        cls, db: Session, values: Mapping[str, Any], *, company_id: Optional[int] = None
    ) -> models.BillingPlan:
        cls._validate_plan_values(values)
        if company_id is not None and db.get(models.Company, company_id) is None:
            raise NotFoundError(f"Company {company_id} not found")

        payload = dict(values)
        payload["name"] = payload["name"].strip()
        plan = models.BillingPlan(company_id=company_id, **payload)
        try:
            db.add(plan)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise DependencyFailureError("Unable to create billing plan.") from exc
        db.refresh(plan)
        return plan

    @staticmethod
    def _has_active_subscriptions(db: Session, plan_id: int) -> bool:
        return (
            db.query(models.Subscription.id)
            .filter(
                models.Subscription.plan_id == plan_id,
                models.Subscription.status == models.SubscriptionStatus.ACTIVE,
            )
            .first()
            is not None
        )

    @classmethod
    def update_plan(
        cls,
        db: Session,
        plan_id: int,
        changes: Mapping[str, Any],
        *,
        administrative_correction: bool = False,
    ) -> models.BillingPlan:
        """Update a plan; pricing is frozen while active subscriptions reference it."""

        plan = cls.get_plan(db, plan_id)
        cls._validate_plan_values(changes)

        pricing_changes = {
            field
            for field in PRICING_FIELDS & set(changes)
            if changes[field] != getattr(plan, field)
        }
        if (
            pricing_changes
            and not administrative_correction
            and cls._has_active_subscriptions(db, plan.id)
        ):
            raise InvalidStateTransitionError(
                "Plan pricing cannot change while active subscriptions reference it"
            )

        for field, value in changes.items():
            setattr(plan, field, value.strip() if field == "name" else value)
        try:
            db.add(plan)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise DependencyFailureError("Unable to update billing plan.") from exc
        db.refresh(plan)
        if pricing_changes and administrative_correction:
            LOGGER.warning(
                "Administrative correction applied to plan %s",
                plan.id,
                extra={"fields": sorted(pricing_changes)},
            )
        return plan

    @classmethod
    def create_subscription(
        cls,
        db: Session,
        company_id: int,
        plan_id: int,
        *,
        start_date: Optional[date] = None,
    ) -> models.Subscription:
        """Subscribe a company to a plan.

        ``next_payment_date`` is computed once here and is not recomputed on
        read; use :meth:`advance_next_payment_date` after billing a period.
        """

        company = db.get(models.Company, company_id)
        if company is None:
            raise NotFoundError(f"Company {company_id} not found")
        plan = cls.get_plan(db, plan_id)
        if not plan.is_active:
            raise InvalidInputError(f"Billing plan {plan_id} is not active")
        if plan.company_id is not None and plan.company_id != company_id:
            raise InvalidInputError(f"Billing plan {plan_id} belongs to another company")

        start = start_date or date.today()
        subscription = models.Subscription(
            company_id=company_id,
            plan_id=plan.id,
            status=models.SubscriptionStatus.ACTIVE,
            start_date=start,
            next_payment_date=next_payment_date_for(plan.billing_period, start),
        )
        try:
            db.add(subscription)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise DependencyFailureError("Unable to create subscription.") from exc
        db.refresh(subscription)
        LOGGER.info(
            "Company %s subscribed to plan %s",
            company_id,
            plan.id,
            extra={"subscription_id": subscription.id},
        )
        return subscription

    @staticmethod
    def get_subscription(db: Session, subscription_id: int) -> models.Subscription:
        subscription = db.get(models.Subscription, subscription_id)
        if subscription is None:
            raise NotFoundError(f"Subscription {subscription_id} not found")
        return subscription

    @classmethod
    def cancel_subscription(
        cls, db: Session, subscription_id: int, *, end_date: Optional[date] = None
    ) -> models.Subscription:
        subscription = cls.get_subscription(db, subscription_id)
        if subscription.status in (
            models.SubscriptionStatus.CANCELLED,
            models.SubscriptionStatus.EXPIRED,
        ):
            raise InvalidStateTransitionError(
                f"Subscription {subscription_id} is already {subscription.status.value}"
            )
        end = end_date or date.today()
        if end < subscription.start_date:
            raise InvalidInputError("end_date must not be earlier than the start date")

        subscription.status = models.SubscriptionStatus.CANCELLED
        subscription.end_date = end
        subscription.next_payment_date = None
        try:
            db.add(subscription)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise DependencyFailureError("Unable to cancel subscription.") from exc
        db.refresh(subscription)
        return subscription

    @classmethod
    def advance_next_payment_date(
        cls, db: Session, subscription_id: int
    ) -> models.Subscription:
        """Move ``next_payment_date`` forward by one billing period."""

        subscription = cls.get_subscription(db, subscription_id)
        if subscription.status != models.SubscriptionStatus.ACTIVE:
            raise InvalidStateTransitionError(
                f"Subscription {subscription_id} is not active"
            )
        if subscription.next_payment_date is None:
            raise InvalidStateTransitionError(
                f"Subscription {subscription_id} has no recurring payments"
            )

        subscription.next_payment_date = next_payment_date_for(
            subscription.plan.billing_period, subscription.next_payment_date
        )
        try:
            db.add(subscription)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise DependencyFailureError("Unable to update subscription.") from exc
        db.refresh(subscription)
        return subscription
