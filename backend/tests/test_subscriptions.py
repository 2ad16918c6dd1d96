from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from backend.app import models
from backend.app.services import (
    InvalidInputError,
    InvalidStateTransitionError,
    NotFoundError,
    SubscriptionService,
)
from backend.app.services.subscriptions import next_payment_date_for


@pytest.fixture
def plan(db_session) -> models.BillingPlan:
    return SubscriptionService.create_plan(
        db_session,
        {"name": " Standard ", "price": Decimal("990.00"), "currency": "RUB"},
    )


def test_create_plan_strips_name_and_is_global(plan):
    assert plan.name == "Standard"
    assert plan.is_global
    assert plan.billing_period == models.BillingPeriodType.MONTHLY


def test_list_plans_includes_company_plans(db_session, company, plan):
    private = SubscriptionService.create_plan(
        db_session, {"name": "Private", "price": Decimal("10")}, company_id=company.id
    )
    SubscriptionService.create_plan(
        db_session, {"name": "Retired", "price": Decimal("5"), "is_active": False}
    )

    global_only, total = SubscriptionService.list_plans(db_session)
    assert total == 1
    assert [item.id for item in global_only] == [plan.id]

    scoped, total = SubscriptionService.list_plans(db_session, company_id=company.id)
    assert total == 2
    assert [item.id for item in scoped] == [private.id, plan.id]


def test_subscription_sets_next_payment_date(db_session, company, plan):
    subscription = SubscriptionService.create_subscription(
        db_session, company.id, plan.id, start_date=date(2025, 1, 31)
    )

    assert subscription.status == models.SubscriptionStatus.ACTIVE
    assert subscription.next_payment_date == date(2025, 2, 28)

    advanced = SubscriptionService.advance_next_payment_date(db_session, subscription.id)
    assert advanced.next_payment_date == date(2025, 3, 28)


def test_next_payment_date_for_each_period():
    start = date(2024, 2, 29)
    assert next_payment_date_for(models.BillingPeriodType.MONTHLY, start) == date(2024, 3, 29)
    assert next_payment_date_for(models.BillingPeriodType.YEARLY, start) == date(2025, 2, 28)
    assert next_payment_date_for(models.BillingPeriodType.ONE_TIME, start) is None


def test_pricing_is_frozen_while_subscribed(db_session, company, plan):
    SubscriptionService.create_subscription(db_session, company.id, plan.id)

    with pytest.raises(InvalidStateTransitionError):
        SubscriptionService.update_plan(db_session, plan.id, {"price": Decimal("1200")})

    renamed = SubscriptionService.update_plan(db_session, plan.id, {"name": "Standard+"})
    assert renamed.name == "Standard+"

    corrected = SubscriptionService.update_plan(
        db_session, plan.id, {"price": Decimal("1200")}, administrative_correction=True
    )
    assert corrected.price == Decimal("1200.00")


def test_pricing_can_change_without_active_subscriptions(db_session, company, plan):
    subscription = SubscriptionService.create_subscription(db_session, company.id, plan.id)
    SubscriptionService.cancel_subscription(
        db_session, subscription.id, end_date=subscription.start_date
    )

    updated = SubscriptionService.update_plan(db_session, plan.id, {"price": Decimal("500")})

    assert updated.price == Decimal("500.00")


def test_cancel_subscription(db_session, company, plan):
    subscription = SubscriptionService.create_subscription(
        db_session, company.id, plan.id, start_date=date(2025, 1, 1)
    )

    with pytest.raises(InvalidInputError):
        SubscriptionService.cancel_subscription(
            db_session, subscription.id, end_date=date(2024, 12, 31)
        )

    cancelled = SubscriptionService.cancel_subscription(
        db_session, subscription.id, end_date=date(2025, 3, 1)
    )
    assert cancelled.status == models.SubscriptionStatus.CANCELLED
    assert cancelled.next_payment_date is None

    with pytest.raises(InvalidStateTransitionError):
        SubscriptionService.cancel_subscription(db_session, subscription.id)
    with pytest.raises(InvalidStateTransitionError):
        SubscriptionService.advance_next_payment_date(db_session, subscription.id)


def test_subscription_rejects_foreign_or_inactive_plans(db_session, company, plan):
    other = models.Company(name="Other Co")
    db_session.add(other)
    db_session.commit()
    foreign = SubscriptionService.create_plan(
        db_session, {"name": "Other only", "price": Decimal("1")}, company_id=other.id
    )
    inactive = SubscriptionService.create_plan(
        db_session, {"name": "Old", "price": Decimal("1"), "is_active": False}
    )

    with pytest.raises(InvalidInputError):
        SubscriptionService.create_subscription(db_session, company.id, foreign.id)
    with pytest.raises(InvalidInputError):
        SubscriptionService.create_subscription(db_session, company.id, inactive.id)
    with pytest.raises(NotFoundError):
        SubscriptionService.create_subscription(db_session, 999, plan.id)


def test_plan_validation(db_session):
    with pytest.raises(InvalidInputError):
        SubscriptionService.create_plan(db_session, {"name": "", "price": Decimal("1")})
    with pytest.raises(InvalidInputError):
        SubscriptionService.create_plan(db_session, {"name": "Neg", "price": Decimal("-1")})
    with pytest.raises(NotFoundError):
        SubscriptionService.update_plan(db_session, 404, {"name": "Ghost"})
