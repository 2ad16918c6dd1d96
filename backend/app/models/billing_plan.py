"""Models describing company billing plans and their subscriptions."""

from __future__ import annotations

import enum
from datetime import date

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from ..database import Base


class BillingPeriodType(str, enum.Enum):
    """How often a billing plan is charged."""

    MONTHLY = "monthly"
    YEARLY = "yearly"
    ONE_TIME = "one_time"


class SubscriptionStatus(str, enum.Enum):
    """Lifecycle status values for plan subscriptions."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class BillingPlan(Base):
    """Catalog plan that a company can subscribe to."""

    __tablename__ = "billing_plans"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_billing_plans_price_non_negative"),
        CheckConstraint(
            "max_objects IS NULL OR max_objects >= 0",
            name="ck_billing_plans_max_objects_non_negative",
        ),
    )

    id = Column("plan_id", Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="RUB")
    billing_period = Column(
        Enum(
            BillingPeriodType,
            name="billing_period_type_enum",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default=BillingPeriodType.MONTHLY,
    )
    max_objects = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="1")
    company_id = Column(
        Integer,
        ForeignKey("companies.company_id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    subscriptions = relationship("Subscription", back_populates="plan")

    @property
    def is_global(self) -> bool:
        return self.company_id is None


class Subscription(Base):
    """A company's subscription to a billing plan."""

    __tablename__ = "subscriptions"
    __table_args__ = (
        CheckConstraint(
            "end_date IS NULL OR end_date >= start_date",
            name="ck_subscriptions_valid_range",
        ),
    )

    id = Column("subscription_id", Integer, primary_key=True, autoincrement=True)
    company_id = Column(
        Integer,
        ForeignKey("companies.company_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    plan_id = Column(
        Integer,
        ForeignKey("billing_plans.plan_id", ondelete="RESTRICT"),
        nullable=False,
    )
    status = Column(
        Enum(
            SubscriptionStatus,
            name="subscription_status_enum",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default=SubscriptionStatus.ACTIVE,
    )
    start_date = Column(Date, nullable=False, default=date.today)
    end_date = Column(Date, nullable=True)
    next_payment_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    company = relationship("Company", back_populates="subscriptions")
    plan = relationship("BillingPlan", back_populates="subscriptions")
