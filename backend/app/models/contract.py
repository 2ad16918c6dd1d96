"""Models for billable contracts and their tariffs."""

from __future__ import annotations

import enum
from decimal import Decimal

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


class ContractStatus(str, enum.Enum):
    """Lifecycle status of a contract."""

    DRAFT = "draft"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    TERMINATED = "terminated"


class TariffPlan(Base):
    """Pricing rules applied to a contract."""

    __tablename__ = "tariff_plans"
    __table_args__ = (
        CheckConstraint("base_price >= 0", name="ck_tariff_plans_base_price_non_negative"),
        CheckConstraint("setup_fee >= 0", name="ck_tariff_plans_setup_fee_non_negative"),
        CheckConstraint(
            "price_per_object >= 0", name="ck_tariff_plans_price_per_object_non_negative"
        ),
        CheckConstraint(
            "free_objects_count >= 0", name="ck_tariff_plans_free_objects_non_negative"
        ),
        CheckConstraint(
            "discount_percent >= 0 AND discount_percent <= 100",
            name="ck_tariff_plans_discount_range",
        ),
    )

    id = Column("tariff_plan_id", Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    description = Column(Text, nullable=True)
    base_price = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    setup_fee = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    price_per_object = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    free_objects_count = Column(Integer, nullable=False, default=0)
    discount_percent = Column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    is_active = Column(Boolean, nullable=False, default=True, server_default="1")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    contracts = relationship("Contract", back_populates="tariff_plan")


class Contract(Base):
    """The billable relationship between a company and its objects."""

    __tablename__ = "contracts"
    __table_args__ = (
        CheckConstraint(
            "end_date IS NULL OR end_date >= start_date",
            name="ck_contracts_valid_range",
        ),
    )

    id = Column("contract_id", Integer, primary_key=True, autoincrement=True)
    company_id = Column(
        Integer,
        ForeignKey("companies.company_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    tariff_plan_id = Column(
        Integer,
        ForeignKey("tariff_plans.tariff_plan_id", ondelete="SET NULL"),
        nullable=True,
    )
    number = Column(String(50), nullable=False)
    title = Column(String(200), nullable=False)
    status = Column(
        Enum(
            ContractStatus,
            name="contract_status_enum",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default=ContractStatus.ACTIVE,
    )
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    scheduled_delete_at = Column(Date, nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    company = relationship("Company", back_populates="contracts")
    tariff_plan = relationship("TariffPlan", back_populates="contracts")
    objects = relationship(
        "MonitoredObject",
        back_populates="contract",
        order_by="MonitoredObject.id",
    )
    invoices = relationship("Invoice", back_populates="contract")
